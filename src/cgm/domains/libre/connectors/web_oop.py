"""Web OOP Libre decoder — delegates decoding to a remote MCP service."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime

from cgm.core.oop.client import LibreOOPClient
from cgm.domains.libre.domain_logic.block_models import (
    WATERMARK_MARGIN,
    LibreParseResult,
)
from cgm.domains.libre.domain_logic.libre_parser import as_utc, validate_block

logger = logging.getLogger(__name__)


class WebOOPDecoder:
    """LibreDecoder backed by a ``LibreOOPClient``.

    The server receives the watermark too, but readings it returns that
    are not more than 30 seconds newer than the watermark are dropped here
    so both decoders honour the same rule.
    """

    def __init__(self, oop_client: LibreOOPClient) -> None:
        self._client = oop_client

    async def decode(
        self,
        block: bytes,
        last_reading_timestamp: datetime,
        *,
        serial_number: str | None = None,
        patch_info: str | None = None,
    ) -> LibreParseResult:
        """Decode remotely.

        Raises:
            InvalidInputLength: If the block is shorter than 344 bytes.
            ValueError: If no serial number is given.
            LibreOOPError: If the remote service fails.
        """
        validate_block(block)
        if not serial_number:
            raise ValueError("Web OOP decoding requires a sensor serial number")

        last_reading_timestamp = as_utc(last_reading_timestamp)
        result = await self._client.decode(
            block,
            last_reading_timestamp,
            serial_number=serial_number,
            patch_info=patch_info,
        )
        not_after = last_reading_timestamp + WATERMARK_MARGIN
        fresh = tuple(r for r in result.glucose_data if r.timestamp > not_after)
        if len(fresh) != len(result.glucose_data):
            logger.debug(
                "Dropped %d web OOP readings at or before the watermark",
                len(result.glucose_data) - len(fresh),
            )
        return replace(result, glucose_data=fresh)

    @property
    def source(self) -> str:
        return "web_oop"
