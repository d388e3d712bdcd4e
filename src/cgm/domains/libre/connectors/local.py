"""In-process Libre decoder backed by the block parser."""

from __future__ import annotations

from datetime import datetime

from cgm.domains.libre.domain_logic.block_models import LibreParseResult
from cgm.domains.libre.domain_logic.libre_parser import parse_libre_block


class LocalLibreDecoder:
    """Decodes blocks with ``parse_libre_block``. Always available.

    ``serial_number`` and ``patch_info`` are accepted for interface
    compatibility and ignored.
    """

    def __init__(self, multiplier: float) -> None:
        self._multiplier = multiplier

    async def decode(
        self,
        block: bytes,
        last_reading_timestamp: datetime,
        *,
        serial_number: str | None = None,
        patch_info: str | None = None,
    ) -> LibreParseResult:
        return parse_libre_block(
            block, last_reading_timestamp, multiplier=self._multiplier
        )

    @property
    def source(self) -> str:
        return "local"
