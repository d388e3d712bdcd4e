"""Libre decoder connectors — local parsing or a remote (web OOP) decoder."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from cgm.domains.libre.domain_logic.block_models import LibreParseResult


@runtime_checkable
class LibreDecoder(Protocol):
    """Abstract interface for turning a 344-byte block into readings.

    The processor calls these without knowing whether decoding happens
    in-process or on a web OOP server.
    """

    async def decode(
        self,
        block: bytes,
        last_reading_timestamp: datetime,
        *,
        serial_number: str | None = None,
        patch_info: str | None = None,
    ) -> LibreParseResult:
        """Readings newer than the watermark, newest first, plus sensor metadata."""
        ...

    @property
    def source(self) -> str:
        """Label for the decoder: 'local' or 'web_oop'."""
        ...
