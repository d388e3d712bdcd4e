"""Libre block processing — picks a decoder, decodes, and reports the outcome.

Web OOP decoding is used only when it is enabled and its prerequisites
(a configured web decoder and the sensor serial number) are present.
Otherwise the block is parsed locally. A web OOP failure is reported as an
error outcome; it is never retried locally.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from cgm.core.oop.client import LibreOOPError
from cgm.domains.libre.connectors import LibreDecoder
from cgm.domains.libre.domain_logic.block_models import GlucoseData, LibreParseResult
from cgm.domains.libre.domain_logic.sensor_state import LibreSensorState

logger = logging.getLogger(__name__)

WEB_OOP_ERROR_PREFIX = "Web OOP : "


@runtime_checkable
class CGMTransmitterDelegate(Protocol):
    """Receiver for processed blocks. Called exactly once per block."""

    def cgm_transmitter_info_received(
        self,
        glucose_data: tuple[GlucoseData, ...],
        transmitter_info: Mapping[str, Any] | None,
        sensor_time_in_minutes: int,
    ) -> None:
        ...

    def error(self, message: str) -> None:
        ...


@dataclass(frozen=True)
class DecodeOutcome:
    """Result of processing one block: readings and metadata, or an error."""

    source: str
    glucose_data: tuple[GlucoseData, ...] = ()
    sensor_state: LibreSensorState | None = None
    sensor_time_in_minutes: int | None = None
    error: str | None = None

    @classmethod
    def from_result(cls, result: LibreParseResult, source: str) -> DecodeOutcome:
        return cls(
            source=source,
            glucose_data=result.glucose_data,
            sensor_state=result.sensor_state,
            sensor_time_in_minutes=result.sensor_time_in_minutes,
        )

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def last_reading_timestamp(self) -> datetime | None:
        """Timestamp to use as the next watermark, if any reading was produced."""
        return self.glucose_data[0].timestamp if self.glucose_data else None

    def as_dict(self) -> dict[str, Any]:
        if not self.ok:
            return {"status": "error", "source": self.source, "message": self.error}
        watermark = self.last_reading_timestamp
        return {
            "status": "ok",
            "source": self.source,
            "readings": [r.as_dict() for r in self.glucose_data],
            "reading_count": len(self.glucose_data),
            "sensor_state": self.sensor_state.name.lower() if self.sensor_state else None,
            "sensor_state_description": (
                self.sensor_state.description if self.sensor_state else None
            ),
            "sensor_time_in_minutes": self.sensor_time_in_minutes,
            "last_reading_timestamp": watermark.isoformat() if watermark else None,
        }


class LibreDataProcessor:
    """Routes a block to the web OOP or local decoder.

    Usage::

        processor = LibreDataProcessor(
            LocalLibreDecoder(multiplier=117.64705),
            web_decoder=WebOOPDecoder(oop_client),
            web_oop_enabled=True,
        )
        outcome = await processor.process(block, last_reading, serial_number=serial)
        if outcome.last_reading_timestamp:
            last_reading = outcome.last_reading_timestamp
    """

    def __init__(
        self,
        local_decoder: LibreDecoder,
        *,
        web_decoder: LibreDecoder | None = None,
        web_oop_enabled: bool = False,
        delegate: CGMTransmitterDelegate | None = None,
    ) -> None:
        self._local = local_decoder
        self._web = web_decoder
        self._web_oop_enabled = web_oop_enabled
        self._delegate = delegate

    @property
    def web_oop_available(self) -> bool:
        """Whether web OOP is enabled and configured (serial number aside)."""
        return self._web_oop_enabled and self._web is not None

    @property
    def mode(self) -> str:
        return "web_oop" if self.web_oop_available else "local"

    async def process(
        self,
        block: bytes,
        last_reading_timestamp: datetime,
        *,
        serial_number: str | None = None,
        patch_info: str | None = None,
        transmitter_info: Mapping[str, Any] | None = None,
    ) -> DecodeOutcome:
        """Decode ``block`` and notify the delegate once.

        Raises:
            InvalidInputLength: If the block is shorter than 344 bytes.
        """
        if self.web_oop_available and serial_number:
            decoder = self._web
        else:
            if self._web_oop_enabled:
                logger.info(
                    "Web OOP enabled but %s missing; decoding locally",
                    "serial number" if self._web is not None else "site/token",
                )
            decoder = self._local

        logger.debug("Decoding Libre block with %s decoder", decoder.source)
        try:
            result = await decoder.decode(
                block,
                last_reading_timestamp,
                serial_number=serial_number,
                patch_info=patch_info,
            )
        except LibreOOPError as exc:
            logger.warning("Web OOP decoding failed: %s", exc)
            outcome = DecodeOutcome(
                source=decoder.source, error=f"{WEB_OOP_ERROR_PREFIX}{exc}"
            )
            if self._delegate is not None:
                self._delegate.error(outcome.error)
            return outcome

        outcome = DecodeOutcome.from_result(result, decoder.source)
        logger.info(
            "Decoded %d new readings (%s, sensor %s, %d min)",
            len(outcome.glucose_data),
            outcome.source,
            result.sensor_state.name,
            result.sensor_time_in_minutes,
        )
        if self._delegate is not None:
            self._delegate.cgm_transmitter_info_received(
                outcome.glucose_data,
                transmitter_info,
                result.sensor_time_in_minutes,
            )
        return outcome
