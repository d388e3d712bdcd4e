"""Response models for the web OOP (out-of-process) Libre decoder."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from cgm.domains.libre.domain_logic.block_models import GlucoseData, LibreParseResult
from cgm.domains.libre.domain_logic.sensor_state import LibreSensorState


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp; naive values are taken as UTC."""
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _state_from_payload(value: object) -> LibreSensorState:
    """Accept either the firmware byte code or the state name."""
    if isinstance(value, bool):
        return LibreSensorState.UNKNOWN
    if isinstance(value, int):
        return LibreSensorState.from_state_byte(value)
    if isinstance(value, str):
        try:
            return LibreSensorState[value.strip().upper()]
        except KeyError:
            return LibreSensorState.UNKNOWN
    return LibreSensorState.UNKNOWN


@dataclass
class OOPEnvelope:
    """Full response envelope from a ``libre_oop_decode`` call."""

    status: str
    glucose_data: list[dict] = field(default_factory=list)
    sensor_state: object = None
    sensor_time_in_minutes: int = 0
    error: object = None

    @classmethod
    def from_dict(cls, data: dict) -> OOPEnvelope:
        """Parse a raw dict response from the MCP tool call."""
        return cls(
            status=data.get("status", "unknown"),
            glucose_data=data.get("glucose_data") or [],
            sensor_state=data.get("sensor_state"),
            sensor_time_in_minutes=int(data.get("sensor_time_in_minutes") or 0),
            error=data.get("error"),
        )

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    def as_parse_result(self) -> LibreParseResult:
        """Convert to the same result shape the local parser produces.

        Readings are returned newest first regardless of server order.

        Raises:
            KeyError, TypeError, ValueError: If a reading is malformed.
        """
        readings = [
            GlucoseData(
                timestamp=parse_timestamp(item["timestamp"]),
                glucose_level_raw=float(item["value"]),
            )
            for item in self.glucose_data
        ]
        readings.sort(key=lambda r: r.timestamp, reverse=True)
        return LibreParseResult(
            glucose_data=tuple(readings),
            sensor_state=_state_from_payload(self.sensor_state),
            sensor_time_in_minutes=self.sensor_time_in_minutes,
        )
