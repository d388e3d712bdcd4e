"""Libre sensor lifecycle state, decoded from the status byte of a 344-byte block."""

from __future__ import annotations

from enum import Enum


class LibreSensorState(Enum):
    """Lifecycle state reported by the sensor firmware.

    Values are the firmware's status-byte codes. Any byte that is not
    listed maps to ``UNKNOWN``.
    """

    NOT_YET_STARTED = 0x01
    STARTING = 0x02
    READY = 0x03
    EXPIRED = 0x04
    SHUTDOWN = 0x05
    FAILURE = 0x06
    UNKNOWN = 0x00

    @classmethod
    def from_state_byte(cls, state_byte: int) -> LibreSensorState:
        """Map a raw status byte to a state; unmapped codes become UNKNOWN."""
        try:
            return cls(state_byte & 0xFF)
        except ValueError:
            return cls.UNKNOWN

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]

    @property
    def is_reading(self) -> bool:
        """Whether the sensor is in a state that produces glucose values."""
        return self in (LibreSensorState.STARTING, LibreSensorState.READY)


_DESCRIPTIONS = {
    LibreSensorState.NOT_YET_STARTED: "not yet started",
    LibreSensorState.STARTING: "starting",
    LibreSensorState.READY: "ready",
    LibreSensorState.EXPIRED: "expired",
    LibreSensorState.SHUTDOWN: "shut down",
    LibreSensorState.FAILURE: "failure",
    LibreSensorState.UNKNOWN: "unknown",
}
