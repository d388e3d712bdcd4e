"""Libre 344-byte block layout constants and decoded result types."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from cgm.domains.libre.domain_logic.sensor_state import LibreSensorState


# ---------------------------------------------------------------------------
# Block layout (0-based byte offsets)
# ---------------------------------------------------------------------------

BLOCK_LENGTH = 344

STATE_OFFSET = 4
TREND_INDEX_OFFSET = 26
HISTORY_INDEX_OFFSET = 27
SENSOR_AGE_LOW_OFFSET = 316
SENSOR_AGE_HIGH_OFFSET = 317

SLOT_SIZE = 6
RAW_CODE_MASK = 0x1FFF   # 13-bit glucose code

# ---------------------------------------------------------------------------
# Watermark and spacing rules
# ---------------------------------------------------------------------------

# A new reading must be more than this much younger than the watermark.
WATERMARK_MARGIN = timedelta(seconds=30)
# Emitted readings are at least (5 min - 10 s) apart.
MIN_READING_SPACING = timedelta(minutes=5) - timedelta(seconds=10)
# Initial "last accepted" sentinel, relative to now.
SPACING_SENTINEL_OFFSET = timedelta(minutes=5)


# ---------------------------------------------------------------------------
# Ring buffer descriptors
# ---------------------------------------------------------------------------

def _trend_minutes(sensor_minutes: int, index: int) -> int:
    """Trend ring: one slot per minute."""
    return max(0, sensor_minutes - index)


def _history_minutes(sensor_minutes: int, index: int) -> int:
    """History ring: one slot per 15 minutes.

    The 3-minute phase and floor-to-15 follow the sensor firmware's
    history-bucket alignment and must stay exactly as written.
    """
    return max(0, (abs(sensor_minutes - 3) // 15) * 15 - index * 15)


@dataclass(frozen=True)
class RingBufferLayout:
    """Where a ring buffer lives inside the block and how its slots map to time."""

    name: str
    index_offset: int           # byte holding the current write index
    sample_offset: int          # low byte of slot 0
    slot_count: int
    minutes_since_start: Callable[[int, int], int]
    slot_size: int = SLOT_SIZE

    def slot_for(self, write_index: int, index: int) -> int:
        """Slot holding the reading ``index`` steps behind the write position."""
        return (write_index - index - 1) % self.slot_count

    def sample_position(self, slot: int) -> int:
        """Offset of the low byte of ``slot``; the high byte follows it."""
        return slot * self.slot_size + self.sample_offset


TREND_BUFFER = RingBufferLayout(
    name="trend",
    index_offset=TREND_INDEX_OFFSET,
    sample_offset=28,
    slot_count=16,
    minutes_since_start=_trend_minutes,
)

HISTORY_BUFFER = RingBufferLayout(
    name="history",
    index_offset=HISTORY_INDEX_OFFSET,
    sample_offset=124,
    slot_count=32,
    minutes_since_start=_history_minutes,
)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GlucoseData:
    """One decoded glucose reading."""

    timestamp: datetime
    glucose_level_raw: float     # raw code x multiplier

    def as_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "value": self.glucose_level_raw,
        }


@dataclass(frozen=True)
class BlockHeader:
    """Scalar fields read once per block."""

    trend_index: int
    history_index: int
    sensor_state: LibreSensorState
    sensor_time_in_minutes: int

    def write_index(self, layout: RingBufferLayout) -> int:
        if layout.name == TREND_BUFFER.name:
            return self.trend_index
        return self.history_index


@dataclass(frozen=True)
class LibreParseResult:
    """Decoded readings (newest first) plus sensor metadata."""

    glucose_data: tuple[GlucoseData, ...]
    sensor_state: LibreSensorState
    sensor_time_in_minutes: int

    @property
    def latest(self) -> GlucoseData | None:
        return self.glucose_data[0] if self.glucose_data else None
