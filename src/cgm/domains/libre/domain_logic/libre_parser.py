"""Libre 344-byte block parser.

Decodes the trend (16 x 1 min) and history (32 x 15 min) ring buffers of a
Libre memory dump into glucose readings with absolute timestamps.

Slots are walked backward from each buffer's write index. Slot age is
converted to an absolute time via the sensor age at offset 316/317 and a
single ``now`` sampled at call entry. Readings not newer than the
watermark (+30 s) end the walk; the rest are thinned to a ~5 minute
cadence shared across both buffers.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from cgm.domains.libre.domain_logic.block_models import (
    BLOCK_LENGTH,
    HISTORY_BUFFER,
    MIN_READING_SPACING,
    RAW_CODE_MASK,
    SENSOR_AGE_HIGH_OFFSET,
    SENSOR_AGE_LOW_OFFSET,
    SPACING_SENTINEL_OFFSET,
    STATE_OFFSET,
    TREND_BUFFER,
    WATERMARK_MARGIN,
    BlockHeader,
    GlucoseData,
    LibreParseResult,
    RingBufferLayout,
)
from cgm.domains.libre.domain_logic.sensor_state import LibreSensorState

logger = logging.getLogger(__name__)


class InvalidInputLength(ValueError):
    """Raised when a block is too short to hold the full Libre layout."""

    def __init__(self, length: int, expected: int = BLOCK_LENGTH) -> None:
        super().__init__(
            f"Libre block must be at least {expected} bytes, got {length}"
        )
        self.length = length
        self.expected = expected


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def validate_block(block: bytes) -> None:
    """Reject blocks shorter than the Libre layout before any field access."""
    if len(block) < BLOCK_LENGTH:
        raise InvalidInputLength(len(block))


def raw_to_value(raw_code: int, multiplier: float) -> float:
    """Scale a raw sensor code to a glucose value."""
    return raw_code * multiplier


def read_raw_code(block: bytes, position: int) -> int:
    """Read the 13-bit code whose low byte is at ``position``."""
    return (256 * (block[position + 1] & 0xFF) + (block[position] & 0xFF)) & RAW_CODE_MASK


def read_block_header(block: bytes) -> BlockHeader:
    """Read write indices, sensor state and sensor age from a block.

    Raises:
        InvalidInputLength: If the block is shorter than 344 bytes.
    """
    validate_block(block)
    return BlockHeader(
        trend_index=block[TREND_BUFFER.index_offset] & 0xFF,
        history_index=block[HISTORY_BUFFER.index_offset] & 0xFF,
        sensor_state=LibreSensorState.from_state_byte(block[STATE_OFFSET]),
        sensor_time_in_minutes=(
            256 * (block[SENSOR_AGE_HIGH_OFFSET] & 0xFF)
            + (block[SENSOR_AGE_LOW_OFFSET] & 0xFF)
        ),
    )


def _walk_ring_buffer(
    block: bytes,
    layout: RingBufferLayout,
    *,
    write_index: int,
    sensor_minutes: int,
    sensor_start: datetime,
    not_after: datetime,
    last_accepted: datetime,
    multiplier: float,
) -> tuple[list[GlucoseData], datetime]:
    """Walk one ring buffer newest-to-oldest.

    Returns the accepted readings and the updated ``last_accepted``
    timestamp, which the next walk continues from.
    """
    readings: list[GlucoseData] = []

    for index in range(layout.slot_count):
        slot = layout.slot_for(write_index, index)
        minutes = layout.minutes_since_start(sensor_minutes, index)
        timestamp = sensor_start + timedelta(minutes=minutes)

        # Timestamps never increase with index, so nothing older can qualify.
        if timestamp <= not_after:
            break

        if timestamp >= last_accepted - MIN_READING_SPACING:
            continue

        raw_code = read_raw_code(block, layout.sample_position(slot))
        if raw_code > 0:
            readings.append(
                GlucoseData(
                    timestamp=timestamp,
                    glucose_level_raw=raw_to_value(raw_code, multiplier),
                )
            )
            last_accepted = timestamp

    return readings, last_accepted


def parse_libre_block(
    block: bytes,
    last_reading_timestamp: datetime,
    *,
    multiplier: float,
    now: datetime | None = None,
) -> LibreParseResult:
    """Decode a Libre 344-byte block.

    Naive ``last_reading_timestamp`` and ``now`` values are taken as UTC.

    Args:
        block: The raw memory dump (at least 344 bytes; extra bytes ignored).
        last_reading_timestamp: Watermark. Only readings more than 30 seconds
            newer than this are returned.
        multiplier: Raw code to glucose value scale factor.
        now: Reference wall-clock time. Sampled once when omitted.

    Returns:
        A ``LibreParseResult`` whose readings are newest first.

    Raises:
        InvalidInputLength: If the block is shorter than 344 bytes.
    """
    header = read_block_header(block)
    now = datetime.now(timezone.utc) if now is None else as_utc(now)

    sensor_start = now - timedelta(minutes=header.sensor_time_in_minutes)
    not_after = as_utc(last_reading_timestamp) + WATERMARK_MARGIN
    last_accepted = now + SPACING_SENTINEL_OFFSET

    logger.debug(
        "Libre block: state=%s age=%d min trend_index=%d history_index=%d",
        header.sensor_state.name,
        header.sensor_time_in_minutes,
        header.trend_index,
        header.history_index,
    )

    glucose_data: list[GlucoseData] = []
    for layout in (TREND_BUFFER, HISTORY_BUFFER):
        readings, last_accepted = _walk_ring_buffer(
            block,
            layout,
            write_index=header.write_index(layout),
            sensor_minutes=header.sensor_time_in_minutes,
            sensor_start=sensor_start,
            not_after=not_after,
            last_accepted=last_accepted,
            multiplier=multiplier,
        )
        logger.debug("Accepted %d %s readings", len(readings), layout.name)
        glucose_data.extend(readings)

    return LibreParseResult(
        glucose_data=tuple(glucose_data),
        sensor_state=header.sensor_state,
        sensor_time_in_minutes=header.sensor_time_in_minutes,
    )
