"""MCP tools for decoding Libre 344-byte blocks.

Blocks arrive hex-encoded. The caller keeps the watermark: pass the
``last_reading_timestamp`` returned by the previous call to receive only
newer readings.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from cgm.domains.libre.connectors.processor import LibreDataProcessor

from cgm.core.oop.models import parse_timestamp
from cgm.domains.libre.domain_logic.libre_parser import read_block_header

logger = logging.getLogger(__name__)

# Watermark used when the caller has never received a reading.
_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def _parse_block_hex(value: str) -> bytes:
    """Decode a hex string, tolerating whitespace and an optional 0x prefix."""
    cleaned = "".join(value.split())
    if cleaned[:2].lower() == "0x":
        cleaned = cleaned[2:]
    try:
        return bytes.fromhex(cleaned)
    except ValueError as exc:
        raise ValueError(f"block_hex is not valid hexadecimal: {exc}") from exc


def _parse_watermark(value: str) -> datetime:
    if not value:
        return _EPOCH
    try:
        return parse_timestamp(value)
    except ValueError as exc:
        raise ValueError(
            f"last_reading_timestamp must be ISO 8601 (got {value!r})"
        ) from exc


def _error(message: str) -> str:
    return json.dumps({"status": "error", "message": message})


def register_libre_tools(
    mcp: FastMCP,
    processor: LibreDataProcessor,
) -> None:
    """Register Libre decoding tools on the MCP server."""

    @mcp.tool
    async def decode_libre_block(
        ctx: Context,
        block_hex: str,
        last_reading_timestamp: str = "",
        serial_number: str = "",
        patch_info: str = "",
    ) -> str:
        """Decode a Libre 344-byte memory block into glucose readings.

        Returns readings newest first, the sensor state and age, and the
        ``last_reading_timestamp`` to pass on the next call.

        Args:
            block_hex: The 344-byte block, hex-encoded.
            last_reading_timestamp: ISO 8601 timestamp of the newest reading
                already received. Empty returns everything in the block.
            serial_number: Sensor serial number (required for web OOP decoding).
            patch_info: Sensor patch info, hex string (web OOP only).
        """
        try:
            block = _parse_block_hex(block_hex)
            watermark = _parse_watermark(last_reading_timestamp)
            outcome = await processor.process(
                block,
                watermark,
                serial_number=serial_number or None,
                patch_info=patch_info or None,
            )
        except ValueError as exc:
            # InvalidInputLength included
            logger.info("Rejected Libre block: %s", exc)
            return _error(str(exc))

        return json.dumps(outcome.as_dict(), indent=2)

    @mcp.tool
    async def libre_sensor_info(
        ctx: Context,
        block_hex: str,
    ) -> str:
        """Read sensor state and age from a Libre block without decoding readings.

        Args:
            block_hex: The 344-byte block, hex-encoded.
        """
        try:
            header = read_block_header(_parse_block_hex(block_hex))
        except ValueError as exc:
            return _error(str(exc))

        minutes = header.sensor_time_in_minutes
        days, remainder = divmod(minutes, 24 * 60)
        hours, mins = divmod(remainder, 60)
        return json.dumps({
            "status": "ok",
            "sensor_state": header.sensor_state.name.lower(),
            "sensor_state_description": header.sensor_state.description,
            "is_reading": header.sensor_state.is_reading,
            "sensor_time_in_minutes": minutes,
            "sensor_age": {"days": days, "hours": hours, "minutes": mins},
            "trend_index": header.trend_index,
            "history_index": header.history_index,
        }, indent=2)
