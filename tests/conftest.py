"""Shared test fixtures for CGM Libre bridge tests."""

from __future__ import annotations

import json
import sys
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WEB_OOP_ENABLED", "false")
    monkeypatch.setenv("OOP_WEB_SITE", "")
    monkeypatch.setenv("OOP_WEB_TOKEN", "")
    monkeypatch.delenv("LIBRE_MULTIPLIER", raising=False)
    monkeypatch.delenv("CGM_HOST", raising=False)
    monkeypatch.delenv("CGM_TRANSPORT", raising=False)
    monkeypatch.delenv("CGM_PORT", raising=False)
    monkeypatch.delenv("CGM_ALLOW_INSECURE_BIND", raising=False)

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))


# ---------------------------------------------------------------------------
# Libre block builder
# ---------------------------------------------------------------------------

# Fixed reference "now" so reconstructed timestamps are deterministic.
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


def build_libre_block(
    *,
    state: int = 0x03,
    sensor_minutes: int = 1000,
    trend_index: int = 0,
    history_index: int = 0,
    trend: Mapping[int, int] | None = None,
    history: Mapping[int, int] | None = None,
    length: int = 344,
) -> bytes:
    """Build a Libre block with raw codes written into the given slots.

    ``trend`` and ``history`` map slot number to the 16-bit value stored
    at that slot (low byte first).
    """
    block = bytearray(length)
    block[4] = state
    block[26] = trend_index
    block[27] = history_index
    block[316] = sensor_minutes & 0xFF
    block[317] = (sensor_minutes >> 8) & 0xFF
    for slot, code in (trend or {}).items():
        block[slot * 6 + 28] = code & 0xFF
        block[slot * 6 + 29] = (code >> 8) & 0xFF
    for slot, code in (history or {}).items():
        block[slot * 6 + 124] = code & 0xFF
        block[slot * 6 + 125] = (code >> 8) & 0xFF
    return bytes(block)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def epoch() -> datetime:
    return EPOCH


@pytest.fixture
def make_block() -> Callable[..., bytes]:
    return build_libre_block


@pytest.fixture
def full_block() -> bytes:
    """Every trend and history slot holds a distinct non-zero code."""
    return build_libre_block(
        trend={slot: 100 + slot for slot in range(16)},
        history={slot: 200 + slot for slot in range(32)},
    )


# ---------------------------------------------------------------------------
# Mock web OOP transport
# ---------------------------------------------------------------------------

OOP_SUCCESS_RESPONSE: dict[str, Any] = {
    "status": "ok",
    "glucose_data": [
        {"timestamp": "2026-03-01T11:50:00+00:00", "value": 110.0},
        {"timestamp": "2026-03-01T12:00:00+00:00", "value": 118.0},
        {"timestamp": "2026-03-01T11:55:00+00:00", "value": 114.0},
    ],
    "sensor_state": 3,
    "sensor_time_in_minutes": 1000,
}


@dataclass
class _TextBlock:
    """Mimics fastmcp content block structure."""

    type: str
    text: str


class MockMCPClient:
    """Mock fastmcp.Client that returns canned web OOP responses."""

    def __init__(self, responses: dict[str, Any] | None = None) -> None:
        self.responses: dict[str, Any] = responses or {
            "libre_oop_decode": OOP_SUCCESS_RESPONSE,
            "health_check": {"status": "ok"},
        }
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._raise_on_call: Exception | None = None
        self.raw_response: Any = None

    def raise_on_call(self, exc: Exception) -> None:
        self._raise_on_call = exc

    async def call_tool(self, tool_name: str, arguments: dict[str, Any]) -> Any:
        self.calls.append((tool_name, arguments))
        if self._raise_on_call:
            raise self._raise_on_call
        if self.raw_response is not None:
            return self.raw_response
        payload = self.responses.get(tool_name, {"status": "error", "error": "Unknown tool"})
        return [_TextBlock(type="text", text=json.dumps(payload))]

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        pass


@pytest.fixture
def mock_mcp_client() -> MockMCPClient:
    return MockMCPClient()


@pytest.fixture
def oop_client(mock_mcp_client: MockMCPClient):
    """LibreOOPClient backed by MockMCPClient."""
    from cgm.core.oop.client import LibreOOPClient

    return LibreOOPClient(mock_mcp_client)


class RecordingDelegate:
    """CGMTransmitterDelegate that records every notification."""

    def __init__(self) -> None:
        self.received: list[tuple[Any, Any, int]] = []
        self.errors: list[str] = []

    def cgm_transmitter_info_received(self, glucose_data, transmitter_info, sensor_time_in_minutes):
        self.received.append((glucose_data, transmitter_info, sensor_time_in_minutes))

    def error(self, message):
        self.errors.append(message)


@pytest.fixture
def delegate() -> RecordingDelegate:
    return RecordingDelegate()
