"""Tests for the local and web OOP Libre decoders."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from cgm.domains.libre.connectors import LibreDecoder
from cgm.domains.libre.connectors.local import LocalLibreDecoder
from cgm.domains.libre.connectors.web_oop import WebOOPDecoder
from cgm.domains.libre.domain_logic.libre_parser import InvalidInputLength


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class TestLocalDecoder:
    def test_satisfies_protocol(self):
        assert isinstance(LocalLibreDecoder(multiplier=1.0), LibreDecoder)

    def test_source(self):
        assert LocalLibreDecoder(multiplier=1.0).source == "local"

    def test_decodes_with_multiplier(self, make_block, epoch):
        decoder = LocalLibreDecoder(multiplier=2.0)
        result = _run(decoder.decode(make_block(trend_index=5, trend={4: 100}), epoch))
        assert [r.glucose_level_raw for r in result.glucose_data] == [200.0]

    def test_ignores_web_only_arguments(self, make_block, epoch):
        decoder = LocalLibreDecoder(multiplier=1.0)
        result = _run(decoder.decode(
            make_block(trend_index=5, trend={4: 100}),
            epoch,
            serial_number="0M0008B8CSR",
            patch_info="9d0830",
        ))
        assert len(result.glucose_data) == 1

    def test_short_block_raises(self, epoch):
        with pytest.raises(InvalidInputLength):
            _run(LocalLibreDecoder(multiplier=1.0).decode(bytes(100), epoch))


class TestWebOOPDecoder:
    def test_satisfies_protocol(self, oop_client):
        assert isinstance(WebOOPDecoder(oop_client), LibreDecoder)

    def test_source(self, oop_client):
        assert WebOOPDecoder(oop_client).source == "web_oop"

    def test_returns_remote_readings(self, oop_client, epoch):
        result = _run(WebOOPDecoder(oop_client).decode(
            bytes(344), epoch, serial_number="0M0008B8CSR"
        ))
        assert [r.glucose_level_raw for r in result.glucose_data] == [118.0, 114.0, 110.0]

    def test_drops_readings_at_or_before_watermark(self, oop_client):
        # Remote readings are at 12:00, 11:55 and 11:50.
        watermark = datetime(2026, 3, 1, 11, 55, tzinfo=timezone.utc) - timedelta(seconds=30)
        result = _run(WebOOPDecoder(oop_client).decode(
            bytes(344), watermark, serial_number="0M0008B8CSR"
        ))
        assert [r.glucose_level_raw for r in result.glucose_data] == [118.0]

    def test_naive_watermark_taken_as_utc(self, oop_client, mock_mcp_client):
        watermark = datetime(2026, 3, 1, 11, 54, 30)
        result = _run(WebOOPDecoder(oop_client).decode(
            bytes(344), watermark, serial_number="0M0008B8CSR"
        ))
        assert [r.glucose_level_raw for r in result.glucose_data] == [118.0]
        sent = mock_mcp_client.calls[-1][1]
        assert sent["last_reading_timestamp"] == "2026-03-01T11:54:30+00:00"

    def test_short_block_not_sent(self, oop_client, mock_mcp_client, epoch):
        with pytest.raises(InvalidInputLength):
            _run(WebOOPDecoder(oop_client).decode(
                bytes(343), epoch, serial_number="0M0008B8CSR"
            ))
        assert mock_mcp_client.calls == []

    def test_serial_number_required(self, oop_client, mock_mcp_client, epoch):
        with pytest.raises(ValueError, match="serial number"):
            _run(WebOOPDecoder(oop_client).decode(bytes(344), epoch))
        assert mock_mcp_client.calls == []
