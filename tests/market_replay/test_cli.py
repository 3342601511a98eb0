"""
Command Line Tests.
"""

import argparse
import json
from datetime import datetime, timezone

import pytest

from market_replay import ReplayRequest
from market_replay.__main__ import main, parse_exchange, parse_instant, run
from market_replay.models import NANOSECONDS_PER_MINUTE
from replay_data import BASE_NS


class TestArguments:
    """Tests for argument parsing helpers."""

    def test_parse_exchange(self):
        """Test EXCHANGE:CHANNEL,CHANNEL parsing."""
        assert parse_exchange("bitmex:orderBookL2,trade") == ("bitmex", ["orderBookL2", "trade"])

    @pytest.mark.parametrize("value", ["bitmex", "bitmex:", ":trade", "bitmex:,"])
    def test_parse_exchange_invalid(self, value):
        """Test that incomplete exchange arguments are rejected."""
        with pytest.raises(argparse.ArgumentTypeError):
            parse_exchange(value)

    def test_parse_instant(self):
        """Test ISO 8601 parsing with and without an offset."""
        expected = datetime(2020, 1, 1, 0, 5, tzinfo=timezone.utc)

        assert parse_instant("2020-01-01T00:05:00Z") == expected
        assert parse_instant("2020-01-01T00:05:00") == expected
        assert parse_instant("2020-01-01T01:05:00+01:00") == expected

    def test_parse_instant_invalid(self):
        """Test that garbage instants are rejected."""
        with pytest.raises(argparse.ArgumentTypeError):
            parse_instant("yesterday")


class TestRun:
    """Tests for printing replayed lines."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("stream", [False, True])
    async def test_prints_json_lines(self, mock_transport, capsys, stream):
        """Test that each typed line becomes one JSON object."""
        request = ReplayRequest(
            mock_transport, {"bitmex": ["trade"]}, BASE_NS, BASE_NS + NANOSECONDS_PER_MINUTE
        )

        count = await run(request, stream=stream, concurrency=2, buffer_size=1)

        rows = [json.loads(row) for row in capsys.readouterr().out.splitlines()]
        assert count == len(rows) == 4
        assert rows[0]["type"] == "start"
        assert rows[0]["message"] == "wss://bitmex/realtime"
        assert rows[1]["message"]["size"] == 10
        assert rows[1]["definition"]["size"] == "int"

    def test_invalid_range_exits_with_error(self, monkeypatch):
        """Test that a rejected request gives exit code 1."""
        monkeypatch.delenv("REPLAY_BASE_URL", raising=False)

        code = main([
            "--exchange", "bitmex:trade",
            "--start", "2020-01-01T00:05:00Z",
            "--end", "2020-01-01T00:00:00Z",
        ])

        assert code == 1

    def test_missing_exchange(self):
        """Test that argparse rejects a missing --exchange."""
        with pytest.raises(SystemExit):
            main(["--start", "2020-01-01T00:00:00Z", "--end", "2020-01-01T00:05:00Z"])
