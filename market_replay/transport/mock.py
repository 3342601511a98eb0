"""
Mock Raw Transport - In-memory shards for tests and offline runs.

FEATURES:
- Shards keyed by (exchange, minute)
- Channel filtering of message lines
- Schema lines kept for ranges starting mid-minute
- Configurable latency
- Per-shard error injection
- Fetch tracking
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from market_replay.exceptions import TransportError
from market_replay.models import LineType, RawLine, minute_of
from market_replay.transport.base import BaseRawTransport


logger = logging.getLogger(__name__)


@dataclass
class MockConfig:
    """Configuration for the mock transport."""

    latency_seconds: float = 0.0
    """Delay before every shard is returned."""

    failures: dict[tuple[str, int], Exception] = field(default_factory=dict)
    """Errors raised when fetching the given (exchange, minute) shard."""

    blocked: set[tuple[str, int]] = field(default_factory=set)
    """Shards whose fetch never completes."""


class MockRawTransport(BaseRawTransport):
    """In-memory raw transport."""

    def __init__(self, config: Optional[MockConfig] = None) -> None:
        self._config = config or MockConfig()
        self._shards: dict[tuple[str, int], list[RawLine]] = {}
        self.fetched: list[tuple[str, int]] = []

    @property
    def name(self) -> str:
        """Unique identifier."""
        return "mock"

    @property
    def config(self) -> MockConfig:
        """Mock configuration."""
        return self._config

    def add_shard(self, exchange: str, minute: int, lines: list[RawLine]) -> None:
        """Register the lines of one shard, replacing any previous ones."""
        for line in lines:
            if line.exchange != exchange:
                raise ValueError(f"Line of {line.exchange} added to {exchange} shard")
        self._shards[(exchange, minute)] = list(lines)

    def add_lines(self, lines: list[RawLine]) -> None:
        """Append lines to the shards their timestamps fall in."""
        for line in lines:
            self._shards.setdefault((line.exchange, minute_of(line.timestamp)), []).append(line)

    async def fetch_shard(
        self,
        exchange: str,
        channels: list[str],
        minute: int,
        start: int,
        end: int,
        format: str,
    ) -> list[RawLine]:
        key = (exchange, minute)
        self.fetched.append(key)

        if self._config.latency_seconds:
            await asyncio.sleep(self._config.latency_seconds)
        if key in self._config.blocked:
            await asyncio.Event().wait()
        if key in self._config.failures:
            raise self._config.failures[key]

        lines = _select(self._shards.get(key, []), set(channels), start, end)
        logger.debug(f"[{self.name}] Shard {exchange}/{minute}: {len(lines)} lines")
        return lines


def _select(shard: list[RawLine], wanted: set[str], start: int, end: int) -> list[RawLine]:
    """
    Lines of a shard inside [start, end) for the wanted channels.

    A range may begin partway through the minute. Lines before `start`
    that carry schema state are still delivered: the START line and the
    definition (first message per channel after it).
    """
    selected: list[RawLine] = []
    defined: set[str] = set()
    for line in shard:
        if line.timestamp >= end:
            continue
        if line.type is LineType.MESSAGE and line.channel not in wanted:
            continue
        if line.type is LineType.START:
            defined.clear()
            keep = True
        elif line.type is LineType.MESSAGE:
            keep = line.timestamp >= start or line.channel not in defined
            defined.add(line.channel)
        else:
            keep = line.timestamp >= start
        if keep:
            selected.append(line)
    return selected


def failing_shard(message: str = "Injected failure", status_code: Optional[int] = 500) -> TransportError:
    """Build a TransportError suitable for MockConfig.failures."""
    return TransportError(message=message, status_code=status_code)
