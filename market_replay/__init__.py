"""
Market Replay Package - Historical market data replay client.

Replays a time-bounded slice of market data recorded across exchanges
and channels, reconstructing every event into a typed line using the
schemas the service streams inline.

Features:
- Eager concurrent download into a list
- Lazy, cancellable, background-buffered streaming
- Per-replay schema state, never shared between replays
- Pluggable raw transports (HTTP, in-memory mock)

Quick Start:
    from market_replay import ReplayClient, ClientConfig

    async def main():
        async with ReplayClient(ClientConfig.from_env()) as client:
            request = client.replay(
                {"bitmex": ["orderBookL2"]},
                start=datetime(2020, 1, 1, tzinfo=timezone.utc),
                end=datetime(2020, 1, 1, 0, 5, tzinfo=timezone.utc),
            )
            async with await request.stream() as lines:
                async for line in lines:
                    print(line.timestamp, line.message)
"""

from market_replay.client import ReplayClient, replay
from market_replay.config import (
    DEFAULT_BUFFER_SIZE,
    DEFAULT_DOWNLOAD_CONCURRENCY,
    ClientConfig,
)
from market_replay.context import ReplayContext
from market_replay.exceptions import (
    ConfigurationError,
    DecodeError,
    RateLimitError,
    ReplayError,
    TransportError,
    ValidationError,
)
from market_replay.iterator import ReplayStreamIterator, TypedLineIterator
from market_replay.models import LineType, RawLine, SchemaDefinition, TypedLine
from market_replay.processor import LineReprocessor
from market_replay.request import ReplayRequest, ReplayRequestParams


__version__ = "1.0.0"

__all__ = [
    # Client
    "ReplayClient",
    "replay",
    "ClientConfig",
    "DEFAULT_BUFFER_SIZE",
    "DEFAULT_DOWNLOAD_CONCURRENCY",

    # Request
    "ReplayRequest",
    "ReplayRequestParams",
    "ReplayContext",
    "TypedLineIterator",
    "ReplayStreamIterator",

    # Models
    "LineType",
    "RawLine",
    "TypedLine",
    "SchemaDefinition",
    "LineReprocessor",

    # Exceptions
    "ReplayError",
    "ValidationError",
    "ConfigurationError",
    "TransportError",
    "RateLimitError",
    "DecodeError",
]
