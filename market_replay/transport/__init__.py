"""
Raw transports for market data replay.

Adding New Transports:
    1. Create class extending BaseRawTransport
    2. Implement: name, fetch_shard(), and close() if it holds resources
    3. Pass it to ReplayClient(transport=...)
"""

from market_replay.transport.base import (
    FORMAT_JSON,
    BaseRawTransport,
    BufferedRawLineIterator,
    RawLineIterator,
    ReplayFilter,
    merge_shards,
    shard_minutes,
)
from market_replay.transport.http import HttpRawTransport, parse_shard
from market_replay.transport.mock import MockConfig, MockRawTransport, failing_shard


__all__ = [
    "FORMAT_JSON",
    "BaseRawTransport",
    "BufferedRawLineIterator",
    "RawLineIterator",
    "ReplayFilter",
    "merge_shards",
    "shard_minutes",
    "HttpRawTransport",
    "parse_shard",
    "MockConfig",
    "MockRawTransport",
    "failing_shard",
]
