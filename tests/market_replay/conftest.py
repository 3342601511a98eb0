"""
Shared fixtures for market replay tests.
"""

import pytest

from market_replay.transport.mock import MockConfig, MockRawTransport
from replay_data import BASE_MINUTE, build_shard


@pytest.fixture
def mock_transport() -> MockRawTransport:
    """Two exchanges, three minutes each."""
    transport = MockRawTransport(MockConfig())
    for offset in range(3):
        minute = BASE_MINUTE + offset
        transport.add_shard("bitmex", minute, build_shard("bitmex", minute))
        transport.add_shard("bitflyer", minute, build_shard("bitflyer", minute, trades=2))
    return transport
