"""
Replay Client - Entry point binding configuration and a transport.

Quick Start:
    async with ReplayClient(ClientConfig.from_env()) as client:
        request = client.replay(
            {"bitmex": ["orderBookL2", "trade"]},
            start=datetime(2020, 1, 1, tzinfo=timezone.utc),
            end=datetime(2020, 1, 1, 0, 10, tzinfo=timezone.utc),
        )
        for line in await request.download():
            print(line.exchange, line.channel, line.message)
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Optional

from market_replay.config import ClientConfig
from market_replay.request import Instant, ReplayRequest, ReplayRequestParams
from market_replay.transport.base import BaseRawTransport
from market_replay.transport.http import HttpRawTransport


logger = logging.getLogger(__name__)


class ReplayClient:
    """
    Client for the replay service.

    Uses an HttpRawTransport built from the config unless a transport is
    given. Closing the client closes the transport.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        transport: Optional[BaseRawTransport] = None,
    ) -> None:
        self._config = config or ClientConfig()
        self._transport = transport or HttpRawTransport(self._config)
        logger.debug(f"[client] Using {self._transport.name} transport: {self._config.to_dict()}")

    @property
    def config(self) -> ClientConfig:
        """Client configuration."""
        return self._config

    @property
    def transport(self) -> BaseRawTransport:
        """Raw transport used by requests of this client."""
        return self._transport

    def replay(
        self,
        filter: Mapping[str, Iterable[str]],
        start: Instant,
        end: Instant,
    ) -> ReplayRequest:
        """
        Create a replay request.

        Args:
            filter: Exchanges and the channels to filter-in for each
            start: Range start (inclusive)
            end: Range end (exclusive)

        Raises:
            ValidationError: If start >= end or the filter is invalid
        """
        return ReplayRequest(self._transport, filter, start, end, self._config)

    def replay_params(self, params: ReplayRequestParams) -> ReplayRequest:
        """Same as replay(), from a parameter object."""
        return ReplayRequest.from_params(self._transport, params, self._config)

    async def close(self) -> None:
        """Close the underlying transport."""
        await self._transport.close()

    async def __aenter__(self) -> "ReplayClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


def replay(
    filter: Mapping[str, Iterable[str]],
    start: Instant,
    end: Instant,
    config: Optional[ClientConfig] = None,
) -> ReplayRequest:
    """
    Create a replay request on a new client.

    The request owns the new client's transport; release it with
    `await request.transport.close()` when done. Prefer ReplayClient when
    making several requests.
    """
    return ReplayClient(config).replay(filter, start, end)
