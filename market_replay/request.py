"""
Replay Request - Replays market data for a filter and a time range.

There are two ways of reading the response:
- download() fetches the whole range concurrently and returns one list
- stream() returns an iterator yielding line by line while shards are
  buffered in the background

Every call is an independent execution with its own reprocessor and
its own transport session.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union

from market_replay.config import ClientConfig
from market_replay.context import ReplayContext
from market_replay.exceptions import ValidationError
from market_replay.iterator import ReplayStreamIterator, TypedLineIterator
from market_replay.models import TypedLine, to_nanoseconds
from market_replay.processor import LineReprocessor
from market_replay.transport.base import FORMAT_JSON, BaseRawTransport, ReplayFilter


logger = logging.getLogger(__name__)

Instant = Union[datetime, int]


@dataclass
class ReplayRequestParams:
    """Parameters of a new ReplayRequest."""
    # Exchanges and the channels to filter-in for each
    filter: Mapping[str, Iterable[str]] = field(default_factory=dict)
    start: Optional[Instant] = None
    end: Optional[Instant] = None


def copy_filter(filter: Mapping[str, Iterable[str]]) -> ReplayFilter:
    """
    Deep-copy a filter, de-duplicating channels in order.

    Raises:
        ValidationError: If the filter is not a mapping of names to names
    """
    if not isinstance(filter, Mapping):
        raise ValidationError(
            message=f"filter must be a mapping, got {type(filter).__name__}",
            parameter="filter",
        )

    copied: ReplayFilter = {}
    for exchange, channels in filter.items():
        if not isinstance(exchange, str) or not exchange:
            raise ValidationError(
                message=f"exchange must be a non-empty string, got {exchange!r}",
                parameter="filter",
            )
        if isinstance(channels, (str, bytes)) or not isinstance(channels, Iterable):
            raise ValidationError(
                message=f"channels of {exchange} must be a list of names",
                parameter="filter",
            )
        names = list(channels)
        for channel in names:
            if not isinstance(channel, str) or not channel:
                raise ValidationError(
                    message=f"channel of {exchange} must be a non-empty string, got {channel!r}",
                    parameter="filter",
                )
        copied[exchange] = list(dict.fromkeys(names))
    return copied


def _instant(value: Optional[Instant], name: str) -> int:
    if value is None:
        raise ValidationError(message=f"'{name}' is required", parameter=name)
    try:
        return to_nanoseconds(value)
    except TypeError as e:
        raise ValidationError(message=f"'{name}': {e}", parameter=name, original_error=e) from e


class ReplayRequest:
    """Immutable replay of one filter over [start, end)."""

    def __init__(
        self,
        transport: BaseRawTransport,
        filter: Mapping[str, Iterable[str]],
        start: Instant,
        end: Instant,
        config: Optional[ClientConfig] = None,
    ) -> None:
        """
        Raises:
            ValidationError: If start >= end or the filter cannot be copied
        """
        self._transport = transport
        self._config = config or ClientConfig()
        self._filter = copy_filter(filter)
        self._start = _instant(start, "start")
        self._end = _instant(end, "end")
        if self._start >= self._end:
            raise ValidationError(message="'start' >= 'end'", parameter="start")

    @classmethod
    def from_params(
        cls,
        transport: BaseRawTransport,
        params: ReplayRequestParams,
        config: Optional[ClientConfig] = None,
    ) -> "ReplayRequest":
        """Build a request from a parameter object."""
        return cls(transport, params.filter, params.start, params.end, config)

    @property
    def transport(self) -> BaseRawTransport:
        """Raw transport this request fetches through."""
        return self._transport

    @property
    def filter(self) -> ReplayFilter:
        """Copy of the filter."""
        return {exchange: list(channels) for exchange, channels in self._filter.items()}

    @property
    def start(self) -> int:
        """Range start in nanoseconds since epoch (inclusive)."""
        return self._start

    @property
    def end(self) -> int:
        """Range end in nanoseconds since epoch (exclusive)."""
        return self._end

    def __repr__(self) -> str:
        return f"ReplayRequest(filter={self._filter!r}, start={self._start}, end={self._end})"

    # =========================================================
    # DOWNLOAD
    # =========================================================

    async def download(self) -> list[TypedLine]:
        """
        Download the whole range into a list.

        Returns the list only if no error was raised.
        """
        return await self.download_with_context(
            ReplayContext.background(), self._config.download_concurrency
        )

    async def download_with_concurrency(self, concurrency: int) -> list[TypedLine]:
        """Same as download(), with the given shard fetch concurrency."""
        return await self.download_with_context(ReplayContext.background(), concurrency)

    async def download_with_context(
        self,
        ctx: Optional[ReplayContext],
        concurrency: int,
    ) -> list[TypedLine]:
        """
        Same as download_with_concurrency(), bound to a cancellation context.

        Raises:
            ValidationError: If concurrency < 1
            TransportError: If fetching fails or the context is cancelled
            DecodeError: If any payload cannot be decoded
        """
        if concurrency < 1:
            raise ValidationError(
                message=f"concurrency must be >= 1, got {concurrency}",
                parameter="concurrency",
            )

        raw_lines = await self._transport.download(
            self._filter, self._start, self._end, FORMAT_JSON, concurrency, ctx
        )

        processor = LineReprocessor()
        result: list[TypedLine] = []
        for raw in raw_lines:
            line = processor.process(raw)
            if line is not None:
                result.append(line)

        logger.info(f"[replay] Downloaded {len(result)} lines from {len(raw_lines)} raw lines")
        return result

    # =========================================================
    # STREAM
    # =========================================================

    async def stream(self) -> TypedLineIterator:
        """
        Start streaming and return an iterator over typed lines.

        Lines are buffered as soon as this returns. The iterator yields at
        once if a line is buffered and waits for the download otherwise.
        """
        return await self.stream_with_context(
            ReplayContext.background(), self._config.buffer_size
        )

    async def stream_with_buffer_size(self, buffer_size: int) -> TypedLineIterator:
        """
        Same as stream() with a custom buffer size.

        One shard is equivalent to one minute of source data.
        """
        return await self.stream_with_context(ReplayContext.background(), buffer_size)

    async def stream_with_context(
        self,
        ctx: Optional[ReplayContext],
        buffer_size: int,
    ) -> TypedLineIterator:
        """
        Same as stream_with_buffer_size(), bound to a cancellation context.

        Background downloads and the iterator use the context for their
        whole lifetime. Cancelling it stops background downloads and makes
        later next() calls raise TransportError.
        """
        if buffer_size < 1:
            raise ValidationError(
                message=f"buffer_size must be >= 1, got {buffer_size}",
                parameter="buffer_size",
            )

        raw = await self._transport.stream(
            self._filter, self._start, self._end, FORMAT_JSON, buffer_size, ctx
        )
        return ReplayStreamIterator(raw, LineReprocessor())
