"""
Raw Transport - Abstract interface for raw line providers.

============================================================
SHARDING
============================================================
The remote log is split into shards: one minute of one exchange.
Providers implement a single primitive, fetch_shard(); this base
class builds both consumption primitives on top of it:

- download(): every shard fetched concurrently under a semaphore,
  then reassembled minute by minute
- stream(): shards fetched minute by minute by a background task
  into a bounded queue, drained by RawLineIterator.next()

Within one minute the exchanges' shards are merged by timestamp,
keeping filter order for ties, so both primitives yield the same
sequence for the same data.

============================================================
"""

import asyncio
import heapq
import logging
from abc import ABC, abstractmethod
from collections import deque
from operator import attrgetter
from typing import Any, AsyncIterator, Awaitable, Optional, Sequence

from market_replay.context import ReplayContext
from market_replay.exceptions import ReplayError, TransportError, ValidationError
from market_replay.models import RawLine, minute_of


logger = logging.getLogger(__name__)

FORMAT_JSON = "json"

ReplayFilter = dict[str, list[str]]


def shard_minutes(start: int, end: int) -> range:
    """Minutes covering the half-open nanosecond range [start, end)."""
    return range(minute_of(start), minute_of(end - 1) + 1)


def merge_shards(shards: Sequence[list[RawLine]]) -> list[RawLine]:
    """Merge per-exchange shards of one minute by timestamp."""
    if len(shards) == 1:
        return list(shards[0])
    return list(heapq.merge(*shards, key=attrgetter("timestamp")))


async def _gather_or_cancel(coros: Sequence[Awaitable[Any]]) -> list[Any]:
    """Gather coroutines; on the first failure cancel the rest."""
    tasks = [asyncio.ensure_future(c) for c in coros]
    try:
        return await asyncio.gather(*tasks)
    finally:
        pending = [t for t in tasks if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


def _as_transport_error(error: Exception) -> ReplayError:
    if isinstance(error, ReplayError):
        return error
    return TransportError(message=f"Unexpected transport error: {error}", original_error=error)


class RawLineIterator(ABC):
    """Pull-based sequence of raw lines."""

    @abstractmethod
    async def next(self) -> Optional[RawLine]:
        """Return the next raw line, or None once the sequence is exhausted."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release resources held by the iterator."""
        pass


class _Failure:
    __slots__ = ("error",)

    def __init__(self, error: Exception) -> None:
        self.error = error


_END = object()


class BufferedRawLineIterator(RawLineIterator):
    """
    Raw line iterator fed by a background producer.

    Buffering starts at construction and runs ahead of the consumer by at
    most `buffer_size` shards. Cancelling the context stops the producer;
    next() then raises TransportError instead of waiting.
    """

    def __init__(
        self,
        shards: AsyncIterator[list[RawLine]],
        buffer_size: int,
        ctx: ReplayContext,
    ) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=buffer_size)
        self._ctx = ctx
        self._lines: deque[RawLine] = deque()
        self._finished = False
        self._error: Optional[ReplayError] = None
        self._closed = False

        self._producer = asyncio.create_task(self._produce(shards))
        self._watcher = asyncio.create_task(self._watch())

    async def _produce(self, shards: AsyncIterator[list[RawLine]]) -> None:
        try:
            async for shard in shards:
                await self._queue.put(shard)
            await self._queue.put(_END)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"[stream] Producer failed: {e}")
            await self._queue.put(_Failure(e))

    async def _watch(self) -> None:
        await self._ctx.wait()
        if not self._producer.done():
            logger.info(f"[stream] Stopping background fetch: {self._ctx.reason}")
            self._producer.cancel()

    def _cancelled_error(self) -> TransportError:
        return TransportError(message=f"Stream cancelled: {self._ctx.reason}")

    async def _get(self) -> Any:
        if not self._queue.empty():
            return self._queue.get_nowait()

        getter = asyncio.ensure_future(self._queue.get())
        waiter = asyncio.ensure_future(self._ctx.wait())
        try:
            await asyncio.wait({getter, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not getter.done():
                getter.cancel()

        if getter.done() and not getter.cancelled():
            return getter.result()
        raise self._cancelled_error()

    async def next(self) -> Optional[RawLine]:
        while True:
            if self._error is not None:
                raise self._error
            if self._finished and not self._lines:
                return None
            if self._ctx.cancelled:
                raise self._cancelled_error()
            if self._lines:
                return self._lines.popleft()

            item = await self._get()
            if item is _END:
                self._finished = True
            elif isinstance(item, _Failure):
                self._error = _as_transport_error(item.error)
            else:
                self._lines.extend(item)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for task in (self._producer, self._watcher):
            task.cancel()
        await asyncio.gather(self._producer, self._watcher, return_exceptions=True)


class BaseRawTransport(ABC):
    """
    Abstract base class for raw line transports.

    Each transport implementation must implement fetch_shard(); sharding,
    bounded concurrency, ordering and buffering are handled here.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this transport."""
        pass

    @abstractmethod
    async def fetch_shard(
        self,
        exchange: str,
        channels: list[str],
        minute: int,
        start: int,
        end: int,
        format: str,
    ) -> list[RawLine]:
        """
        Fetch one shard of raw lines.

        Args:
            exchange: Exchange to fetch
            channels: Channels to filter-in
            minute: Minute index since epoch
            start: Range start in nanoseconds (inclusive)
            end: Range end in nanoseconds (exclusive)
            format: Payload encoding requested from the service

        Returns:
            Raw lines of the shard in log order

        Raises:
            TransportError: If the shard cannot be fetched
        """
        pass

    async def close(self) -> None:
        """Release transport resources."""
        return None

    async def download(
        self,
        filter: ReplayFilter,
        start: int,
        end: int,
        format: str,
        concurrency: int,
        ctx: Optional[ReplayContext] = None,
    ) -> list[RawLine]:
        """
        Fetch every shard of the range concurrently.

        Raises:
            ValidationError: If concurrency < 1
            TransportError: If any shard fails or the context is cancelled
        """
        if concurrency < 1:
            raise ValidationError(
                message=f"concurrency must be >= 1, got {concurrency}",
                parameter="concurrency",
            )
        ctx = ctx or ReplayContext.background()
        if ctx.cancelled:
            raise TransportError(message=f"Download cancelled: {ctx.reason}")

        exchanges = list(filter.items())
        if not exchanges:
            return []
        minutes = shard_minutes(start, end)
        semaphore = asyncio.Semaphore(concurrency)

        async def fetch(exchange: str, channels: list[str], minute: int) -> list[RawLine]:
            async with semaphore:
                return await self.fetch_shard(exchange, channels, minute, start, end, format)

        logger.info(
            f"[{self.name}] Downloading {len(minutes) * len(exchanges)} shards "
            f"with concurrency {concurrency}"
        )

        fetch_all = asyncio.ensure_future(_gather_or_cancel([
            fetch(exchange, channels, minute)
            for minute in minutes
            for exchange, channels in exchanges
        ]))
        waiter = asyncio.ensure_future(ctx.wait())
        try:
            await asyncio.wait({fetch_all, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not fetch_all.done():
                fetch_all.cancel()
                await asyncio.gather(fetch_all, return_exceptions=True)

        if fetch_all.cancelled():
            raise TransportError(message=f"Download cancelled: {ctx.reason}")
        try:
            shards = fetch_all.result()
        except ReplayError:
            raise
        except Exception as e:
            raise _as_transport_error(e) from e

        lines: list[RawLine] = []
        width = len(exchanges)
        for i in range(0, len(shards), width):
            lines.extend(merge_shards(shards[i:i + width]))
        return lines

    async def stream(
        self,
        filter: ReplayFilter,
        start: int,
        end: int,
        format: str,
        buffer_size: int,
        ctx: Optional[ReplayContext] = None,
    ) -> RawLineIterator:
        """
        Start streaming the range; buffering begins immediately.

        Raises:
            ValidationError: If buffer_size < 1
            TransportError: If the context is already cancelled
        """
        if buffer_size < 1:
            raise ValidationError(
                message=f"buffer_size must be >= 1, got {buffer_size}",
                parameter="buffer_size",
            )
        ctx = ctx or ReplayContext.background()
        if ctx.cancelled:
            raise TransportError(message=f"Stream cancelled: {ctx.reason}")

        logger.info(f"[{self.name}] Streaming with buffer of {buffer_size} shards")
        return BufferedRawLineIterator(
            self._iter_shards(dict(filter), start, end, format),
            buffer_size,
            ctx,
        )

    async def _iter_shards(
        self,
        filter: ReplayFilter,
        start: int,
        end: int,
        format: str,
    ) -> AsyncIterator[list[RawLine]]:
        for minute in shard_minutes(start, end):
            shards = await _gather_or_cancel([
                self.fetch_shard(exchange, channels, minute, start, end, format)
                for exchange, channels in filter.items()
            ])
            yield merge_shards(shards)
