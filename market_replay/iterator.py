"""
Typed Line Iterator - Streaming consumption of a replay.

Usage:
    async with await request.stream() as lines:
        async for line in lines:
            ...

or, explicitly:

    lines = await request.stream()
    try:
        while (line := await lines.next()) is not None:
            ...
    finally:
        await lines.close()
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from market_replay.exceptions import ReplayError
from market_replay.models import TypedLine
from market_replay.processor import LineReprocessor
from market_replay.transport.base import RawLineIterator


logger = logging.getLogger(__name__)


class TypedLineIterator(ABC):
    """Iterator yielding typed lines. close() must always be called after use."""

    @abstractmethod
    async def next(self) -> Optional[TypedLine]:
        """
        Return the next line.

        Returns:
            The next typed line, or None when the stream has ended

        Raises:
            DecodeError: If a payload cannot be decoded
            TransportError: If fetching fails or the context was cancelled
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Free the resources this iterator is using."""
        pass

    def __aiter__(self) -> "TypedLineIterator":
        return self

    async def __anext__(self) -> TypedLine:
        line = await self.next()
        if line is None:
            raise StopAsyncIteration
        return line

    async def __aenter__(self) -> "TypedLineIterator":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class ReplayStreamIterator(TypedLineIterator):
    """Reprocesses raw lines lazily as they are pulled."""

    def __init__(self, raw: RawLineIterator, processor: Optional[LineReprocessor] = None) -> None:
        self._raw = raw
        self._processor = processor or LineReprocessor()
        self._closed = False
        self._error: Optional[ReplayError] = None
        self._emitted = 0

    @property
    def emitted(self) -> int:
        """Number of typed lines returned so far."""
        return self._emitted

    async def next(self) -> Optional[TypedLine]:
        # A failed stream keeps reporting its first error
        if self._error is not None:
            raise self._error
        while True:
            try:
                raw = await self._raw.next()
                if raw is None:
                    return None
                line = self._processor.process(raw)
            except ReplayError as e:
                self._error = e
                raise
            if line is None:
                # Schema definition
                continue
            self._emitted += 1
            return line

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._raw.close()
        logger.debug(f"[stream] Closed after {self._emitted} lines")
