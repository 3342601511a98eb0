"""
Replay Context - Cooperative cancellation for replay executions.

A context is handed to the transport for the whole lifetime of one
download or stream. Cancelling it stops background fetching; pending
and future pulls report a TransportError instead of blocking.
"""

import asyncio
import logging
from typing import Optional


logger = logging.getLogger(__name__)


class ReplayContext:
    """Cancellation signal, optionally with a deadline."""

    def __init__(self, timeout: Optional[float] = None) -> None:
        """
        Args:
            timeout: Seconds after the first wait() before the context
                cancels itself; None means no deadline
        """
        self._event = asyncio.Event()
        self._timeout = timeout
        self._timer: Optional[asyncio.TimerHandle] = None
        self._reason: Optional[str] = None

    @classmethod
    def background(cls) -> "ReplayContext":
        """A context that is never cancelled unless asked to."""
        return cls()

    @property
    def cancelled(self) -> bool:
        """Check if the context has been cancelled."""
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        """Why the context was cancelled."""
        return self._reason

    def cancel(self, reason: str = "context cancelled") -> None:
        """Cancel the context. Later calls keep the first reason."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        logger.debug(f"[context] Cancelled: {reason}")

    def _arm(self) -> None:
        if self._timeout is None or self._timer is not None or self.cancelled:
            return
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._timeout, self.cancel, "deadline exceeded")

    async def wait(self) -> None:
        """Wait until the context is cancelled."""
        self._arm()
        await self._event.wait()
