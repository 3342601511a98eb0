"""
Replay Context Tests.
"""

import asyncio

import pytest

from market_replay import ReplayContext


class TestReplayContext:
    """Tests for cooperative cancellation."""

    def test_background_is_not_cancelled(self):
        """Test that a background context starts live."""
        ctx = ReplayContext.background()

        assert not ctx.cancelled
        assert ctx.reason is None

    def test_first_reason_wins(self):
        """Test that cancelling twice keeps the first reason."""
        ctx = ReplayContext()

        ctx.cancel("first")
        ctx.cancel("second")

        assert ctx.cancelled
        assert ctx.reason == "first"

    @pytest.mark.asyncio
    async def test_wait_returns_on_cancel(self):
        """Test that waiters wake up when the context is cancelled."""
        ctx = ReplayContext()
        asyncio.get_running_loop().call_later(0.01, ctx.cancel)

        await asyncio.wait_for(ctx.wait(), timeout=5)

        assert ctx.reason == "context cancelled"

    @pytest.mark.asyncio
    async def test_deadline(self):
        """Test that a timeout cancels the context once waited on."""
        ctx = ReplayContext(timeout=0.01)

        await asyncio.wait_for(ctx.wait(), timeout=5)

        assert ctx.cancelled
        assert ctx.reason == "deadline exceeded"

    @pytest.mark.asyncio
    async def test_deadline_not_armed_without_wait(self):
        """Test that the deadline only starts with the first wait()."""
        ctx = ReplayContext(timeout=0.01)

        await asyncio.sleep(0.05)

        assert not ctx.cancelled

    @pytest.mark.asyncio
    async def test_explicit_cancel_beats_deadline(self):
        """Test that an explicit cancel disarms the deadline."""
        ctx = ReplayContext(timeout=0.05)
        waiter = asyncio.ensure_future(ctx.wait())
        await asyncio.sleep(0)

        ctx.cancel("user abort")
        await asyncio.wait_for(waiter, timeout=5)
        await asyncio.sleep(0.1)

        assert ctx.reason == "user abort"
