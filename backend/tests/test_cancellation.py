"""
Unit tests for CancellationToken.

Both suspension helpers (sleep and race) must wake promptly when the token
fires instead of waiting out their full duration.
"""

import asyncio

import pytest

from streaming_demo.core.exceptions import ClientDisconnectedError
from streaming_demo.streaming.cancellation import CancellationToken


class TestCancel:
    """Test flag state."""

    def test_starts_uncancelled(self):
        token = CancellationToken()
        assert not token.cancelled
        assert token.reason is None

    def test_cancel_keeps_first_reason(self):
        token = CancellationToken()
        token.cancel("first")
        token.cancel("second")

        assert token.cancelled
        assert token.reason == "first"


class TestSleep:
    """Test cancellable sleep."""

    @pytest.mark.asyncio
    async def test_sleep_times_out_normally(self):
        token = CancellationToken()
        assert await token.sleep(0.01) is False

    @pytest.mark.asyncio
    async def test_sleep_wakes_on_cancel(self):
        token = CancellationToken()

        async def cancel_soon():
            await asyncio.sleep(0.01)
            token.cancel()

        asyncio.create_task(cancel_soon())
        # Far longer than the test should take if cancellation is ignored
        result = await asyncio.wait_for(token.sleep(30), timeout=2)

        assert result is True

    @pytest.mark.asyncio
    async def test_sleep_when_already_cancelled(self):
        token = CancellationToken()
        token.cancel()
        assert await token.sleep(30) is True

    @pytest.mark.asyncio
    async def test_zero_sleep_yields(self):
        token = CancellationToken()
        assert await token.sleep(0) is False


class TestRace:
    """Test racing an awaitable against the token."""

    @pytest.mark.asyncio
    async def test_returns_result(self):
        token = CancellationToken()

        async def value():
            return 42

        assert await token.race(value()) == 42

    @pytest.mark.asyncio
    async def test_propagates_exception(self):
        token = CancellationToken()

        async def boom():
            raise ValueError("boom")

        with pytest.raises(ValueError, match="boom"):
            await token.race(boom())

    @pytest.mark.asyncio
    async def test_cancel_wins_and_cancels_pending(self):
        token = CancellationToken()
        pending_cancelled = asyncio.Event()

        async def forever():
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                pending_cancelled.set()
                raise

        async def cancel_soon():
            await asyncio.sleep(0.01)
            token.cancel()

        asyncio.create_task(cancel_soon())
        with pytest.raises(ClientDisconnectedError):
            await asyncio.wait_for(token.race(forever()), timeout=2)

        await asyncio.wait_for(pending_cancelled.wait(), timeout=1)

    @pytest.mark.asyncio
    async def test_already_cancelled_raises_immediately(self):
        token = CancellationToken()
        token.cancel()

        async def value():
            return 1

        with pytest.raises(ClientDisconnectedError):
            await token.race(value())
