"""
Cooperative cancellation for stream sessions.

A CancellationToken is created per session and handed to every suspension
point (chunker delays, upstream waits). Setting it wakes those waits
immediately instead of at the next poll.
"""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from ..core.exceptions import ClientDisconnectedError

T = TypeVar("T")


class CancellationToken:
    """Request-scoped cancellation flag backed by an asyncio.Event."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "client disconnected") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def sleep(self, seconds: float) -> bool:
        """
        Suspend for ``seconds`` unless cancelled first.

        Returns:
            True if the token fired during (or before) the sleep.
        """
        if self.cancelled:
            return True
        if seconds <= 0:
            await asyncio.sleep(0)
            return self.cancelled
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except TimeoutError:
            return False
        return True

    async def race(self, awaitable: Awaitable[T]) -> T:
        """
        Await ``awaitable`` unless the token fires first.

        The losing awaitable is cancelled.

        Raises:
            ClientDisconnectedError: If the token fired before a result arrived.
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise ClientDisconnectedError(self.reason or "client disconnected")

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()

        if task in done:
            return task.result()
        raise ClientDisconnectedError(self.reason or "client disconnected")
