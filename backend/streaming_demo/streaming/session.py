"""
Stream session: one HTTP exchange driving a chunk sequence to a sink.

The session owns its sink for its whole lifetime and writes chunks strictly
in production order, flushing after every one. Framing decides how a chunk
looks on the wire:

- plain/html: raw text; error chunks become an inline ``Error: ...`` marker
- event-stream: ``event: <kind>`` (when tagged) then ``data: <text>`` lines
"""

from collections.abc import AsyncIterator
from typing import Protocol

import structlog

from ..core.exceptions import AppError, ClientDisconnectedError
from .cancellation import CancellationToken
from .models import Chunk, Framing, SessionState

logger = structlog.get_logger()

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",  # Nginx/Cloudflare
    "Connection": "keep-alive",
}

_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.IDLE: {SessionState.OPENED, SessionState.CANCELLED},
    SessionState.OPENED: {
        SessionState.EMITTING,
        SessionState.COMPLETED,
        SessionState.CANCELLED,
        SessionState.FAILED,
    },
    SessionState.EMITTING: {
        SessionState.EMITTING,
        SessionState.COMPLETED,
        SessionState.CANCELLED,
        SessionState.FAILED,
    },
}


class Sink(Protocol):
    """Writable, flushable response body."""

    async def open(self) -> None: ...

    async def write(self, data: str) -> None: ...

    async def flush(self) -> None: ...

    async def close(self) -> None: ...


def format_sse(chunk: Chunk) -> str:
    """
    Format a chunk as a Server-Sent Events frame.

    Text containing newlines is sent as one ``data:`` line per text line;
    EventSource joins them back with ``\\n``.
    """
    lines = []
    if chunk.kind is not None:
        lines.append(f"event: {chunk.kind.value}")
    text = chunk.text.replace("\r\n", "\n").replace("\r", "\n")
    lines.extend(f"data: {line}" for line in text.split("\n"))
    return "\n".join(lines) + "\n\n"


def format_inline(chunk: Chunk) -> str:
    """Format a chunk for plain/html bodies."""
    if chunk.is_error:
        return f"Error: {chunk.text}"
    return chunk.text


def error_message(error: BaseException) -> str:
    if isinstance(error, AppError):
        return error.message
    return str(error) or type(error).__name__


class StreamSession:
    """
    One request/response exchange bound to a cancellation token.

    State machine: idle -> opened -> emitting* -> completed | cancelled | failed.
    """

    def __init__(
        self,
        framing: Framing,
        cancellation: CancellationToken | None = None,
        route: str = "",
    ):
        self.framing = framing
        self.cancellation = cancellation or CancellationToken()
        self.route = route
        self.state = SessionState.IDLE
        self.chunks_written = 0

    @property
    def headers(self) -> dict[str, str]:
        return dict(STREAM_HEADERS)

    def cancel(self, reason: str = "client disconnected") -> None:
        self.cancellation.cancel(reason)

    def encode(self, chunk: Chunk) -> str:
        if self.framing is Framing.EVENT_STREAM:
            return format_sse(chunk)
        return format_inline(chunk)

    def _transition(self, new_state: SessionState) -> None:
        allowed = _TRANSITIONS.get(self.state, set())
        if new_state not in allowed:
            raise RuntimeError(
                f"Invalid stream session transition: {self.state.value} -> {new_state.value}"
            )
        self.state = new_state

    async def drive(self, chunks: AsyncIterator[Chunk], sink: Sink) -> SessionState:
        """
        Write ``chunks`` to ``sink`` until exhausted, cancelled or failed.

        The cancellation flag is checked before each chunk is requested and
        again before it is written. Producer exceptions end the session with
        one error chunk.

        Returns:
            The terminal session state
        """
        if self.cancellation.cancelled:
            self._transition(SessionState.CANCELLED)
            await _aclose(chunks)
            return self.state

        await sink.open()
        self._transition(SessionState.OPENED)
        logger.info(
            "Stream session opened", route=self.route, framing=self.framing.value
        )

        try:
            while True:
                if self.cancellation.cancelled:
                    self._transition(SessionState.CANCELLED)
                    break

                try:
                    chunk = await chunks.__anext__()
                except StopAsyncIteration:
                    if self.cancellation.cancelled:
                        self._transition(SessionState.CANCELLED)
                    else:
                        self._transition(SessionState.COMPLETED)
                    break
                except ClientDisconnectedError:
                    self._transition(SessionState.CANCELLED)
                    break
                except Exception as e:
                    logger.error(
                        "Stream producer failed",
                        route=self.route,
                        error=error_message(e),
                        error_type=type(e).__name__,
                    )
                    chunk = Chunk.error(error_message(e))

                if self.cancellation.cancelled:
                    self._transition(SessionState.CANCELLED)
                    break

                try:
                    await sink.write(self.encode(chunk))
                    await sink.flush()
                except OSError as e:
                    # Transport is gone; same outcome as a disconnect notice
                    self.cancel(f"write failed: {e}")
                    self._transition(SessionState.CANCELLED)
                    break

                self.chunks_written += 1
                if chunk.is_error:
                    self._transition(SessionState.FAILED)
                    break
                self._transition(SessionState.EMITTING)
        finally:
            await _aclose(chunks)
            await sink.close()

        log = logger.warning if self.state is SessionState.FAILED else logger.info
        log(
            "Stream session finished",
            route=self.route,
            framing=self.framing.value,
            state=self.state.value,
            chunks_written=self.chunks_written,
            cancel_reason=self.cancellation.reason,
        )
        return self.state


async def _aclose(chunks: AsyncIterator[Chunk]) -> None:
    aclose = getattr(chunks, "aclose", None)
    if aclose is not None:
        await aclose()
