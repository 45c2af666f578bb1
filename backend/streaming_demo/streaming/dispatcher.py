"""
Dispatcher: binds routes to handlers and serves their chunk sequences.

Buffered routes collect the whole sequence and answer with one body.
Streaming routes get a StreamSession served by SessionResponse, which writes
each chunk as its own ASGI body message and turns ``http.disconnect`` into a
cancellation of the session token.
"""

import asyncio
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass

import structlog
from fastapi import Request
from fastapi.responses import Response
from starlette.types import Message, Receive, Scope, Send

from ..core.config import Settings
from .cancellation import CancellationToken
from .chunker import TextChunker
from .models import Chunk, Framing
from .relay import UpstreamTokenRelay
from .session import StreamSession

logger = structlog.get_logger()

RelayFactory = Callable[[Settings], UpstreamTokenRelay]


def default_relay_factory(settings: Settings) -> UpstreamTokenRelay:
    """Relay for the configured DashScope credential and default model."""
    return UpstreamTokenRelay(
        api_key=settings.dashscope_api_key,
        default_model=settings.default_llm_model,
    )


@dataclass
class HandlerContext:
    """Everything a route handler may touch for one request."""

    request: Request
    settings: Settings
    cancellation: CancellationToken
    relay_factory: RelayFactory = default_relay_factory

    def open_relay(self) -> UpstreamTokenRelay:
        """
        Build the upstream relay for this request.

        Raises:
            ConfigurationMissingError: If no credential is configured
        """
        return self.relay_factory(self.settings)

    def chunker(self) -> TextChunker:
        return TextChunker(
            self.cancellation,
            realistic_bounds_ms=(
                self.settings.realistic_delay_min_ms,
                self.settings.realistic_delay_max_ms,
            ),
        )


Handler = Callable[[HandlerContext], AsyncIterator[Chunk]]


@dataclass(frozen=True)
class Route:
    """A path, its framing, whether it streams, and the handler behind it."""

    path: str
    handler: Handler
    framing: Framing
    streaming: bool = True
    name: str = ""

    @property
    def route_name(self) -> str:
        return self.name or self.handler.__name__


class ASGISink:
    """Session sink writing to an ASGI ``send`` channel."""

    def __init__(self, send: Send, status_code: int, raw_headers: list[tuple[bytes, bytes]]):
        self._send = send
        self._status_code = status_code
        self._raw_headers = raw_headers
        self._pending: list[bytes] = []
        self._started = False
        self._closed = False

    async def open(self) -> None:
        await self._send(
            {
                "type": "http.response.start",
                "status": self._status_code,
                "headers": self._raw_headers,
            }
        )
        self._started = True

    async def write(self, data: str) -> None:
        self._pending.append(data.encode("utf-8"))

    async def flush(self) -> None:
        if not self._pending:
            return
        body = b"".join(self._pending)
        self._pending.clear()
        await self._send({"type": "http.response.body", "body": body, "more_body": True})

    async def close(self) -> None:
        if not self._started or self._closed:
            return
        self._closed = True
        try:
            await self._send({"type": "http.response.body", "body": b"", "more_body": False})
        except OSError as e:
            logger.debug("Sink close after disconnect", error=str(e))


class SessionResponse(Response):
    """Starlette response that serves a StreamSession."""

    def __init__(self, session: StreamSession, chunks: AsyncIterator[Chunk]):
        self.session = session
        self._chunks = chunks
        self.status_code = 200
        self.media_type = session.framing.media_type
        self.background = None
        self.init_headers(session.headers)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        sink = ASGISink(send, self.status_code, self.raw_headers)
        watcher = asyncio.create_task(self._listen_for_disconnect(receive))
        try:
            await self.session.drive(self._chunks, sink)
        finally:
            watcher.cancel()
            try:
                await watcher
            except asyncio.CancelledError:
                pass

    async def _listen_for_disconnect(self, receive: Receive) -> None:
        while True:
            message: Message = await receive()
            if message["type"] == "http.disconnect":
                logger.info("Client disconnected", route=self.session.route)
                self.session.cancel()
                return


class Dispatcher:
    """Routes requests to handlers and serves their output."""

    def __init__(self, settings: Settings, relay_factory: RelayFactory = default_relay_factory):
        self.settings = settings
        self.relay_factory = relay_factory

    def context(self, request: Request, cancellation: CancellationToken) -> HandlerContext:
        return HandlerContext(
            request=request,
            settings=self.settings,
            cancellation=cancellation,
            relay_factory=self.relay_factory,
        )

    async def handle(self, route: Route, request: Request) -> Response:
        """
        Serve ``route`` for ``request``.

        Streaming routes return a SessionResponse whose ``session`` attribute
        is the StreamSession bound to this exchange. Buffered routes return a
        plain Response; AppErrors they raise propagate to the app's handler.
        """
        cancellation = CancellationToken()
        chunks = route.handler(self.context(request, cancellation))

        if not route.streaming:
            body = await self.buffer(chunks)
            return Response(content=body, media_type=route.framing.media_type)

        session = StreamSession(route.framing, cancellation, route=route.route_name)
        return SessionResponse(session, chunks)

    @staticmethod
    async def buffer(chunks: AsyncIterator[Chunk]) -> str:
        """Collect a full chunk sequence into one body."""
        parts = [chunk.text async for chunk in chunks]
        return "".join(parts)
