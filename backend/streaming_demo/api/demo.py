"""
Demo routes: one-chunk responses, HTTP streaming, and server-sent events.

Each handler is an async generator of Chunks; the Dispatcher decides whether
the output is buffered into one body or streamed chunk by chunk. The route
table is bound onto the router with add_api_route.
"""

from collections.abc import AsyncGenerator

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from ..core.config import Settings, get_settings
from ..core.exceptions import ConfigurationError
from ..streaming.dispatcher import (
    Dispatcher,
    HandlerContext,
    RelayFactory,
    Route,
    default_relay_factory,
)
from ..streaming.models import Chunk, Framing, Granularity
from .workflow import sse_workflow

logger = structlog.get_logger()

TEXT_CONTENT = (
    "This is a complete text response delivered in one chunk. "
    "Unlike streaming responses, this entire message is sent to the browser "
    "at once after the server has prepared the full content. "
    "This is the traditional HTTP response pattern where you wait for "
    "the complete response before displaying anything to the user."
)

TYPING_TEXT = "Streaming plain text feels just like typing…"

LLM_DEMO_PROMPT = "Count from 1 to 100 in words. as a bulleted list."

REALISTIC_DELAY = "realistic"


def read_static(settings: Settings, name: str) -> str:
    """
    Read an HTML asset from the static directory.

    Raises:
        ConfigurationError: If the asset is missing or unreadable
    """
    path = settings.static_path / name
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(
            f"Static asset unavailable: {name}", asset_path=str(path), reason=str(e)
        ) from e


def parse_delay(raw: str | None, default_ms: int) -> int | None:
    """
    Interpret the ``delay`` query parameter.

    Returns:
        Milliseconds, or None for a realistic random delay. Anything that is
        not a non-negative integer falls back to ``default_ms``.
    """
    if raw is None:
        return default_ms
    if raw.strip().lower() == REALISTIC_DELAY:
        return None
    try:
        value = int(raw)
    except ValueError:
        return default_ms
    return value if value >= 0 else default_ms


# ===== One-chunk responses =====


async def home_page(ctx: HandlerContext) -> AsyncGenerator[Chunk, None]:
    yield Chunk(read_static(ctx.settings, "app.html"))


async def html_content(ctx: HandlerContext) -> AsyncGenerator[Chunk, None]:
    yield Chunk(read_static(ctx.settings, "example.html"))


async def text_content(ctx: HandlerContext) -> AsyncGenerator[Chunk, None]:
    yield Chunk(TEXT_CONTENT)


# ===== HTTP streaming =====


async def html_stream(ctx: HandlerContext) -> AsyncGenerator[Chunk, None]:
    """example.html line by line."""
    html = read_static(ctx.settings, "example.html")
    async for chunk in ctx.chunker().chunk(
        html, Granularity.LINE, ctx.settings.html_stream_delay_ms
    ):
        yield chunk


async def text_stream(ctx: HandlerContext) -> AsyncGenerator[Chunk, None]:
    """Words of a short sentence; ``?delay=<ms>`` or ``?delay=realistic``."""
    delay_ms = parse_delay(
        ctx.request.query_params.get("delay"), ctx.settings.text_stream_delay_ms
    )
    async for chunk in ctx.chunker().chunk(TYPING_TEXT, Granularity.WORD, delay_ms):
        yield chunk


async def llm_stream(ctx: HandlerContext) -> AsyncGenerator[Chunk, None]:
    """Relay the demo prompt as preformatted text."""
    yield Chunk("<pre>")
    relay = ctx.open_relay()
    async for chunk in relay.relay(LLM_DEMO_PROMPT, cancellation=ctx.cancellation):
        yield chunk
        if chunk.is_error:
            return
    yield Chunk("</pre>")


# ===== Server-sent events =====


async def sse_ping(ctx: HandlerContext) -> AsyncGenerator[Chunk, None]:
    """Untagged heartbeat every interval until the client goes away."""
    interval = ctx.settings.sse_ping_interval_ms / 1000
    count = 0
    while not ctx.cancellation.cancelled:
        count += 1
        yield Chunk(f"heartbeat {count}")
        if await ctx.cancellation.sleep(interval):
            return


ROUTES: list[Route] = [
    Route("/", home_page, Framing.HTML, streaming=False),
    Route("/html-content", html_content, Framing.HTML, streaming=False),
    Route("/text-content", text_content, Framing.PLAIN, streaming=False),
    # Text is framed as HTML so browsers and proxies do not buffer it
    Route("/html-stream", html_stream, Framing.HTML),
    Route("/text-stream", text_stream, Framing.HTML),
    Route("/llm-stream", llm_stream, Framing.HTML),
    Route("/sse-ping", sse_ping, Framing.EVENT_STREAM),
    Route("/sse-workflow", sse_workflow, Framing.EVENT_STREAM),
]


def get_relay_factory() -> RelayFactory:
    """Dependency returning the relay factory (overridden in tests)."""
    return default_relay_factory


def get_dispatcher(
    settings: Settings = Depends(get_settings),
    relay_factory: RelayFactory = Depends(get_relay_factory),
) -> Dispatcher:
    """Dependency building a Dispatcher over the current settings."""
    return Dispatcher(settings, relay_factory)


def _endpoint(route: Route):
    async def endpoint(
        request: Request, dispatcher: Dispatcher = Depends(get_dispatcher)
    ) -> Response:
        return await dispatcher.handle(route, request)

    endpoint.__name__ = route.route_name
    return endpoint


router = APIRouter(tags=["demo"])

for _route in ROUTES:
    router.add_api_route(
        _route.path,
        _endpoint(_route),
        methods=["GET"],
        name=_route.route_name,
        response_class=Response,
        include_in_schema=_route.path != "/",
    )
