"""
Incremental HTTP/SSE streaming core.

Public API:
    Dispatcher: Serves routes as buffered or streamed responses
    StreamSession: One exchange driving chunks to a sink
    TextChunker: Delayed local chunk source
    UpstreamTokenRelay: Streaming LLM completion as chunks
"""

from .cancellation import CancellationToken
from .chunker import TextChunker
from .dispatcher import Dispatcher, HandlerContext, Route
from .models import (
    ChatMessage,
    Chunk,
    EventKind,
    Framing,
    GenerationOptions,
    Granularity,
    SessionState,
    UpstreamRequest,
)
from .relay import UpstreamTokenRelay
from .session import StreamSession

__all__ = [
    "CancellationToken",
    "ChatMessage",
    "Chunk",
    "Dispatcher",
    "EventKind",
    "Framing",
    "GenerationOptions",
    "Granularity",
    "HandlerContext",
    "Route",
    "SessionState",
    "StreamSession",
    "TextChunker",
    "UpstreamRequest",
    "UpstreamTokenRelay",
]
