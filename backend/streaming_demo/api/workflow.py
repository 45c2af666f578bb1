"""
SSE workflow demo: SQL generation, a simulated warehouse query, then a summary.

Sequencing lives here, not in the relay. Log and data events are emitted
directly; the two LLM steps are separate relay invocations (prompt shorthand
and an explicit system + user message list).
"""

from collections.abc import AsyncGenerator

import structlog

from ..streaming.dispatcher import HandlerContext
from ..streaming.models import (
    ChatMessage,
    Chunk,
    EventKind,
    GenerationOptions,
    UpstreamRequest,
)

logger = structlog.get_logger()

SQL_PROMPT = "Write SQL to count users created per month (Postgres)."

SUMMARY_SYSTEM_PROMPT = "You are a data analyst."

SUMMARY_TEMPERATURE = 0.7

FAKE_QUERY_RESULT = """
[
  { "month": "2025-03", "users": 734 },
  { "month": "2025-04", "users": 910 },
  { "month": "2025-05", "users": 1021 }
]
""".strip()


def build_summary_request(data: str) -> UpstreamRequest:
    """System + user messages asking for a short insight on ``data``."""
    return UpstreamRequest(
        messages=[
            ChatMessage(role="system", content=SUMMARY_SYSTEM_PROMPT),
            ChatMessage(
                role="user",
                content=f"Given this JSON data:\n{data}\nWrite a concise insight (~40 tokens).",
            ),
        ],
        options=GenerationOptions(temperature=SUMMARY_TEMPERATURE),
    )


async def sse_workflow(ctx: HandlerContext) -> AsyncGenerator[Chunk, None]:
    """log, llm*, log, data, log, llm*, log; an error event ends it early."""
    relay = ctx.open_relay()
    token = ctx.cancellation

    yield Chunk.log("Generating SQL query...")
    async for chunk in relay.relay(SQL_PROMPT, kind=EventKind.LLM, cancellation=token):
        yield chunk
        if chunk.is_error:
            return

    # Pretend DB round-trip
    yield Chunk.log("Executing SQL on warehouse...")
    if await token.sleep(ctx.settings.workflow_query_delay_ms / 1000):
        logger.info("Workflow cancelled during simulated query")
        return

    yield Chunk.data(FAKE_QUERY_RESULT)

    yield Chunk.log("Summarizing results with LLM...")
    summary = build_summary_request(FAKE_QUERY_RESULT)
    async for chunk in relay.relay(summary, kind=EventKind.LLM, cancellation=token):
        yield chunk
        if chunk.is_error:
            return

    yield Chunk.log("Workflow complete ✅")
