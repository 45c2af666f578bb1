"""
Shared test doubles for the streaming core.

- FakeChatModel: stands in for ChatTongyi (bind + astream)
- FakeChatFactory: hands out fake models and records requested model names
- RecordingSink: records open/write/flush/close calls in order
"""

import asyncio
from collections.abc import Callable

import pytest
from langchain_core.messages import AIMessageChunk

from streaming_demo.core.config import Settings


class FakeChatModel:
    """Deterministic streaming chat model."""

    def __init__(
        self,
        deltas: list[str],
        error: Exception | None = None,
        block_after: bool = False,
    ):
        self.deltas = deltas
        self.error = error
        self.block_after = block_after
        self.bound_kwargs: dict | None = None
        self.received_messages: list | None = None
        self.closed = False

    def bind(self, **kwargs):
        self.bound_kwargs = kwargs
        return self

    async def astream(self, messages):
        self.received_messages = messages
        try:
            for delta in self.deltas:
                await asyncio.sleep(0)
                yield AIMessageChunk(content=delta)
            if self.error is not None:
                raise self.error
            if self.block_after:
                await asyncio.Event().wait()
        finally:
            self.closed = True


class FakeChatFactory:
    """Returns queued fake models in order and records each call."""

    def __init__(self, *models: FakeChatModel):
        self.models = list(models)
        self.calls: list[dict[str, str]] = []

    def __call__(self, model: str, api_key: str) -> FakeChatModel:
        self.calls.append({"model": model, "api_key": api_key})
        return self.models.pop(0)


class RecordingSink:
    """In-memory sink; ``on_flush`` runs after every flush."""

    def __init__(self, on_flush: Callable[["RecordingSink"], None] | None = None):
        self.events: list[str] = []
        self.writes: list[str] = []
        self.on_flush = on_flush

    async def open(self) -> None:
        self.events.append("open")

    async def write(self, data: str) -> None:
        self.events.append("write")
        self.writes.append(data)

    async def flush(self) -> None:
        self.events.append("flush")
        if self.on_flush is not None:
            self.on_flush(self)

    async def close(self) -> None:
        self.events.append("close")

    @property
    def body(self) -> str:
        return "".join(self.writes)


def parse_sse(body: str) -> list[tuple[str | None, str]]:
    """Split an event-stream body into (event kind, data) pairs."""
    frames = []
    for raw in body.split("\n\n"):
        if not raw:
            continue
        kind = None
        data_lines = []
        for line in raw.split("\n"):
            if line.startswith("event: "):
                kind = line[len("event: ") :]
            elif line.startswith("data: "):
                data_lines.append(line[len("data: ") :])
        frames.append((kind, "\n".join(data_lines)))
    return frames


@pytest.fixture
def test_settings():
    """Settings with zero delays and no upstream credential."""
    return Settings(
        environment="test",
        dashscope_api_key="",
        default_llm_model="qwen-plus-latest",
        html_stream_delay_ms=0,
        text_stream_delay_ms=0,
        sse_ping_interval_ms=0,
        workflow_query_delay_ms=0,
    )
