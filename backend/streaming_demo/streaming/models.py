"""
Data types shared by the streaming core.

Chunks are what handlers produce and sessions write; UpstreamRequest is what
the relay sends to the chat-completion API.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


class EventKind(str, Enum):
    """Event-stream tag carried by a chunk."""

    LOG = "log"
    DATA = "data"
    LLM = "llm"
    ERROR = "error"
    HEARTBEAT = "heartbeat"


class Framing(str, Enum):
    """Wire format of a response body."""

    PLAIN = "plain"
    HTML = "html"
    EVENT_STREAM = "event-stream"

    @property
    def media_type(self) -> str:
        return _MEDIA_TYPES[self]


_MEDIA_TYPES = {
    Framing.PLAIN: "text/plain",
    Framing.HTML: "text/html",
    Framing.EVENT_STREAM: "text/event-stream",
}


class Granularity(str, Enum):
    """Boundary used by the text chunker."""

    LINE = "line"
    WORD = "word"
    FIXED_TOKEN_LIST = "fixed-token-list"


class SessionState(str, Enum):
    """Lifecycle of a stream session."""

    IDLE = "idle"
    OPENED = "opened"
    EMITTING = "emitting"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (
            SessionState.COMPLETED,
            SessionState.CANCELLED,
            SessionState.FAILED,
        )


@dataclass(frozen=True)
class Chunk:
    """One unit of output text plus an optional event kind."""

    text: str
    kind: EventKind | None = None

    @classmethod
    def log(cls, text: str) -> "Chunk":
        return cls(text=text, kind=EventKind.LOG)

    @classmethod
    def data(cls, text: str) -> "Chunk":
        return cls(text=text, kind=EventKind.DATA)

    @classmethod
    def error(cls, text: str) -> "Chunk":
        return cls(text=text, kind=EventKind.ERROR)

    @property
    def is_error(self) -> bool:
        return self.kind is EventKind.ERROR


# ===== Upstream request =====


class ChatMessage(BaseModel):
    """Role-tagged message sent upstream."""

    role: Literal["system", "user", "assistant"] = Field(
        ..., description="Message role"
    )
    content: str = Field(..., description="Message text")


class GenerationOptions(BaseModel):
    """
    Generation options for a streaming completion.

    ``stream`` is always true; whatever the caller passes is replaced.
    ``model`` is accepted from callers but the relay overrides it with the
    service default before dispatch.
    """

    model: str | None = Field(default=None, description="Model identifier")
    temperature: float | None = Field(
        default=None, ge=0.0, le=2.0, description="Sampling temperature"
    )
    max_tokens: int | None = Field(
        default=None, gt=0, description="Maximum tokens in the response"
    )
    stream: bool = Field(default=True, description="Always true")

    @field_validator("stream", mode="before")
    @classmethod
    def _force_stream(cls, value: Any) -> bool:
        return True

    def bind_kwargs(self) -> dict[str, Any]:
        """Per-call parameters for the chat model (unset values omitted)."""
        params: dict[str, Any] = {}
        if self.temperature is not None:
            params["temperature"] = self.temperature
        if self.max_tokens is not None:
            params["max_tokens"] = self.max_tokens
        return params


class UpstreamRequest(BaseModel):
    """Ordered messages plus options for one streaming completion call."""

    messages: list[ChatMessage] = Field(..., min_length=1)
    options: GenerationOptions = Field(default_factory=GenerationOptions)

    @classmethod
    def from_prompt(cls, prompt: str, **options: Any) -> "UpstreamRequest":
        """Wrap a shorthand prompt into a single user message."""
        return cls(
            messages=[ChatMessage(role="user", content=prompt)],
            options=GenerationOptions(**options),
        )

    def with_model(self, model: str) -> "UpstreamRequest":
        """Copy with the model forced to ``model`` and streaming on."""
        options = self.options.model_copy(update={"model": model, "stream": True})
        return self.model_copy(update={"options": options})
