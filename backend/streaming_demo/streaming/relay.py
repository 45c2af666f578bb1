"""
LangChain-based relay for the DashScope streaming chat-completion API.

Uses ChatTongyi (langchain-community) with ``streaming=True``. Each content
delta from the upstream call becomes a Chunk; failures become one terminal
``error`` chunk. The relay knows nothing about workflows: callers interleave
their own chunks between relay invocations.
"""

import asyncio
from collections.abc import AsyncGenerator, AsyncIterator, Callable
from typing import Any

import structlog
from langchain_community.chat_models import ChatTongyi
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from ..core.exceptions import (
    ClientDisconnectedError,
    ConfigurationMissingError,
    UpstreamFailureError,
)
from .cancellation import CancellationToken
from .models import ChatMessage, Chunk, EventKind, UpstreamRequest

logger = structlog.get_logger()

ChatModelFactory = Callable[..., BaseChatModel]

_DONE = object()


class _Failure:
    """Exception raised inside the pump task, carried across the queue."""

    def __init__(self, error: BaseException):
        self.error = error


def create_tongyi_chat(model: str, api_key: str) -> BaseChatModel:
    """Build the streaming ChatTongyi client for ``model``."""
    return ChatTongyi(  # type: ignore[call-arg]  # LangChain stubs incomplete
        model_name=model,
        dashscope_api_key=api_key,
        streaming=True,
    )


def to_langchain_messages(messages: list[ChatMessage]) -> list[BaseMessage]:
    """Convert role-tagged messages to LangChain message objects."""
    lc_messages: list[BaseMessage] = []
    for msg in messages:
        if msg.role == "system":
            lc_messages.append(SystemMessage(content=msg.content))
        elif msg.role == "user":
            lc_messages.append(HumanMessage(content=msg.content))
        else:
            lc_messages.append(AIMessage(content=msg.content))
    return lc_messages


def first_content_delta(update: Any) -> str:
    """
    Extract the first text delta from a streamed update.

    LangChain chunks carry either a string or a list of content blocks.
    """
    content = getattr(update, "content", update)
    if isinstance(content, str):
        return content
    if isinstance(content, list) and content:
        block = content[0]
        if isinstance(block, str):
            return block
        if isinstance(block, dict):
            text = block.get("text", "")
            return text if isinstance(text, str) else ""
    return ""


class UpstreamTokenRelay:
    """
    Relays one streaming chat completion as a sequence of chunks.

    Process-wide settings (credential, default model) are passed in; nothing
    is read from global state.
    """

    def __init__(
        self,
        api_key: str,
        default_model: str,
        chat_model_factory: ChatModelFactory | None = None,
    ):
        """
        Args:
            api_key: Upstream credential
            default_model: Model forced on every call regardless of caller input
            chat_model_factory: Callable(model=..., api_key=...) returning a chat model

        Raises:
            ConfigurationMissingError: If ``api_key`` is empty
        """
        if not api_key or not api_key.strip():
            raise ConfigurationMissingError(
                "DashScope API key not configured. "
                "Set DASHSCOPE_API_KEY in the environment or .env file",
                setting="dashscope_api_key",
            )
        self._api_key = api_key
        self.default_model = default_model
        self._factory = chat_model_factory or create_tongyi_chat

    def normalize(self, request: UpstreamRequest | str) -> UpstreamRequest:
        """Wrap prompt shorthand and force ``model``/``stream``."""
        if isinstance(request, str):
            request = UpstreamRequest.from_prompt(request)
        return request.with_model(self.default_model)

    async def relay(
        self,
        request: UpstreamRequest | str,
        *,
        kind: EventKind | None = None,
        cancellation: CancellationToken | None = None,
    ) -> AsyncGenerator[Chunk, None]:
        """
        Stream one completion as chunks.

        Args:
            request: Prompt shorthand or full request
            kind: Event kind for content chunks (None for plain transport)
            cancellation: Session token; when it fires the upstream call is
                cancelled and the sequence ends quietly

        Yields:
            Chunk: One per non-empty content delta, or a single terminal error chunk
        """
        request = self.normalize(request)
        cancellation = cancellation or CancellationToken()
        model = request.options.model or self.default_model

        logger.info(
            "Relaying upstream stream",
            model=model,
            message_count=len(request.messages),
            options=request.options.bind_kwargs(),
        )

        queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=1)
        pump: asyncio.Task[None] | None = None
        deltas = 0
        try:
            chat = self._factory(model=model, api_key=self._api_key)
            params = request.options.bind_kwargs()
            runnable = chat.bind(**params) if params else chat
            stream = runnable.astream(to_langchain_messages(request.messages))
            pump = asyncio.create_task(_pump(stream, queue))

            while True:
                item = await cancellation.race(queue.get())
                if item is _DONE:
                    break
                if isinstance(item, _Failure):
                    raise item.error
                text = first_content_delta(item)
                if text:
                    deltas += 1
                    yield Chunk(text=text, kind=kind)

        except ClientDisconnectedError:
            logger.info("Upstream relay cancelled", model=model, deltas=deltas)
            return
        except Exception as e:
            failure = UpstreamFailureError(
                str(e) or type(e).__name__,
                service="dashscope",
                model=model,
                upstream_error_type=type(e).__name__,
            )
            logger.error(
                "Upstream streaming failed",
                deltas=deltas,
                **failure.to_dict(),
            )
            yield Chunk.error(failure.message)
            return
        finally:
            if pump is not None and not pump.done():
                pump.cancel()
                try:
                    await pump
                except asyncio.CancelledError:
                    pass

        logger.info("Upstream relay completed", model=model, deltas=deltas)


async def _pump(stream: AsyncIterator[Any], queue: "asyncio.Queue[Any]") -> None:
    """
    Drain ``stream`` into ``queue`` from a single task, then signal the end.

    ChatTongyi reads dashscope's sync generator through ``run_in_executor``,
    so a worker thread already blocked in ``next()`` when this task is
    cancelled still receives one more upstream delta before the stream is
    released. That delta is dropped here and never reaches the session.
    """
    try:
        async for update in stream:
            await queue.put(update)
    except Exception as e:
        await queue.put(_Failure(e))
        return
    finally:
        aclose = getattr(stream, "aclose", None)
        if aclose is not None:
            await aclose()
    await queue.put(_DONE)
