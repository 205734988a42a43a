import logging
import os
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable

import openai
from openai import AsyncOpenAI

from agentkai.config import AgentConfig
from agentkai.errors import ModelError
from agentkai.streaming import StreamChunk, ToolCallDelta, Usage

logger = logging.getLogger(__name__)


class ModelProvider(ABC):
    """Streams generation rounds from a model backend.

    Subclasses implement :meth:`stream`, yielding normalised
    :class:`StreamChunk` objects in arrival order.
    """

    system = "unknown"

    @abstractmethod
    def stream(
        self,
        model: str,
        messages: list[dict],
        tools: list[dict] | None = None,
        on_chunk: Callable[[StreamChunk], None] | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Yield :class:`StreamChunk` objects for one generation round."""


def _normalize_chunk(raw) -> StreamChunk | None:
    """Convert an OpenAI ``ChatCompletionChunk`` into a :class:`StreamChunk`."""
    usage = None
    if getattr(raw, "usage", None) is not None:
        usage = Usage(
            prompt_tokens=raw.usage.prompt_tokens or 0,
            completion_tokens=raw.usage.completion_tokens or 0,
        )
    if not raw.choices:
        return StreamChunk(usage=usage) if usage is not None else None

    choice = raw.choices[0]
    delta = choice.delta
    tool_call_deltas = None
    if delta is not None and delta.tool_calls:
        tool_call_deltas = [
            ToolCallDelta(
                index=tc.index,
                id=tc.id,
                name=tc.function.name if tc.function else None,
                arguments=tc.function.arguments if tc.function else None,
            )
            for tc in delta.tool_calls
        ]
    return StreamChunk(
        content_delta=delta.content if delta is not None else None,
        tool_call_deltas=tool_call_deltas,
        finish_reason=choice.finish_reason,
        usage=usage,
    )


class OpenAIProvider(ModelProvider):
    """Any OpenAI-compatible chat-completions endpoint.

    Args:
        api_key: API key; read from ``OPENAI_API_KEY`` when omitted.
        base_url: Endpoint root, e.g. ``https://openrouter.ai/api/v1``.
        temperature: Sampling temperature forwarded on every request.
        max_tokens: Completion token cap forwarded on every request.
    """

    system = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ):
        if not api_key:
            api_key = os.getenv("OPENAI_API_KEY")
        self.base_url = base_url
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            max_retries=5,
            timeout=600.0,
        )

    @classmethod
    def from_config(cls, config: AgentConfig) -> "OpenAIProvider":
        return cls(
            api_key=config.api_key,
            base_url=config.base_url,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        )

    async def stream(
        self,
        model: str,
        messages: list[dict],
        tools: list[dict] | None = None,
        on_chunk: Callable[[StreamChunk], None] | None = None,
    ) -> AsyncIterator[StreamChunk]:
        kwargs = {
            "model": model,
            "messages": messages,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature
        if self.max_tokens is not None:
            kwargs["max_tokens"] = self.max_tokens

        try:
            response = await self.client.chat.completions.create(**kwargs)
            async for raw in response:
                chunk = _normalize_chunk(raw)
                if chunk is None:
                    continue
                if on_chunk is not None:
                    on_chunk(chunk)
                yield chunk
        except openai.APIError as e:
            logger.error(f"Streaming generation failed: {e}")
            raise ModelError(f"Streaming generation failed: {e}") from e
