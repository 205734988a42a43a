import json

import pytest

from agentkai.config import AgentConfig
from agentkai.orchestrator import ConversationOrchestrator
from agentkai.provider import ModelProvider
from agentkai.streaming import StreamChunk, ToolCallDelta, Usage
from agentkai.tools import ToolRegistry, tool


# ---------------------------------------------------------------------------
# Mock provider
# ---------------------------------------------------------------------------

class MockProvider(ModelProvider):
    """Provider that streams pre-queued rounds of chunks. No network calls.

    Each entry of ``rounds`` is the chunk list of one generation. An
    exception instance inside a round is raised when reached. When the
    queue runs dry, ``repeat`` (if set) is streamed again.
    """

    system = "mock"

    def __init__(self):
        self.rounds: list[list] = []
        self.repeat: list | None = None
        self.call_log: list[dict] = []

    async def stream(self, model, messages, tools=None, on_chunk=None):
        self.call_log.append({"model": model, "messages": messages, "tools": tools})
        if self.rounds:
            chunks = self.rounds.pop(0)
        elif self.repeat is not None:
            chunks = self.repeat
        else:
            raise AssertionError("MockProvider ran out of rounds")
        for chunk in chunks:
            if isinstance(chunk, BaseException):
                raise chunk
            if on_chunk is not None:
                on_chunk(chunk)
            yield chunk


# ---------------------------------------------------------------------------
# Chunk builder helpers
# ---------------------------------------------------------------------------

def text_round(*pieces: str) -> list[StreamChunk]:
    """Chunks streaming *pieces* as text, then a stop."""
    chunks = [StreamChunk(content_delta=p) for p in pieces]
    chunks.append(StreamChunk(finish_reason="stop", usage=Usage(10, len(pieces))))
    return chunks


def tool_call_chunks(
    name: str,
    args: dict,
    call_id: str = "call_1",
    index: int = 0,
    pieces: int = 3,
) -> list[StreamChunk]:
    """Chunks streaming one tool call with its arguments split in *pieces*."""
    arguments = json.dumps(args)
    size = max(1, -(-len(arguments) // pieces))
    parts = [arguments[i:i + size] for i in range(0, len(arguments), size)]
    chunks = [StreamChunk(tool_call_deltas=[
        ToolCallDelta(index=index, id=call_id, name=name, arguments=""),
    ])]
    chunks.extend(
        StreamChunk(tool_call_deltas=[ToolCallDelta(index=index, arguments=p)])
        for p in parts
    )
    return chunks


def tool_round(name: str, args: dict, call_id: str = "call_1", text: str | None = None) -> list[StreamChunk]:
    """One generation requesting a single tool call, optionally after some text."""
    chunks = [StreamChunk(content_delta=text)] if text else []
    chunks.extend(tool_call_chunks(name, args, call_id))
    chunks.append(StreamChunk(finish_reason="tool_calls"))
    return chunks


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

@tool
def add(x: int, y: int = 0):
    """Add two numbers.

    Args:
        x: First operand.
        y: Second operand.
    """
    return x + y


@tool
def echo(text: str):
    """Echo text back."""
    return text


@tool
def explode():
    """Always fails."""
    raise RuntimeError("kaboom")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_provider():
    return MockProvider()


@pytest.fixture
def registry():
    return ToolRegistry([add, echo, explode])


@pytest.fixture
def make_orchestrator(mock_provider, registry):
    """Factory fixture building an orchestrator on the mock provider."""
    def _make(provider=None, registry_override=None, **config_overrides):
        config = AgentConfig(model="mock-model", **config_overrides)
        return ConversationOrchestrator(
            provider=provider or mock_provider,
            registry=registry_override if registry_override is not None else registry,
            config=config,
        )
    return _make
