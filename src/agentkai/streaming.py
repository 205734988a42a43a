"""Streaming primitives for generation rounds.

Providers yield :class:`StreamChunk` objects. Tool-call arguments arrive
as :class:`ToolCallDelta` pieces, possibly interleaved across calls;
the :class:`ToolCallAssembler` reassembles them and hands back each
:class:`ToolCall` as soon as its arguments are syntactically closed.
The orchestrator turns all of this into :data:`Fragment` objects for
the :class:`~agentkai.parts.ChunkAggregator`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, ClassVar, Union

if TYPE_CHECKING:
    from agentkai.tools import ToolResult

logger = logging.getLogger(__name__)


@dataclass
class ToolCallDelta:
    """A piece of one tool call from a streaming chunk."""

    index: int
    id: str | None = None
    name: str | None = None
    arguments: str | None = None


@dataclass
class Usage:
    """Token usage reported by the backend."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def add(self, other: Usage) -> None:
        self.prompt_tokens += other.prompt_tokens
        self.completion_tokens += other.completion_tokens


@dataclass
class StreamChunk:
    """Normalised streaming chunk from any provider."""

    content_delta: str | None = None
    tool_call_deltas: list[ToolCallDelta] | None = None
    finish_reason: str | None = None
    usage: Usage | None = None


@dataclass
class ToolCall:
    """A tool invocation requested by the model.

    ``arguments`` is the raw argument text as streamed; it is only
    parsed when the call is executed.
    """

    id: str = ""
    name: str = ""
    arguments: str = ""

    def to_openai(self) -> dict:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


# ---------------------------------------------------------------------------
# Fragments
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TextFragment:
    kind: ClassVar[str] = "text"
    text: str


@dataclass(frozen=True)
class ToolCallFragment:
    kind: ClassVar[str] = "tool_call"
    call: ToolCall


@dataclass(frozen=True)
class ToolResultFragment:
    kind: ClassVar[str] = "tool_result"
    result: ToolResult


Fragment = Union[TextFragment, ToolCallFragment, ToolResultFragment]


# ---------------------------------------------------------------------------
# Argument completeness
# ---------------------------------------------------------------------------


class ArgumentState(Enum):
    NEEDS_MORE = "needs_more"
    COMPLETE = "complete"
    INVALID = "invalid"


_OPENERS = {"}": "{", "]": "["}


class ArgumentScanner:
    """Incremental structural scanner for streamed JSON arguments.

    Tracks string literals and escapes so that brackets and quotes
    inside string values never affect nesting. Once the top-level
    value closes, the full text is parsed to confirm it.
    """

    def __init__(self) -> None:
        self.text = ""
        self.state = ArgumentState.NEEDS_MORE
        self._stack: list[str] = []
        self._in_string = False
        self._escaped = False
        self._started = False

    def feed(self, chunk: str) -> ArgumentState:
        if self.state is not ArgumentState.NEEDS_MORE:
            # Anything after a closed value invalidates it.
            self.text += chunk
            if chunk.strip():
                self.state = ArgumentState.INVALID
            return self.state
        self.text += chunk
        for ch in chunk:
            if self._in_string:
                if self._escaped:
                    self._escaped = False
                elif ch == "\\":
                    self._escaped = True
                elif ch == '"':
                    self._in_string = False
                continue
            if ch.isspace():
                continue
            if not self._started:
                if ch not in "{[":
                    self.state = ArgumentState.INVALID
                    return self.state
                self._started = True
            if ch == '"':
                self._in_string = True
            elif ch in "{[":
                self._stack.append(ch)
            elif ch in "}]":
                if not self._stack or self._stack[-1] != _OPENERS[ch]:
                    self.state = ArgumentState.INVALID
                    return self.state
                self._stack.pop()
            elif not self._stack:
                self.state = ArgumentState.INVALID
                return self.state
        if self._started and not self._stack:
            try:
                json.loads(self.text)
            except json.JSONDecodeError:
                self.state = ArgumentState.INVALID
            else:
                self.state = ArgumentState.COMPLETE
        return self.state


def scan_arguments(text: str) -> ArgumentState:
    """Classify *text* as needing more input, complete, or invalid."""
    return ArgumentScanner().feed(text)


def looks_balanced(text: str) -> bool:
    """Bracket and quote counting heuristic.

    Accepts anything that parses, otherwise anything with balanced
    braces, balanced brackets and an even number of quotes. It can
    accept text that is not valid JSON yet, e.g. when a string value
    contains an unbalanced brace.
    """
    try:
        json.loads(text)
        return True
    except json.JSONDecodeError:
        pass
    if text.count("{") != text.count("}"):
        return False
    if text.count("[") != text.count("]"):
        return False
    return text.count('"') % 2 == 0


# ---------------------------------------------------------------------------
# Assembler
# ---------------------------------------------------------------------------


@dataclass
class _PendingCall:
    call: ToolCall = field(default_factory=ToolCall)
    scanner: ArgumentScanner = field(default_factory=ArgumentScanner)


class ToolCallAssembler:
    """Assembles tool calls from streamed deltas keyed by stream index.

    Accumulators are keyed by index rather than id because the id may
    itself arrive in pieces. A call is complete once it has an id, a
    name, and arguments that are syntactically closed; its accumulator
    is then discarded so the index can be reused.

    Args:
        heuristic: Decide closure with :func:`looks_balanced` instead
            of the incremental scanner.
    """

    def __init__(self, heuristic: bool = False) -> None:
        self.heuristic = heuristic
        self._pending: dict[int, _PendingCall] = {}

    def process_delta(self, delta: ToolCallDelta) -> ToolCall | None:
        pending = self._pending.get(delta.index)
        if pending is None:
            pending = _PendingCall()
            self._pending[delta.index] = pending
        tc = pending.call
        if delta.id:
            tc.id += delta.id
        if delta.name:
            tc.name += delta.name
        if delta.arguments:
            tc.arguments += delta.arguments
            pending.scanner.feed(delta.arguments)

        if not self._is_complete(pending):
            return None
        del self._pending[delta.index]
        logger.debug(f"Assembled tool call {tc.name} ({tc.id}) at index {delta.index}")
        return tc

    def _is_complete(self, pending: _PendingCall) -> bool:
        tc = pending.call
        if not tc.id or not tc.name:
            return False
        if self.heuristic:
            return bool(tc.arguments) and looks_balanced(tc.arguments)
        return pending.scanner.state is not ArgumentState.NEEDS_MORE

    def has_pending(self) -> bool:
        return bool(self._pending)

    def flush(self) -> list[ToolCall]:
        """Return identifiable calls still pending, in index order.

        Called when the stream ends: a call whose arguments never closed
        (or never arrived) is handed over as-is so execution can report
        the problem in-band. Accumulators without an id or name are
        dropped.
        """
        flushed = []
        for index in sorted(self._pending):
            tc = self._pending[index].call
            if tc.id and tc.name:
                flushed.append(tc)
            else:
                logger.warning(f"Dropping unidentifiable partial tool call at index {index}")
        self._pending.clear()
        return flushed

    def reset(self) -> None:
        self._pending.clear()
