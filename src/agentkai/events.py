"""Streaming events emitted during a conversation call."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class StreamEvent:
    """Base for all streaming events."""


@dataclass
class RawResponseEvent(StreamEvent):
    """Text delta from the provider stream."""

    content: str = ""
    round_index: int = 0


@dataclass
class RunItemEvent(StreamEvent):
    """A discrete step in the conversation loop.

    ``name`` values: ``"tool_call"`` (``data["call"]``),
    ``"tool_result"`` (``data["result"]``), ``"message"``
    (``data["content"]``) and ``"round_limit"`` (``data["rounds"]``).
    """

    name: str = ""
    data: dict = field(default_factory=dict)


@dataclass
class RunCompleteEvent(StreamEvent):
    """Final event, always the last one yielded."""

    result: Any = None
