"""Aggregation of streamed fragments into transcript parts.

The :class:`ChunkAggregator` merges consecutive fragments of the same
kind into one open :data:`Part`, closes it when the kind changes, and
keeps tool results atomic. Subscribers watch it through two
independent channels: one receiving the full part list on every
change, one receiving :class:`PartEvent` deltas.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, ClassVar, Generic, TypeVar, Union

from agentkai.message import Message, MessageRole, ToolCallRequestMessage, ToolCallResultMessage
from agentkai.streaming import Fragment, ToolCall, ToolResultFragment
from agentkai.tools import ToolResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class TextPart:
    kind: ClassVar[str] = "text"
    text: str
    group_id: str
    is_complete: bool = False


@dataclass(frozen=True)
class ToolCallPart:
    kind: ClassVar[str] = "tool_call"
    call: ToolCall
    group_id: str
    is_complete: bool = False


@dataclass(frozen=True)
class ToolResultPart:
    kind: ClassVar[str] = "tool_result"
    result: ToolResult
    group_id: str
    is_complete: bool = True


Part = Union[TextPart, ToolCallPart, ToolResultPart]


class PartEventType(Enum):
    ADDED = "added"
    UPDATED = "updated"
    COMPLETED = "completed"
    RESET = "reset"


@dataclass(frozen=True)
class PartEvent:
    type: PartEventType
    part: Part | None = None
    index: int | None = None


class Broadcast(Generic[T]):
    """Synchronous fan-out to every subscribed listener."""

    def __init__(self) -> None:
        self._listeners: list[Callable[[T], None]] = []

    def subscribe(self, listener: Callable[[T], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, value: T) -> None:
        for listener in list(self._listeners):
            listener(value)


class ChunkAggregator:
    """Builds an ordered list of parts from streamed fragments.

    At most one part is open at a time. A fragment of the same kind as
    the open part is merged into it; any other fragment closes it and
    starts a new part. Tool results always form their own, already
    complete part.

    Args:
        group_id: Group stamped on new parts; change it per round with
            :meth:`begin_group`.
    """

    def __init__(self, group_id: str | None = None) -> None:
        self.group_id = group_id or uuid.uuid4().hex
        self._parts: list[Part] = []
        self._parts_channel: Broadcast[tuple[Part, ...]] = Broadcast()
        self._event_channel: Broadcast[PartEvent] = Broadcast()

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe_parts(self, listener: Callable[[tuple[Part, ...]], None]) -> Callable[[], None]:
        """Receive the full part list now and after every change."""
        unsubscribe = self._parts_channel.subscribe(listener)
        listener(self.get_parts())
        return unsubscribe

    def subscribe_events(self, listener: Callable[[PartEvent], None]) -> Callable[[], None]:
        """Receive ``added`` / ``updated`` / ``completed`` / ``reset`` events."""
        return self._event_channel.subscribe(listener)

    # ------------------------------------------------------------------
    # State changes
    # ------------------------------------------------------------------

    def begin_group(self, group_id: str | None = None) -> str:
        """Close the open part and stamp later parts with a new group id."""
        self.complete()
        self.group_id = group_id or uuid.uuid4().hex
        return self.group_id

    def add_fragment(self, fragment: Fragment) -> None:
        last = self._parts[-1] if self._parts else None

        if isinstance(fragment, ToolResultFragment):
            self.complete()
            self._append(ToolResultPart(result=fragment.result, group_id=self.group_id))
            return

        if last is not None and not last.is_complete and last.kind == fragment.kind:
            index = len(self._parts) - 1
            self._parts[index] = self._merge(last, fragment)
            self._parts_channel.publish(self.get_parts())
            self._event_channel.publish(
                PartEvent(PartEventType.UPDATED, self._parts[index], index)
            )
            return

        self.complete()
        self._append(self._create(fragment))

    def complete(self) -> None:
        """Close the open part, if any."""
        if not self._parts or self._parts[-1].is_complete:
            return
        index = len(self._parts) - 1
        self._parts[index] = replace(self._parts[index], is_complete=True)
        self._parts_channel.publish(self.get_parts())
        self._event_channel.publish(
            PartEvent(PartEventType.COMPLETED, self._parts[index], index)
        )

    def reset(self) -> None:
        self._parts = []
        self._parts_channel.publish(self.get_parts())
        self._event_channel.publish(PartEvent(PartEventType.RESET))

    def get_parts(self) -> tuple[Part, ...]:
        return tuple(self._parts)

    def _append(self, part: Part) -> None:
        self._parts.append(part)
        self._parts_channel.publish(self.get_parts())
        self._event_channel.publish(
            PartEvent(PartEventType.ADDED, part, len(self._parts) - 1)
        )

    def _create(self, fragment: Fragment) -> Part:
        if fragment.kind == "text":
            return TextPart(text=fragment.text, group_id=self.group_id)
        return ToolCallPart(
            call=ToolCall(
                id=fragment.call.id,
                name=fragment.call.name,
                arguments=fragment.call.arguments,
            ),
            group_id=self.group_id,
        )

    def _merge(self, part: Part, fragment: Fragment) -> Part:
        if isinstance(part, TextPart):
            return replace(part, text=part.text + fragment.text)
        return replace(
            part,
            call=ToolCall(
                id=part.call.id + fragment.call.id,
                name=part.call.name + fragment.call.name,
                arguments=part.call.arguments + fragment.call.arguments,
            ),
        )

    # ------------------------------------------------------------------
    # Materialization
    # ------------------------------------------------------------------

    def to_messages(self, group_id: str | None = None) -> list[Message]:
        """Map each part to one transcript message, in part order.

        Text becomes an assistant message, a tool call an assistant
        message carrying that call, a tool result a tool message
        referencing its call id. Pass *group_id* to materialize a
        single round. Repeated calls return equal sequences.
        """
        messages: list[Message] = []
        for part in self._parts:
            if group_id is not None and part.group_id != group_id:
                continue
            if isinstance(part, TextPart):
                messages.append(Message(role=MessageRole.ASSISTANT, content=part.text))
            elif isinstance(part, ToolCallPart):
                messages.append(ToolCallRequestMessage(
                    content="",
                    tool_calls=[ToolCall(part.call.id, part.call.name, part.call.arguments)],
                ))
            else:
                messages.append(ToolCallResultMessage(
                    content=part.result.content,
                    tool_call_id=part.result.call_id,
                ))
        return messages
