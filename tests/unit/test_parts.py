"""Unit tests for ChunkAggregator."""

from agentkai.message import MessageRole, ToolCallRequestMessage, ToolCallResultMessage
from agentkai.parts import (
    ChunkAggregator,
    PartEventType,
    TextPart,
    ToolCallPart,
    ToolResultPart,
)
from agentkai.streaming import TextFragment, ToolCall, ToolCallFragment, ToolResultFragment
from agentkai.tools import ToolResult


def _result(call_id="c1", output="ok"):
    return ToolResult(call_id=call_id, tool_name="f", arguments={}, output=output)


class TestAggregation:
    def test_same_kind_text_merges_into_one_part(self):
        agg = ChunkAggregator(group_id="g")
        agg.add_fragment(TextFragment("Hel"))
        agg.add_fragment(TextFragment("lo"))
        agg.complete()

        assert agg.get_parts() == (TextPart(text="Hello", group_id="g", is_complete=True),)

    def test_open_part_until_complete(self):
        agg = ChunkAggregator()
        agg.add_fragment(TextFragment("a"))
        assert agg.get_parts()[0].is_complete is False

    def test_kind_switch_closes_previous_part(self):
        agg = ChunkAggregator(group_id="g")
        call = ToolCall(id="c1", name="f", arguments="{}")
        agg.add_fragment(TextFragment("thinking"))
        agg.add_fragment(ToolCallFragment(call))
        agg.add_fragment(TextFragment("done"))

        parts = agg.get_parts()
        assert [p.kind for p in parts] == ["text", "tool_call", "text"]
        assert [p.is_complete for p in parts] == [True, True, False]
        assert parts[1].call == call

    def test_tool_call_fragments_concatenate(self):
        agg = ChunkAggregator()
        agg.add_fragment(ToolCallFragment(ToolCall(id="c", name="ad", arguments='{"x":')))
        agg.add_fragment(ToolCallFragment(ToolCall(id="1", name="d", arguments="1}")))

        (part,) = agg.get_parts()
        assert part.call == ToolCall(id="c1", name="add", arguments='{"x":1}')

    def test_merged_call_does_not_mutate_fragment(self):
        agg = ChunkAggregator()
        first = ToolCall(id="c", name="f", arguments="{")
        agg.add_fragment(ToolCallFragment(first))
        agg.add_fragment(ToolCallFragment(ToolCall(id="1", arguments="}")))
        assert first == ToolCall(id="c", name="f", arguments="{")

    def test_tool_results_are_atomic(self):
        agg = ChunkAggregator()
        agg.add_fragment(ToolResultFragment(_result("c1")))
        agg.add_fragment(ToolResultFragment(_result("c2")))

        parts = agg.get_parts()
        assert len(parts) == 2
        assert all(isinstance(p, ToolResultPart) and p.is_complete for p in parts)

    def test_completed_part_is_not_reopened(self):
        agg = ChunkAggregator()
        agg.add_fragment(TextFragment("a"))
        agg.complete()
        agg.add_fragment(TextFragment("b"))

        assert [p.text for p in agg.get_parts()] == ["a", "b"]

    def test_begin_group_stamps_new_parts(self):
        agg = ChunkAggregator(group_id="round-0")
        agg.add_fragment(TextFragment("a"))
        agg.begin_group("round-1")
        agg.add_fragment(TextFragment("b"))

        parts = agg.get_parts()
        assert [p.group_id for p in parts] == ["round-0", "round-1"]
        assert parts[0].is_complete

    def test_get_parts_is_a_snapshot(self):
        agg = ChunkAggregator()
        agg.add_fragment(TextFragment("a"))
        snapshot = agg.get_parts()
        agg.add_fragment(TextFragment("b"))
        assert snapshot[0].text == "a"


class TestEvents:
    def test_event_sequence(self):
        agg = ChunkAggregator()
        events = []
        agg.subscribe_events(events.append)

        agg.add_fragment(TextFragment("a"))
        agg.add_fragment(TextFragment("b"))
        agg.add_fragment(ToolCallFragment(ToolCall("c1", "f", "{}")))
        agg.add_fragment(ToolResultFragment(_result()))
        agg.complete()

        assert [e.type for e in events] == [
            PartEventType.ADDED,
            PartEventType.UPDATED,
            PartEventType.COMPLETED,
            PartEventType.ADDED,
            PartEventType.COMPLETED,
            PartEventType.ADDED,
        ]
        assert events[1].part.text == "ab"
        assert events[1].index == 0

    def test_one_completion_per_kind_switch(self):
        agg = ChunkAggregator()
        completions = []
        agg.subscribe_events(
            lambda e: completions.append(e) if e.type is PartEventType.COMPLETED else None
        )
        for fragment in [TextFragment("a"), TextFragment("b"),
                         ToolCallFragment(ToolCall("c1", "f", "{}")), TextFragment("c")]:
            agg.add_fragment(fragment)

        assert [e.part.kind for e in completions] == ["text", "tool_call"]

    def test_complete_is_idempotent(self):
        agg = ChunkAggregator()
        events = []
        agg.subscribe_events(events.append)
        agg.add_fragment(TextFragment("a"))
        agg.complete()
        agg.complete()

        assert [e.type for e in events] == [PartEventType.ADDED, PartEventType.COMPLETED]

    def test_parts_subscription_replays_and_follows(self):
        agg = ChunkAggregator()
        agg.add_fragment(TextFragment("a"))
        snapshots = []
        agg.subscribe_parts(snapshots.append)
        agg.add_fragment(TextFragment("b"))

        assert [tuple(p.text for p in s) for s in snapshots] == [("a",), ("ab",)]

    def test_unsubscribe(self):
        agg = ChunkAggregator()
        events = []
        unsubscribe = agg.subscribe_events(events.append)
        agg.add_fragment(TextFragment("a"))
        unsubscribe()
        agg.add_fragment(TextFragment("b"))

        assert len(events) == 1

    def test_reset(self):
        agg = ChunkAggregator()
        events, snapshots = [], []
        agg.add_fragment(TextFragment("a"))
        agg.subscribe_events(events.append)
        agg.subscribe_parts(snapshots.append)
        agg.reset()

        assert agg.get_parts() == ()
        assert events[-1].type is PartEventType.RESET
        assert snapshots[-1] == ()


class TestToMessages:
    def _build(self):
        agg = ChunkAggregator(group_id="g0")
        agg.add_fragment(TextFragment("Let me add."))
        agg.add_fragment(ToolCallFragment(ToolCall("c1", "add", '{"x": 1}')))
        agg.add_fragment(ToolResultFragment(_result("c1", output={"sum": 1})))
        agg.begin_group("g1")
        agg.add_fragment(TextFragment("It is 1."))
        agg.complete()
        return agg

    def test_one_message_per_part_in_order(self):
        messages = self._build().to_messages()

        assert [m.role for m in messages] == [
            MessageRole.ASSISTANT, MessageRole.ASSISTANT, MessageRole.TOOL, MessageRole.ASSISTANT,
        ]
        assert messages[0].content == "Let me add."
        assert isinstance(messages[1], ToolCallRequestMessage)
        assert messages[1].tool_calls == [ToolCall("c1", "add", '{"x": 1}')]
        assert isinstance(messages[2], ToolCallResultMessage)
        assert messages[2].tool_call_id == "c1"
        assert messages[2].content == '{"sum": 1}'

    def test_idempotent(self):
        agg = self._build()
        first = [m.to_openai() for m in agg.to_messages()]
        second = [m.to_openai() for m in agg.to_messages()]
        assert first == second

    def test_group_filter(self):
        messages = self._build().to_messages("g1")
        assert [m.content for m in messages] == ["It is 1."]

    def test_open_parts_are_materialized(self):
        agg = ChunkAggregator()
        agg.add_fragment(TextFragment("partial"))
        assert [m.content for m in agg.to_messages()] == ["partial"]


def test_part_types_exposed():
    agg = ChunkAggregator()
    agg.add_fragment(ToolCallFragment(ToolCall("c1", "f", "{}")))
    assert isinstance(agg.get_parts()[0], ToolCallPart)
