import logging
import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from enum import Enum

from agentkai.config import AgentConfig
from agentkai.context import Context
from agentkai.deadline import with_deadline
from agentkai.errors import AgentError, wrap_error
from agentkai.events import RawResponseEvent, RunCompleteEvent, RunItemEvent, StreamEvent
from agentkai.executor import ToolExecutor
from agentkai.goals import GoalCapability, GoalSource
from agentkai.instrumentation import completion_span, record_error, record_usage, run_span
from agentkai.memory import Memory, MemoryCapability, MemoryStore, MemoryType
from agentkai.message import Message, MessageRole
from agentkai.parts import ChunkAggregator, Part, PartEvent
from agentkai.prompts import CONTINUE_NUDGE, ROUND_LIMIT_NOTICE, build_system_prompt
from agentkai.provider import ModelProvider
from agentkai.streaming import (
    StreamChunk,
    TextFragment,
    ToolCall,
    ToolCallAssembler,
    ToolCallFragment,
    ToolResultFragment,
    Usage,
)
from agentkai.tools import Tool, ToolRegistry, ToolResult
from agentkai.transcript import Transcript

logger = logging.getLogger(__name__)


class RunPhase(Enum):
    GENERATING = "generating"
    TOOL_CALLS_PENDING = "tool_calls_pending"
    EXECUTING = "executing"
    DONE = "done"


@dataclass
class RunResult:
    """The result of a single conversation call.

    Args:
        final_text: Text of the last round; the answer when the model
            finished on its own.
        text: Text of every round, concatenated.
        rounds: Number of generation rounds run.
        limit_reached: True when the round bound stopped the call.
        tool_results: Every tool result of the call, in order.
        usage: Token usage summed over all rounds.
    """

    final_text: str
    text: str
    rounds: int
    limit_reached: bool = False
    tool_results: list[ToolResult] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)


@dataclass
class RoundState:
    """Mutable per-call iteration state."""

    round_index: int = 0
    text: str = ""
    round_text: str = ""
    round_results: list[ToolResult] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)
    last_result: ToolResult | None = None
    should_continue: bool = False
    phase: RunPhase = RunPhase.GENERATING

    def begin_round(self, round_index: int) -> None:
        self.round_index = round_index
        self.round_text = ""
        self.round_results = []
        self.should_continue = False


class ConversationOrchestrator:
    """Drives a conversation call through one or more generation rounds.

    Each round streams one generation. Text is aggregated and forwarded
    as it arrives; tool-call deltas are assembled, and every completed
    call is executed right away, one at a time, with its result added
    after it. When the stream ends the round's parts are appended to
    the transcript. A round that produced tool calls is followed by
    another round; a round without any ends the call. ``max_rounds``
    bounds the loop.

    ``run()`` drains ``iter()`` and dispatches callbacks. ``iter()`` is
    the streaming entry point.

    Args:
        provider: Model backend to stream generations from.
        registry: Tools available to every call. Memory and goal tools
            are registered into it when those collaborators are given.
        config: Model name, timeouts and bounds.
        memory: Long-term memory consulted for the system prompt.
        goals: Source of active goals for the system prompt.
        executor: Tool executor, mainly for tests.
        heuristic_assembly: Use the bracket-counting completeness
            heuristic instead of the incremental scanner.
    """

    def __init__(
        self,
        provider: ModelProvider,
        registry: ToolRegistry | None = None,
        config: AgentConfig | None = None,
        memory: MemoryStore | None = None,
        goals: GoalSource | None = None,
        executor: ToolExecutor | None = None,
        heuristic_assembly: bool = False,
    ):
        self.provider = provider
        self.config = config or AgentConfig()
        self.registry = registry if registry is not None else ToolRegistry()
        self.memory = memory
        self.goals = goals
        self.executor = executor or ToolExecutor()
        self.heuristic_assembly = heuristic_assembly
        if memory is not None:
            self.registry.add_capability(MemoryCapability(memory))
        if goals is not None:
            self.registry.add_capability(GoalCapability(goals))

    @property
    def model(self) -> str:
        return self.config.model

    async def run(
        self,
        input: str,
        *,
        tools: list[Tool] | None = None,
        on_fragment: Callable[[str], None] | None = None,
        on_tool_call: Callable[[ToolCall], None] | None = None,
        on_tool_result: Callable[[ToolResult], None] | None = None,
        on_parts_change: Callable[[tuple[Part, ...]], None] | None = None,
        on_part_event: Callable[[PartEvent], None] | None = None,
        max_rounds: int | None = None,
        transcript: Transcript | None = None,
    ) -> str:
        """Run one call and return its final text."""
        result = await self.run_with_result(
            input,
            tools=tools,
            on_fragment=on_fragment,
            on_tool_call=on_tool_call,
            on_tool_result=on_tool_result,
            on_parts_change=on_parts_change,
            on_part_event=on_part_event,
            max_rounds=max_rounds,
            transcript=transcript,
        )
        return result.final_text

    async def run_with_result(
        self,
        input: str,
        *,
        tools: list[Tool] | None = None,
        on_fragment: Callable[[str], None] | None = None,
        on_tool_call: Callable[[ToolCall], None] | None = None,
        on_tool_result: Callable[[ToolResult], None] | None = None,
        on_parts_change: Callable[[tuple[Part, ...]], None] | None = None,
        on_part_event: Callable[[PartEvent], None] | None = None,
        max_rounds: int | None = None,
        transcript: Transcript | None = None,
    ) -> RunResult:
        """Like :meth:`run` but return the full :class:`RunResult`."""
        aggregator = ChunkAggregator()
        unsubscribers = []
        if on_parts_change is not None:
            unsubscribers.append(aggregator.subscribe_parts(on_parts_change))
        if on_part_event is not None:
            unsubscribers.append(aggregator.subscribe_events(on_part_event))

        result: RunResult | None = None
        try:
            async for event in self.iter(
                input, tools=tools, max_rounds=max_rounds,
                transcript=transcript, aggregator=aggregator,
            ):
                if isinstance(event, RawResponseEvent):
                    if on_fragment is not None:
                        on_fragment(event.content)
                elif isinstance(event, RunItemEvent):
                    if event.name == "tool_call" and on_tool_call is not None:
                        on_tool_call(event.data["call"])
                    elif event.name == "tool_result" and on_tool_result is not None:
                        on_tool_result(event.data["result"])
                elif isinstance(event, RunCompleteEvent):
                    result = event.result
        finally:
            for unsubscribe in unsubscribers:
                unsubscribe()

        if result is None:
            raise RuntimeError("iter() ended without emitting RunCompleteEvent")
        return result

    async def iter(
        self,
        input: str,
        *,
        tools: list[Tool] | None = None,
        max_rounds: int | None = None,
        transcript: Transcript | None = None,
        aggregator: ChunkAggregator | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Run one call, yielding events as execution proceeds."""
        max_rounds = max_rounds if max_rounds is not None else self.config.max_rounds
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        if transcript is None:
            transcript = Transcript(max_messages=self.config.max_history)
        if aggregator is None:
            aggregator = ChunkAggregator()

        active = self.registry.merged(tools)
        schemas = active.schemas()
        context = Context(transcript=transcript, registry=active)
        state = RoundState()
        usage = Usage()
        started = time.perf_counter()

        async with run_span(self.model, max_rounds) as span:
            try:
                system_prompt = await self._build_system_prompt(input)
            except AgentError as e:
                record_error(span, e)
                raise
            transcript.append(Message(role=MessageRole.USER, content=input))
            logger.info(f"Starting call with {len(active)} tools, up to {max_rounds} rounds")

            for round_index in range(max_rounds):
                state.begin_round(round_index)
                context.round_index = round_index
                group_id = aggregator.begin_group()
                messages = self._build_messages(system_prompt, transcript, round_index)
                round_started = time.perf_counter()

                try:
                    async for event in self._run_round(
                        messages, schemas, active, context, aggregator, state, usage,
                    ):
                        yield event
                except AgentError as e:
                    record_error(span, e)
                    raise

                aggregator.complete()
                transcript.extend(aggregator.to_messages(group_id))
                state.should_continue = self.should_continue(state)
                logger.info(
                    f"Round {round_index} finished in "
                    f"{time.perf_counter() - round_started:.2f}s with "
                    f"{len(state.round_results)} tool calls"
                )

                if not state.should_continue:
                    self._set_phase(state, RunPhase.DONE)
                    logger.info(
                        f"Call finished after {round_index + 1} rounds in "
                        f"{time.perf_counter() - started:.2f}s"
                    )
                    yield RunItemEvent(name="message", data={"content": state.round_text})
                    yield RunCompleteEvent(result=RunResult(
                        final_text=state.round_text,
                        text=state.text,
                        rounds=round_index + 1,
                        tool_results=list(state.tool_results),
                        usage=usage,
                    ))
                    return

            notice = ROUND_LIMIT_NOTICE.format(rounds=max_rounds)
            transcript.append(Message(role=MessageRole.SYSTEM, content=notice))
            self._set_phase(state, RunPhase.DONE)
            logger.warning(f"Round limit of {max_rounds} reached, stopping")
            yield RunItemEvent(name="round_limit", data={"rounds": max_rounds, "content": notice})
            yield RunCompleteEvent(result=RunResult(
                final_text=state.round_text,
                text=state.text,
                rounds=max_rounds,
                limit_reached=True,
                tool_results=list(state.tool_results),
                usage=usage,
            ))

    def should_continue(self, state: RoundState) -> bool:
        """Decide whether another round follows the one just finished.

        Any round that executed a tool call continues. Override to let
        particular tools end the call.
        """
        return bool(state.round_results)

    # ------------------------------------------------------------------
    # Rounds
    # ------------------------------------------------------------------

    async def _run_round(
        self,
        messages: list[dict],
        schemas: list[dict],
        active: ToolRegistry,
        context: Context,
        aggregator: ChunkAggregator,
        state: RoundState,
        usage: Usage,
    ) -> AsyncIterator[StreamEvent]:
        assembler = ToolCallAssembler(heuristic=self.heuristic_assembly)
        assembler.reset()
        self._set_phase(state, RunPhase.GENERATING)
        logger.debug(f"Round {state.round_index}: sending {len(messages)} messages")

        async with completion_span(self.provider.system, self.model, state.round_index) as span:
            round_usage = Usage()
            stream = self.provider.stream(self.model, messages, tools=schemas or None)
            try:
                while True:
                    chunk = await self._next_chunk(stream, state.round_index)
                    if chunk is None:
                        break
                    if chunk.usage is not None:
                        round_usage.add(chunk.usage)
                    if chunk.content_delta:
                        state.round_text += chunk.content_delta
                        state.text += chunk.content_delta
                        aggregator.add_fragment(TextFragment(chunk.content_delta))
                        yield RawResponseEvent(content=chunk.content_delta, round_index=state.round_index)
                    for delta in chunk.tool_call_deltas or []:
                        call = assembler.process_delta(delta)
                        if call is None:
                            continue
                        async for event in self._dispatch(call, active, context, aggregator, state):
                            yield event
            except AgentError as e:
                record_error(span, e)
                raise
            finally:
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()
            record_usage(span, round_usage)
            usage.add(round_usage)

        for call in assembler.flush():
            logger.warning(f"Tool call {call.name} ({call.id}) ended with unclosed arguments")
            async for event in self._dispatch(call, active, context, aggregator, state):
                yield event

    async def _next_chunk(self, stream: AsyncIterator[StreamChunk], round_index: int) -> StreamChunk | None:
        try:
            return await with_deadline(
                anext(stream, None),
                self.config.effective_generation_timeout,
                f"generation round {round_index}",
            )
        except AgentError:
            raise
        except Exception as e:
            logger.error(f"Generation failed in round {round_index}: {e}")
            raise wrap_error(e, "Generation failed") from e

    async def _dispatch(
        self,
        call: ToolCall,
        active: ToolRegistry,
        context: Context,
        aggregator: ChunkAggregator,
        state: RoundState,
    ) -> AsyncIterator[StreamEvent]:
        self._set_phase(state, RunPhase.TOOL_CALLS_PENDING)
        aggregator.add_fragment(ToolCallFragment(call))
        yield RunItemEvent(name="tool_call", data={"call": call})

        self._set_phase(state, RunPhase.EXECUTING)
        result = await self.executor.execute(call, active, context)
        state.round_results.append(result)
        state.tool_results.append(result)
        state.last_result = result
        aggregator.add_fragment(ToolResultFragment(result))
        yield RunItemEvent(name="tool_result", data={"result": result})
        self._set_phase(state, RunPhase.GENERATING)

    def _set_phase(self, state: RoundState, phase: RunPhase) -> None:
        if state.phase is not phase:
            logger.debug(f"Round {state.round_index}: {state.phase.value} -> {phase.value}")
            state.phase = phase

    # ------------------------------------------------------------------
    # Prompt assembly
    # ------------------------------------------------------------------

    async def _build_system_prompt(self, input: str) -> str:
        memories = None
        goals = None
        if self.memory is not None:
            memories = await self._collaborator(
                self.memory.search(input, self.config.memory_limit), "memory search",
            )
        if self.goals is not None:
            goals = await self._collaborator(self.goals.list_active(), "goal fetch")
            logger.info(f"Active goals: {len(goals)}")
        return build_system_prompt(
            self.config.system_prompt, memories, goals, self.config.memory_limit,
        )

    async def _collaborator(self, awaitable, operation: str):
        """Await a memory or goal round-trip under the request deadline.

        Foreign exceptions are raised as :class:`ModelError` so every
        failure leaving a call is an :class:`AgentError`.
        """
        try:
            return await with_deadline(awaitable, self.config.request_timeout, operation)
        except AgentError:
            raise
        except Exception as e:
            logger.error(f"{operation.capitalize()} failed: {e}")
            raise wrap_error(e, f"{operation.capitalize()} failed") from e

    def _build_messages(self, system_prompt: str, transcript: Transcript, round_index: int) -> list[dict]:
        messages = [{"role": "system", "content": system_prompt}, *transcript.to_openai()]
        if round_index > 0:
            messages.append({"role": "system", "content": CONTINUE_NUDGE})
        return messages

    # ------------------------------------------------------------------
    # Memory
    # ------------------------------------------------------------------

    async def archive(self, transcript: Transcript) -> Memory | None:
        """Store *transcript* as a conversation memory, then clear it.

        The transcript is left untouched when storing fails.
        """
        memory = None
        if self.memory is not None:
            memory = await self._collaborator(
                self.memory.create(
                    "Conversation ended",
                    MemoryType.CONVERSATION,
                    {"role": "system", "history": [m.model_dump() for m in transcript]},
                ),
                "memory create",
            )
        transcript.clear()
        logger.info("Transcript archived and cleared")
        return memory
