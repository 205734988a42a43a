"""Streaming assistant with long-term memory and goals.

Demonstrates:
- Building an orchestrator from environment configuration
- Plugging in memory and goal collaborators
- Streaming text and tool activity through callbacks
- Archiving the conversation into memory on exit

Usage:
    uv run --env-file=.env examples/memory_agent_example.py --model gpt-4o-mini --trace
    uv run examples/memory_agent_example.py --base-url http://localhost:8000/v1 --model Qwen/Qwen3-8B
"""

import argparse
import asyncio
import logging
from datetime import datetime

from agentkai.config import AgentConfig
from agentkai.goals import InMemoryGoalStore
from agentkai.instrumentation import configure_logging
from agentkai.memory import InMemoryMemoryStore
from agentkai.orchestrator import ConversationOrchestrator
from agentkai.provider import OpenAIProvider
from agentkai.tools import ToolRegistry, tool
from agentkai.transcript import Transcript


def setup_tracing(service_name: str):
    from opentelemetry import trace
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import (
        SimpleSpanProcessor, ConsoleSpanExporter,
    )
    from agentkai.instrumentation import instrument

    provider = TracerProvider(
        resource=Resource({SERVICE_NAME: service_name})
    )
    provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)
    instrument()


@tool
def current_time():
    """Return the current local date and time."""
    return datetime.now().isoformat(timespec="minutes")


async def main():
    parser = argparse.ArgumentParser(description="Memory agent")
    parser.add_argument("--model", default=None)
    parser.add_argument("--base-url", default=None)
    parser.add_argument("--max-rounds", type=int, default=None)
    parser.add_argument("--trace", action="store_true")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)
    if args.trace:
        setup_tracing("memory-agent")

    config = AgentConfig.from_env()
    overrides = {"model": args.model, "base_url": args.base_url, "max_rounds": args.max_rounds}
    config = config.model_copy(update={k: v for k, v in overrides.items() if v is not None})

    memory = InMemoryMemoryStore()
    goals = InMemoryGoalStore()
    goals.add("Learn what the user cares about", priority=2)

    orchestrator = ConversationOrchestrator(
        provider=OpenAIProvider.from_config(config),
        registry=ToolRegistry([current_time]),
        config=config,
        memory=memory,
        goals=goals,
    )
    transcript = Transcript(max_messages=config.max_history)

    print("Memory Assistant (Ctrl-D to quit)\n")

    while True:
        try:
            user_input = input("You: ")
        except (KeyboardInterrupt, EOFError):
            break

        print("Assistant: ", end="", flush=True)
        await orchestrator.run(
            user_input,
            transcript=transcript,
            on_fragment=lambda text: print(text, end="", flush=True),
            on_tool_call=lambda call: print(f"\n  [{call.name} {call.arguments}]"),
            on_tool_result=lambda result: print(f"  -> {result.content}"),
        )
        print("\n")

    await orchestrator.archive(transcript)
    print(f"\nGoodbye! {len(memory.memories)} memories stored.")


if __name__ == "__main__":
    asyncio.run(main())
