from agentkai.config import AgentConfig
from agentkai.errors import AgentError, DeadlineExceeded, ModelError
from agentkai.executor import ToolExecutor
from agentkai.instrumentation import configure_logging, instrument, uninstrument
from agentkai.orchestrator import ConversationOrchestrator, RunResult
from agentkai.parts import ChunkAggregator, PartEvent, PartEventType
from agentkai.provider import ModelProvider, OpenAIProvider
from agentkai.streaming import ToolCall, ToolCallAssembler, ToolCallDelta
from agentkai.tools import LLMRecoverableError, Tool, ToolRegistry, ToolResult, tool
from agentkai.transcript import Transcript

__all__ = [
    "AgentConfig",
    "AgentError",
    "ChunkAggregator",
    "ConversationOrchestrator",
    "DeadlineExceeded",
    "LLMRecoverableError",
    "ModelError",
    "ModelProvider",
    "OpenAIProvider",
    "PartEvent",
    "PartEventType",
    "RunResult",
    "Tool",
    "ToolCall",
    "ToolCallAssembler",
    "ToolCallDelta",
    "ToolExecutor",
    "ToolRegistry",
    "ToolResult",
    "Transcript",
    "configure_logging",
    "instrument",
    "tool",
    "uninstrument",
]
