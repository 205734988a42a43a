from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agentkai.tools import ToolRegistry
    from agentkai.transcript import Transcript


@dataclass
class Context:
    """Runtime context injected into tools that declare a ``context`` parameter.

    The orchestrator creates one Context per call and passes it to
    every tool execution of that call.

    Args:
        transcript: The transcript owned by the current call.
        registry: The active tool set of the current call.
        round_index: Zero-based index of the round being executed.
    """

    transcript: Transcript
    registry: ToolRegistry
    round_index: int = 0
