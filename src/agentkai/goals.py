from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

from agentkai.capability import Capability
from agentkai.tools import Tool, tool

logger = logging.getLogger(__name__)


class GoalStatus(Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class Goal(BaseModel):
    description: str
    priority: int = 1
    progress: float = Field(default=0.0, ge=0.0, le=1.0)
    status: GoalStatus = GoalStatus.ACTIVE


@runtime_checkable
class GoalSource(Protocol):
    async def list_active(self) -> list[Goal]:
        ...


class InMemoryGoalStore:
    """Process-local :class:`GoalSource` with simple bookkeeping."""

    def __init__(self, goals: list[Goal] | None = None) -> None:
        self.goals: list[Goal] = list(goals or [])

    def add(self, description: str, priority: int = 1) -> Goal:
        goal = Goal(description=description, priority=priority)
        self.goals.append(goal)
        logger.info(f"Goal added: {description}")
        return goal

    def update_progress(self, goal: Goal, progress: float) -> None:
        goal.progress = min(max(progress, 0.0), 1.0)
        if goal.progress >= 1.0:
            goal.status = GoalStatus.COMPLETED

    async def list_active(self) -> list[Goal]:
        active = [g for g in self.goals if g.status == GoalStatus.ACTIVE]
        return sorted(active, key=lambda g: g.priority, reverse=True)


class GoalCapability(Capability):
    """Exposes ``list_goals`` to the model."""

    def __init__(self, goals: GoalSource):
        super().__init__("goals")
        self.goals = goals

    def tools(self) -> list[Tool]:
        source = self.goals

        @tool
        async def list_goals():
            """List the user's active goals with priority and progress."""
            active = await source.list_active()
            return [
                {"description": g.description, "priority": g.priority, "progress": g.progress}
                for g in active
            ]

        return [list_goals]
