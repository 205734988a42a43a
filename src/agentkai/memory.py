"""Long-term memory collaborator contract and reference store.

Embedding and vector search live outside this package; anything
implementing :class:`MemoryStore` can be plugged in. The
:class:`InMemoryMemoryStore` here matches by keyword only.
"""

from __future__ import annotations

import logging
import time
import uuid
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from agentkai.capability import Capability
from agentkai.tools import Tool, tool

logger = logging.getLogger(__name__)


class MemoryType(Enum):
    OBSERVATION = "observation"
    REFLECTION = "reflection"
    CONVERSATION = "conversation"
    FACT = "fact"
    PLAN = "plan"

    @classmethod
    def parse(cls, value: str | None) -> MemoryType:
        """Map a loose string to a member, defaulting to ``OBSERVATION``."""
        try:
            return cls((value or "").lower())
        except ValueError:
            return cls.OBSERVATION


class Memory(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    content: str
    type: MemoryType = MemoryType.OBSERVATION
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: float = Field(default_factory=time.time)


@runtime_checkable
class MemoryStore(Protocol):
    async def search(self, query: str, limit: int = 10) -> list[str]:
        ...

    async def create(
        self, content: str, type: MemoryType = MemoryType.OBSERVATION,
        metadata: dict[str, Any] | None = None,
    ) -> Memory:
        ...


class InMemoryMemoryStore:
    """Process-local :class:`MemoryStore` ranking by shared keywords."""

    def __init__(self) -> None:
        self.memories: list[Memory] = []

    async def create(
        self, content: str, type: MemoryType = MemoryType.OBSERVATION,
        metadata: dict[str, Any] | None = None,
    ) -> Memory:
        memory = Memory(content=content, type=type, metadata=metadata or {})
        self.memories.append(memory)
        logger.info(f"Memory created: {memory.id} ({type.value})")
        return memory

    async def search(self, query: str, limit: int = 10) -> list[str]:
        terms = {t for t in query.lower().split() if t}
        if not terms or limit <= 0:
            return []
        scored = []
        for position, memory in enumerate(self.memories):
            text = memory.content.lower()
            score = sum(1 for t in terms if t in text)
            if score:
                scored.append((score, position, memory.content))
        scored.sort(key=lambda item: (item[0], item[1]), reverse=True)
        return [content for _, _, content in scored[:limit]]


class MemoryCapability(Capability):
    """Exposes ``add_memory`` and ``search_memories`` to the model."""

    def __init__(self, store: MemoryStore):
        super().__init__("memory")
        self.store = store

    def tools(self) -> list[Tool]:
        store = self.store

        @tool
        async def add_memory(content: str, type: str = "observation", importance: float = 0.5):
            """Save information worth remembering to long-term memory.

            Args:
                content: What to remember.
                type: One of observation, reflection, conversation, fact, plan.
                importance: How important the memory is, from 0 to 1.
            """
            memory = await store.create(
                content, MemoryType.parse(type), {"importance": importance},
            )
            return {"success": True, "id": memory.id, "message": "Memory added"}

        @tool
        async def search_memories(query: str, limit: int = 5):
            """Search long-term memory.

            Args:
                query: Words to look for.
                limit: Maximum number of memories to return.
            """
            found = await store.search(query, limit)
            return {"success": True, "count": len(found), "memories": found}

        return [add_memory, search_memories]
