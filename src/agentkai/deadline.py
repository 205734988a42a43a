import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from agentkai.errors import DeadlineExceeded

T = TypeVar("T")


async def with_deadline(awaitable: Awaitable[T], timeout: float | None, operation: str) -> T:
    """Await *awaitable*, raising :class:`DeadlineExceeded` after *timeout* seconds.

    ``timeout=None`` waits indefinitely. A ``TimeoutError`` raised by
    the awaitable itself propagates unchanged.
    """
    if timeout is None:
        return await awaitable
    cm = asyncio.timeout(timeout)
    try:
        async with cm:
            return await awaitable
    except TimeoutError as e:
        if cm.expired():
            raise DeadlineExceeded(operation, timeout) from e
        raise
