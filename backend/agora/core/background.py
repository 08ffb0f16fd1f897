"""
Fire-and-forget task runner.

Side effects such as reputation awards and notification delivery must not
block or fail the request that triggered them. They run as asyncio tasks;
failures are logged and never propagate to the caller.
"""

import asyncio
from typing import Any, Coroutine

from loguru import logger

_pending: set[asyncio.Task] = set()


async def _guarded(coro: Coroutine[Any, Any, Any], name: str) -> None:
    try:
        await coro
    except Exception:
        logger.exception(f"Background task '{name}' failed")


def fire_and_forget(coro: Coroutine[Any, Any, Any], name: str = "task") -> asyncio.Task:
    """
    Schedule a coroutine without waiting for it.

    Args:
        coro: Coroutine to run
        name: Label used in log messages

    Returns:
        The scheduled task
    """
    task = asyncio.create_task(_guarded(coro, name), name=name)
    # Keep a strong reference until the task finishes
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task


async def drain() -> None:
    """Wait for every scheduled task, including ones scheduled meanwhile."""
    while _pending:
        await asyncio.gather(*list(_pending))


def pending_count() -> int:
    """Number of tasks still running."""
    return len(_pending)
