"""Tracked fire-and-forget background tasks.

Provisioning and reset calls are not awaited by their callers. They run as
tasks held in a module-level set until done, and any exception they raise is
logged rather than lost.
"""

import asyncio
from typing import Any, Coroutine, Optional, Set

import structlog

logger = structlog.get_logger(__name__)

_background_tasks: Set[asyncio.Task] = set()


def spawn_background(
    coro: Coroutine[Any, Any, Any], name: Optional[str] = None
) -> asyncio.Task:
    """Schedule a coroutine without awaiting it."""
    task = asyncio.create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_on_task_done)
    return task


def _on_task_done(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(
            "Background task failed",
            task=task.get_name(),
            error=str(exc),
            exception_type=type(exc).__name__,
        )


def pending_background_tasks() -> int:
    return len(_background_tasks)


async def cancel_background_tasks() -> None:
    """Cancel and drain all outstanding background tasks (used on shutdown)."""
    tasks = list(_background_tasks)
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)
