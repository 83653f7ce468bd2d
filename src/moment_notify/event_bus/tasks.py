"""Detached background work.

Fire-and-forget coroutines such as the Kafka consumer loop are spawned
through ``spawn_detached`` so that their failures are logged instead of
disappearing, and so that shutdown can wait for whatever is still in flight.
"""

import asyncio
from collections.abc import Coroutine
from typing import Any

from loguru import logger

_pending: set[asyncio.Task] = set()


def spawn_detached(coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task:
    """Schedule ``coro`` on the running loop without awaiting it.

    The task is tracked until it finishes; an exception it raises is logged.
    """
    task = asyncio.create_task(coro, name=name)
    _pending.add(task)
    task.add_done_callback(_on_done)
    return task


def _on_done(task: asyncio.Task) -> None:
    _pending.discard(task)
    if task.cancelled():
        logger.debug(f"Detached task {task.get_name()} cancelled")
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Detached task {task.get_name()} failed: {exc!r}")


def pending_task_count() -> int:
    """Number of detached tasks still running."""
    return len(_pending)


async def drain_detached(timeout: float = 5.0) -> None:
    """Wait for in-flight detached tasks, cancelling any that outlive ``timeout``."""
    if not _pending:
        return
    tasks = list(_pending)
    logger.debug(f"Waiting for {len(tasks)} detached tasks")
    done, still_running = await asyncio.wait(tasks, timeout=timeout)
    for task in still_running:
        task.cancel()
    if still_running:
        logger.warning(f"Cancelled {len(still_running)} detached tasks still running at shutdown")
