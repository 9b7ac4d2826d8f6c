############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# background.py: Detached best-effort background tasks
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Detached background tasks.

A detached task is an at-most-once, non-blocking side channel: the caller
never awaits it and its failure is only logged. Nothing that must happen
belongs here.
"""

import asyncio
from typing import Awaitable, Set

from lingualink.app.logging_config import get_logger

logger = get_logger(__name__)

# Strong references so the loop does not garbage-collect pending tasks
_pending: Set[asyncio.Task] = set()


def _on_done(task: asyncio.Task) -> None:
    _pending.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning(
            "detached_task_failed",
            task=task.get_name(),
            error=str(exc),
        )


def spawn_detached(coro: Awaitable, name: str = "detached") -> asyncio.Task:
    """Schedule ``coro`` without awaiting it; failures are logged, not raised."""
    task = asyncio.ensure_future(coro)
    task.set_name(name)
    _pending.add(task)
    task.add_done_callback(_on_done)
    return task


def pending_count() -> int:
    """Number of detached tasks still running."""
    return len(_pending)
