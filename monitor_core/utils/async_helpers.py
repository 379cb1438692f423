"""
Async utility helpers for the monitoring engine.

Provides:
- run_with_timeout: bound an awaitable, returning a default on timeout
- gather_with_concurrency: asyncio.gather with a concurrency cap
- BackgroundTasks: tracked fire-and-forget tasks with graceful drain
"""

from __future__ import annotations

import asyncio
import logging
from typing import (
    Any,
    Awaitable,
    Coroutine,
    Dict,
    List,
    Optional,
    Set,
    TypeVar,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_with_timeout(
    coro: Awaitable[T],
    timeout: float,
    default: Optional[T] = None,
) -> Optional[T]:
    """
    Run coroutine with timeout, returning default on timeout.

    Example:
        delivered = await run_with_timeout(notifier.send(n), timeout=5.0, default=False)
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Operation timed out after {timeout}s")
        return default


async def gather_with_concurrency(
    coros: List[Awaitable[T]],
    max_concurrent: int = 10,
    return_exceptions: bool = False,
) -> List[Any]:
    """
    Like asyncio.gather but with concurrency limit.

    Example:
        results = await gather_with_concurrency(
            [probe.check(c) for c in components],
            max_concurrent=5,
            return_exceptions=True,
        )
    """
    semaphore = asyncio.Semaphore(max_concurrent)

    async def bounded_coro(coro: Awaitable[T]) -> T:
        async with semaphore:
            return await coro

    return await asyncio.gather(
        *[bounded_coro(c) for c in coros],
        return_exceptions=return_exceptions,
    )


class BackgroundTasks:
    """
    Registry of fire-and-forget tasks.

    Keeps strong references so tasks are not garbage collected mid-flight,
    logs failures, and lets the owner wait for everything in flight on
    shutdown.

    Example:
        tasks = BackgroundTasks("notify")
        tasks.spawn(dispatcher.dispatch(event, channels))
        ...
        await tasks.drain(timeout=10.0)
    """

    def __init__(self, name: str):
        self._name = name
        self._tasks: Set[asyncio.Task] = set()
        self._completed = 0
        self._failed = 0

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Schedule a coroutine on the running loop."""
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._failed += 1
            logger.error(f"[{self._name}] Background task failed: {exc!r}")
        else:
            self._completed += 1

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight tasks; cancel whatever is left after timeout."""
        if not self._tasks:
            return

        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"[{self._name}] Cancelled {len(pending)} task(s) still running at shutdown")
            await asyncio.gather(*pending, return_exceptions=True)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "pending": len(self._tasks),
            "completed": self._completed,
            "failed": self._failed,
        }
