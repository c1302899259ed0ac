"""Bounded background work for side effects that follow a committed write.

Used for per-member translation after a message is sent. A failing job is
logged and forgotten; the message it belongs to is already persisted.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)

JobFactory = Callable[[], Awaitable[None]]


class BackgroundTaskQueue:
    """Runs submitted jobs on the event loop, at most ``max_concurrency`` at once."""

    def __init__(self, max_concurrency: int = 4) -> None:
        self._max_concurrency = max_concurrency
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, factory: JobFactory, name: str = "job") -> Optional[asyncio.Task]:
        """Schedule ``factory()``; returns the task, or None after shutdown."""
        if self._closed:
            logger.warning("[Tasks] Queue closed, dropping %s", name)
            return None
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self._max_concurrency)
        task = asyncio.create_task(self._run(factory, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, factory: JobFactory, name: str) -> None:
        async with self._semaphore:
            try:
                await factory()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("[Tasks] %s failed: %s", name, exc, exc_info=True)

    async def drain(self) -> None:
        """Stop accepting work and wait for in-flight jobs."""
        self._closed = True
        if self._tasks:
            logger.info("[Tasks] Draining %d background jobs", len(self._tasks))
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
