"""In-process delayed task queue.

Each scheduled job runs once after its delay in its own asyncio task. Jobs are
keyed so a later ``schedule`` for the same key replaces a still-sleeping one.
Persisting what must survive a restart is the caller's job.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

JobFactory = Callable[[], Awaitable[object]]


class RetryScheduler:
    def __init__(self) -> None:
        self._sleeping: dict[str, asyncio.Task[None]] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False

    def schedule(self, key: str, delay_seconds: float, job: JobFactory) -> None:
        if self._closed:
            logger.warning("Scheduler closed; dropping job %s", key)
            return
        existing = self._sleeping.pop(key, None)
        if existing is not None and not existing.done():
            existing.cancel()
        task = asyncio.create_task(self._run(key, max(0.0, delay_seconds), job))
        self._sleeping[key] = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def cancel(self, key: str) -> bool:
        task = self._sleeping.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def pending(self) -> int:
        """Jobs still waiting for their delay to elapse."""
        return len(self._sleeping)

    def is_scheduled(self, key: str) -> bool:
        return key in self._sleeping

    async def _run(self, key: str, delay_seconds: float, job: JobFactory) -> None:
        if delay_seconds:
            await asyncio.sleep(delay_seconds)
        if self._sleeping.get(key) is asyncio.current_task():
            del self._sleeping[key]
        try:
            await job()
        except Exception:
            logger.exception("Scheduled job %s failed", key)

    async def join(self) -> None:
        """Wait until no job is sleeping or running, including jobs they schedule."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        self._closed = True
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._sleeping.clear()
