"""
Per-key ordered dispatch over a bounded worker pool.

Jobs submitted under the same key run strictly one after another in
submission order. Jobs under different keys run concurrently, at most
``max_concurrency`` at a time. At most ``max_pending`` jobs may be queued or
running; further submissions wait, which backpressures the producer.
"""

import asyncio
from collections import deque
from typing import Awaitable, Callable, Deque, Dict

from searchsync.platform.logging import get_logger

logger = get_logger(__name__)

Job = Callable[[], Awaitable[None]]


class KeyedDispatcher:
    """Runs async jobs with a per-key FIFO ordering guarantee."""

    def __init__(self, max_concurrency: int = 16, max_pending: int = 1000, name: str = "dispatch"):
        if max_concurrency <= 0 or max_pending <= 0:
            raise ValueError("max_concurrency and max_pending must be positive")
        self.name = name
        self._lanes: Dict[str, Deque[Job]] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._workers = asyncio.Semaphore(max_concurrency)
        self._pending = asyncio.Semaphore(max_pending)
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False

    @property
    def active_keys(self) -> int:
        return len(self._lanes)

    @property
    def closed(self) -> bool:
        return self._closed

    async def submit(self, key: str, job: Job) -> None:
        """Queue a job behind any earlier job with the same key."""
        if self._closed:
            raise RuntimeError(f"dispatcher '{self.name}' is closed")

        await self._pending.acquire()
        if self._closed:
            self._pending.release()
            raise RuntimeError(f"dispatcher '{self.name}' is closed")

        lane = self._lanes.get(key)
        if lane is not None:
            lane.append(job)
            return

        self._lanes[key] = deque([job])
        self._idle.clear()
        self._tasks[key] = asyncio.create_task(
            self._run_lane(key), name=f"{self.name}-lane-{key}"
        )

    async def _run_lane(self, key: str) -> None:
        lane = self._lanes[key]
        try:
            while lane:
                job = lane.popleft()
                try:
                    async with self._workers:
                        await job()
                except Exception as e:
                    logger.error(
                        "dispatch_job_failed",
                        dispatcher=self.name,
                        key=key,
                        error=str(e),
                        exc_info=True,
                    )
                finally:
                    self._pending.release()
        finally:
            self._lanes.pop(key, None)
            self._tasks.pop(key, None)
            if not self._tasks:
                self._idle.set()

    async def drain(self) -> None:
        """Wait until every submitted job has finished."""
        await self._idle.wait()

    async def close(self) -> None:
        """Stop accepting jobs, cancel queued and running ones, and wait for them to unwind."""
        tasks = self._cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def abort(self) -> None:
        """Stop accepting jobs and cancel the rest without waiting."""
        self._cancel()

    def _cancel(self) -> list:
        self._closed = True
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        return tasks
