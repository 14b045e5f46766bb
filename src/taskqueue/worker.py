# src/taskqueue/worker.py — v1
"""Background task worker: polling loop plus stale-task recovery loop.

Pausing stops admission of new tasks; tasks already running finish.
"""

from __future__ import annotations

import asyncio
import logging

from pydantic import BaseModel

from digestkit.core.models import ExecutionResult, Task
from digestkit.taskqueue.executor import TaskExecutor
from digestkit.taskqueue.queue import TaskQueue
from digestkit.taskqueue.scheduler import get_ready_tasks, get_stale_tasks

logger = logging.getLogger(__name__)


class WorkerStatus(BaseModel):
    running: bool
    paused: bool
    active_tasks: int


class BatchResult(BaseModel):
    """Counts for one poll."""

    fetched: int = 0
    executed: int = 0
    succeeded: int = 0
    failed: int = 0
    rate_limited: int = 0


class TaskWorker:
    """Polls for ready tasks and executes them concurrently in batches."""

    def __init__(
        self,
        queue: TaskQueue,
        executor: TaskExecutor,
        poll_interval_s: float = 1.0,
        batch_size: int = 5,
        max_attempts: int = 3,
        stale_timeout_s: float = 300,
        stale_recovery_interval_s: float = 60.0,
    ) -> None:
        self._queue = queue
        self._executor = executor
        self._poll_interval_s = poll_interval_s
        self._batch_size = batch_size
        self._max_attempts = max_attempts
        self._stale_timeout_s = stale_timeout_s
        self._stale_recovery_interval_s = stale_recovery_interval_s

        self._running = False
        self._paused = False
        self._active = 0
        self._stop_event = asyncio.Event()
        self._wake_event = asyncio.Event()
        self._loops: list[asyncio.Task[None]] = []

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def status(self) -> WorkerStatus:
        return WorkerStatus(
            running=self._running, paused=self._paused, active_tasks=self._active
        )

    async def start(self) -> None:
        if self._running:
            logger.debug("Worker already running")
            return
        self._running = True
        self._paused = False
        self._stop_event.clear()
        self._loops = [
            asyncio.create_task(self._poll_loop(), name="task-worker-poll"),
            asyncio.create_task(self._stale_loop(), name="task-worker-stale"),
        ]
        logger.info(
            "Task worker started (batch=%d, poll=%.1fs)",
            self._batch_size, self._poll_interval_s,
        )

    async def stop(self) -> None:
        """Stop both loops, letting the current batch finish."""
        if not self._running:
            return
        self._running = False
        self._paused = False
        self._stop_event.set()
        self._wake_event.set()
        await asyncio.gather(*self._loops, return_exceptions=True)
        self._loops = []
        logger.info("Task worker stopped")

    def pause(self) -> None:
        if not self._running:
            logger.warning("Worker not running, cannot pause")
            return
        self._paused = True
        logger.info("Task worker paused")

    def resume(self) -> None:
        if not self._running or not self._paused:
            return
        self._paused = False
        self._wake_event.set()
        logger.info("Task worker resumed")

    async def run_once(self) -> BatchResult:
        """One poll: fetch, rate-gate and execute a batch."""
        result = BatchResult()
        if self._paused:
            return result

        tasks = await get_ready_tasks(
            self._queue.store, limit=self._batch_size, max_attempts=self._max_attempts
        )
        result.fetched = len(tasks)
        if not tasks:
            return result

        admitted: list[Task] = []
        for task in tasks:
            limiter = self._queue.limiter_for(task.type)
            if limiter is not None and not limiter.try_consume():
                result.rate_limited += 1
                continue
            admitted.append(task)

        outcomes = await asyncio.gather(
            *(self._run(task) for task in admitted), return_exceptions=True
        )
        for task, outcome in zip(admitted, outcomes):
            if isinstance(outcome, BaseException):
                result.failed += 1
                logger.error(
                    "Task %s (%s) raised: %s", task.id, task.type, outcome,
                    exc_info=outcome,
                )
                continue
            if outcome.skipped:
                continue
            result.executed += 1
            if outcome.success:
                result.succeeded += 1
            else:
                result.failed += 1

        logger.info(
            "Batch complete: %d succeeded, %d failed, %d rate-limited",
            result.succeeded, result.failed, result.rate_limited,
        )
        return result

    async def recover_stale(self) -> int:
        stale = await get_stale_tasks(self._queue.store, self._stale_timeout_s)
        if not stale:
            return 0
        logger.warning("Found %d stale task(s), recovering", len(stale))
        return await self._executor.recover_stale_tasks(stale)

    async def _run(self, task: Task) -> ExecutionResult:
        self._active += 1
        try:
            return await self._executor.execute(task.id, self._max_attempts)
        finally:
            self._active -= 1

    async def _poll_loop(self) -> None:
        while self._running:
            # Cleared before polling so a resume during the batch is not lost
            self._wake_event.clear()
            try:
                await self.run_once()
            except Exception:
                logger.exception("Worker poll error")
            await self._sleep(self._poll_interval_s, wake_on_resume=True)

    async def _stale_loop(self) -> None:
        while self._running:
            await self._sleep(self._stale_recovery_interval_s)
            if not self._running or self._paused:
                continue
            try:
                await self.recover_stale()
            except Exception:
                logger.exception("Stale task recovery error")

    async def _sleep(self, seconds: float, wake_on_resume: bool = False) -> None:
        waiters = [asyncio.ensure_future(self._stop_event.wait())]
        if wake_on_resume:
            waiters.append(asyncio.ensure_future(self._wake_event.wait()))
        try:
            await asyncio.wait(waiters, timeout=seconds, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()
