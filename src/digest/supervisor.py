# src/digest/supervisor.py — v1
"""Digest supervisor — the background loop driving the coordinator.

Each iteration sweeps stale ``in-progress`` rows (at most once per sweep
interval), asks the file selector for pending files and runs coordinator
passes over them with bounded concurrency. Files whose digesters deferred
are cooled down so an unfinished upstream does not cause a busy loop.
Passes that fail back the loop off exponentially. Productive iterations
are followed by a short per-file delay, idle ones by the idle sleep.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from pydantic import BaseModel

from digestkit.core.models import FileProcessResult, Task
from digestkit.digest.coordinator import DigestCoordinator
from digestkit.digest.file_selection import FileSelector
from digestkit.notifications.service import NotificationEvent, NotificationService
from digestkit.storage.digests import DigestStore
from digestkit.storage.locks import ProcessingLockStore
from digestkit.taskqueue.payloads import DigestFilePayload
from digestkit.taskqueue.queue import TaskQueue

logger = logging.getLogger(__name__)


class SupervisorIteration(BaseModel):
    """Counts for one supervisor iteration."""

    selected: int = 0
    processed: int = 0
    ran: int = 0
    locked: int = 0
    cooling_down: int = 0
    deferred: int = 0
    failed: int = 0
    errors: int = 0
    stale_reset: int = 0

    @property
    def idle(self) -> bool:
        """Nothing was processed, or the passes ran no digester."""
        return self.processed == 0 or self.ran == 0


def compute_backoff(
    consecutive_failures: int, base_delay_s: float, max_delay_s: float
) -> float:
    """``base · 2^(n−1)`` capped at ``max``; 0 when nothing failed."""
    if consecutive_failures <= 0:
        return 0.0
    return min(base_delay_s * (2 ** (consecutive_failures - 1)), max_delay_s)


class DigestSupervisor:
    """Runs the coordinator over pending files until stopped."""

    def __init__(
        self,
        coordinator: DigestCoordinator,
        selector: FileSelector,
        digests: DigestStore,
        locks: ProcessingLockStore,
        notifications: NotificationService | None = None,
        queue: TaskQueue | None = None,
        *,
        concurrency: int = 1,
        start_delay_s: float = 3.0,
        idle_sleep_s: float = 1.0,
        file_delay_s: float = 1.0,
        failure_base_delay_s: float = 5.0,
        failure_max_delay_s: float = 60.0,
        stale_threshold_s: float = 600,
        stale_sweep_interval_s: float = 60.0,
        deferral_cooldown_s: float = 60.0,
        lock_stale_s: float = 600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._coordinator = coordinator
        self._selector = selector
        self._digests = digests
        self._locks = locks
        self._notifications = notifications
        self._queue = queue
        self._concurrency = max(1, concurrency)
        self._start_delay_s = start_delay_s
        self._idle_sleep_s = idle_sleep_s
        self._file_delay_s = file_delay_s
        self._failure_base_delay_s = failure_base_delay_s
        self._failure_max_delay_s = failure_max_delay_s
        self._stale_threshold_s = stale_threshold_s
        self._stale_sweep_interval_s = stale_sweep_interval_s
        self._deferral_cooldown_s = deferral_cooldown_s
        self._lock_stale_s = lock_stale_s
        self._clock = clock

        self._cooldowns: dict[str, float] = {}
        self._last_sweep: float | None = None
        self._consecutive_failures = 0
        self._running = False
        self._stop_event = asyncio.Event()
        self._loop_task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def is_cooling_down(self, file_path: str) -> bool:
        until = self._cooldowns.get(file_path)
        if until is None:
            return False
        if self._clock() >= until:
            del self._cooldowns[file_path]
            return False
        return True

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._stop_event.clear()
        await self._locks.cleanup_stale(self._lock_stale_s)
        self._loop_task = asyncio.create_task(self._loop(), name="digest-supervisor")
        logger.info("Digest supervisor started (concurrency=%d)", self._concurrency)

    async def stop(self) -> None:
        """Stop the loop; the passes in flight finish first."""
        if not self._running:
            return
        self._running = False
        self._stop_event.set()
        if self._loop_task is not None:
            await asyncio.gather(self._loop_task, return_exceptions=True)
            self._loop_task = None
        logger.info("Digest supervisor stopped")

    async def request_digest(
        self, file_path: str, reset: bool = False, digester: str | None = None
    ) -> Task:
        """Enqueue a durable ``digest-file`` task for one file."""
        if self._queue is None:
            raise RuntimeError("Supervisor has no task queue")
        payload = DigestFilePayload(file_path=file_path, reset=reset, digester=digester)
        return await self._queue.add(payload)

    async def sweep_stale(self, force: bool = False) -> int:
        """Reset stuck ``in-progress`` rows, at most once per sweep interval."""
        now = self._clock()
        if (
            not force
            and self._last_sweep is not None
            and now - self._last_sweep < self._stale_sweep_interval_s
        ):
            return 0
        self._last_sweep = now
        count = await self._digests.reset_stale_in_progress(self._stale_threshold_s)
        if count:
            logger.warning("Reset %d stale in-progress digests", count)
        return count

    async def run_once(self) -> SupervisorIteration:
        """One iteration: sweep, select, process."""
        iteration = SupervisorIteration()
        iteration.stale_reset = await self.sweep_stale()

        candidates = await self._selector.find_files_needing_digestion(
            limit=self._concurrency * 4
        )
        iteration.selected = len(candidates)

        batch: list[str] = []
        for path in candidates:
            if self.is_cooling_down(path):
                iteration.cooling_down += 1
                continue
            if await self._locks.is_locked(path):
                iteration.locked += 1
                continue
            batch.append(path)
            if len(batch) >= self._concurrency:
                break

        outcomes = await asyncio.gather(
            *(self._process(path) for path in batch), return_exceptions=True
        )
        for path, outcome in zip(batch, outcomes):
            if isinstance(outcome, BaseException):
                iteration.errors += 1
                logger.error("Digest pass for %s raised: %s", path, outcome, exc_info=outcome)
                continue
            if outcome.locked:
                iteration.locked += 1
                continue
            iteration.processed += 1
            if outcome.ran:
                iteration.ran += 1
            if outcome.deferred:
                iteration.deferred += 1
                self._cooldowns[path] = self._clock() + self._deferral_cooldown_s
            if outcome.failed:
                iteration.failed += 1

        if iteration.errors or iteration.failed:
            self._consecutive_failures += 1
        elif iteration.processed:
            self._consecutive_failures = 0
        return iteration

    async def _process(self, file_path: str) -> FileProcessResult:
        await self._publish("digest-started", file_path)
        result = await self._coordinator.process_file(file_path)
        if not result.locked:
            await self._publish(
                "digest-complete",
                file_path,
                {
                    "ran": result.ran,
                    "failed": result.failed,
                    "deferred": result.deferred,
                },
            )
        return result

    async def _publish(self, event_type: str, file_path: str, data: dict | None = None) -> None:
        if self._notifications is None:
            return
        await self._notifications.publish(
            NotificationEvent(type=event_type, file_path=file_path, data=data or {})
        )

    async def _loop(self) -> None:
        if await self._sleep(self._start_delay_s):
            return
        while self._running:
            try:
                iteration = await self.run_once()
            except Exception:
                logger.exception("Digest supervisor iteration error")
                self._consecutive_failures += 1
                iteration = None

            delay = compute_backoff(
                self._consecutive_failures,
                self._failure_base_delay_s,
                self._failure_max_delay_s,
            )
            if delay:
                logger.info("Backing off %.1fs after failures", delay)
            elif iteration is None or iteration.idle:
                delay = self._idle_sleep_s
            else:
                delay = self._file_delay_s
            if await self._sleep(delay):
                return

    async def _sleep(self, seconds: float) -> bool:
        """Wait up to ``seconds``. Returns True when stop was requested."""
        if seconds <= 0:
            await asyncio.sleep(0)
            return self._stop_event.is_set()
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True
