# src/taskqueue/executor.py — v1
"""Claim-and-run execution of a single task with optimistic locking."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from pydantic import BaseModel, ValidationError

from digestkit.config.settings import ConfigurationError
from digestkit.core.clock import now_ms
from digestkit.core.models import ExecutionResult, Task
from digestkit.logging.context import set_task_context
from digestkit.taskqueue.payloads import parse_payload
from digestkit.taskqueue.queue import TaskQueue
from digestkit.taskqueue.scheduler import (
    DEFAULT_BASE_DELAY_S,
    DEFAULT_JITTER,
    DEFAULT_MAX_DELAY_S,
    calculate_retry_delay,
)
from digestkit.taskqueue.store import TaskStore

logger = logging.getLogger(__name__)

STALE_ERROR = "Task timed out (stale task recovery)"


def _serialize_output(output: Any) -> str | None:
    if output is None:
        return None
    if isinstance(output, BaseModel):
        return output.model_dump_json()
    return json.dumps(output, default=str)


def _parse_output(raw: str | None) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


class TaskExecutor:
    """Runs tasks through their registered handlers."""

    def __init__(
        self,
        queue: TaskQueue,
        retry_base_delay_s: float = DEFAULT_BASE_DELAY_S,
        retry_max_delay_s: float = DEFAULT_MAX_DELAY_S,
        retry_jitter: float = DEFAULT_JITTER,
    ) -> None:
        self._queue = queue
        self._store: TaskStore = queue.store
        self._retry_base = retry_base_delay_s
        self._retry_max = retry_max_delay_s
        self._retry_jitter = retry_jitter

    async def execute(self, task_id: str, max_attempts: int = 3) -> ExecutionResult:
        """Claim the task, run its handler, record the outcome."""
        task = await self._store.get(task_id)
        if task is None:
            return ExecutionResult(
                task_id=task_id, success=False, error="Task not found", skipped=True
            )

        set_task_context(task.id, task.type)
        try:
            return await self._execute(task, max_attempts)
        finally:
            set_task_context(None, None)

    async def _execute(self, task: Task, max_attempts: int) -> ExecutionResult:
        if task.status == "success":
            return ExecutionResult(
                task_id=task.id, success=True, output=_parse_output(task.output)
            )

        if task.attempts >= max_attempts:
            error = f"Max attempts ({max_attempts}) reached"
            if task.status == "to-do":
                # to-do rows are ready regardless of attempts
                logger.error("Task %s (%s): %s", task.id, task.type, error)
                await self._store.update(
                    task.id, task.version, status="failed", error=error, run_after=None
                )
            return ExecutionResult(
                task_id=task.id, success=False, error=error, skipped=True
            )

        attempts = task.attempts + 1
        claimed = await self._store.update(
            task.id,
            task.version,
            status="in-progress",
            attempts=attempts,
            last_attempt_at=now_ms(),
        )
        if not claimed:
            return ExecutionResult(
                task_id=task.id,
                success=False,
                error="Task already claimed by another worker",
                skipped=True,
            )
        version = task.version + 1

        config = self._queue.get_config(task.type)
        if config is None:
            return await self._fail_permanently(
                task, version, max_attempts,
                f'No handler registered for task type "{task.type}"',
            )

        try:
            payload = parse_payload(task.input)
        except ValidationError as exc:
            return await self._fail_permanently(
                task, version, max_attempts, f"Invalid task input: {exc}"
            )
        if payload.kind != task.type:
            return await self._fail_permanently(
                task, version, max_attempts,
                f"Payload kind {payload.kind!r} does not match task type {task.type!r}",
            )

        logger.info("Running task %s (%s), attempt %d", task.id, task.type, attempts)
        try:
            output = await asyncio.wait_for(config.handler(payload), timeout=config.timeout_s)
        except ConfigurationError as exc:
            return await self._fail_permanently(task, version, max_attempts, str(exc))
        except Exception as exc:
            return await self._fail_transient(task, version, attempts, max_attempts, exc)

        output_json = _serialize_output(output)
        updated = await self._store.update(
            task.id,
            version,
            status="success",
            output=output_json,
            error=None,
            run_after=None,
        )
        if not updated:
            logger.warning("Version conflict after executing task %s", task.id)
        logger.info("Task %s (%s) succeeded", task.id, task.type)
        return ExecutionResult(task_id=task.id, success=True, output=_parse_output(output_json))

    async def _fail_transient(
        self,
        task: Task,
        version: int,
        attempts: int,
        max_attempts: int,
        exc: Exception,
    ) -> ExecutionResult:
        if isinstance(exc, asyncio.TimeoutError):
            error = f"Handler timed out for task type {task.type}"
        else:
            error = str(exc) or type(exc).__name__
        run_after: int | None = None
        if attempts < max_attempts:
            delay = calculate_retry_delay(
                attempts, self._retry_base, self._retry_max, self._retry_jitter
            )
            run_after = now_ms() + delay * 1000
            logger.warning(
                "Task %s (%s) failed (attempt %d/%d), retry in %ds: %s",
                task.id, task.type, attempts, max_attempts, delay, error,
            )
        else:
            logger.error(
                "Task %s (%s) failed permanently after %d attempts: %s",
                task.id, task.type, attempts, error,
            )
        await self._store.update(
            task.id, version, status="failed", error=error, run_after=run_after
        )
        return ExecutionResult(task_id=task.id, success=False, error=error)

    async def _fail_permanently(
        self, task: Task, version: int, max_attempts: int, error: str
    ) -> ExecutionResult:
        logger.error("Task %s (%s) failed permanently: %s", task.id, task.type, error)
        await self._store.update(
            task.id,
            version,
            status="failed",
            error=error,
            attempts=max(max_attempts, task.attempts + 1),
            run_after=None,
        )
        return ExecutionResult(task_id=task.id, success=False, error=error)

    async def recover_stale_tasks(self, tasks: list[Task]) -> int:
        """Mark abandoned in-progress tasks failed so they can be retried."""
        recovered = 0
        for task in tasks:
            if await self._store.update(
                task.id, task.version, status="failed", error=STALE_ERROR
            ):
                recovered += 1
                logger.warning("Recovered stale task %s (%s)", task.id, task.type)
        return recovered
