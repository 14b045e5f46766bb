# src/taskqueue/queue.py — v1
"""Task queue facade: per-type handler registry and enqueueing.

Handlers are registered explicitly at startup; each task type carries its
own timeout and optional rate limit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from pydantic import BaseModel

from digestkit.core.models import Task
from digestkit.taskqueue.payloads import serialize_payload
from digestkit.taskqueue.rate_limiter import RateLimiter
from digestkit.taskqueue.store import TaskStore

logger = logging.getLogger(__name__)

TaskHandler = Callable[[Any], Awaitable[Any]]


@dataclass
class TaskTypeConfig:
    """Registration of one task type."""

    task_type: str
    handler: TaskHandler
    timeout_s: float
    limiter: RateLimiter | None = None


class TaskQueue:
    """Handler registry plus the entry point for enqueueing work."""

    def __init__(
        self,
        store: TaskStore,
        default_timeout_s: float = 30.0,
        global_rate_limit: float = 0.0,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._store = store
        self._default_timeout_s = default_timeout_s
        self._clock = clock
        self._configs: dict[str, TaskTypeConfig] = {}
        self._global_limiter = (
            self._make_limiter(global_rate_limit) if global_rate_limit > 0 else None
        )

    @property
    def store(self) -> TaskStore:
        return self._store

    def register(
        self,
        task_type: str,
        handler: TaskHandler,
        timeout_s: float | None = None,
        rate_limit: float | None = None,
    ) -> None:
        """Register the handler for a task type."""
        if task_type in self._configs:
            logger.warning("Overwriting handler for task type: %s", task_type)
        self._configs[task_type] = TaskTypeConfig(
            task_type=task_type,
            handler=handler,
            timeout_s=timeout_s if timeout_s is not None else self._default_timeout_s,
            limiter=self._make_limiter(rate_limit) if rate_limit else None,
        )
        logger.debug("Registered handler for task type: %s", task_type)

    def unregister(self, task_type: str) -> bool:
        return self._configs.pop(task_type, None) is not None

    def get_config(self, task_type: str) -> TaskTypeConfig | None:
        return self._configs.get(task_type)

    @property
    def registered_types(self) -> list[str]:
        return sorted(self._configs)

    def limiter_for(self, task_type: str) -> RateLimiter | None:
        """The type's own limiter, else the global one, else None."""
        config = self._configs.get(task_type)
        if config is not None and config.limiter is not None:
            return config.limiter
        return self._global_limiter

    async def add(self, payload: BaseModel, run_after_ms: int | None = None) -> Task:
        """Enqueue a payload; the task type is the payload's kind."""
        task_type = getattr(payload, "kind", None)
        if not task_type:
            raise ValueError(f"Payload {type(payload).__name__} has no kind")
        if task_type not in self._configs:
            logger.warning("Enqueueing %s with no registered handler", task_type)
        task = await self._store.create(
            task_type, serialize_payload(payload), run_after=run_after_ms
        )
        logger.info("Enqueued task %s (%s)", task.id, task_type)
        return task

    def _make_limiter(self, rate: float) -> RateLimiter:
        if self._clock is None:
            return RateLimiter(rate)
        return RateLimiter(rate, clock=self._clock)
