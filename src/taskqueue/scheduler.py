# src/taskqueue/scheduler.py — v1
"""Retry policy and task selection queries.

``get_ready_tasks`` is the only admission gate for the worker; the
existence and count helpers share its predicate.
"""

from __future__ import annotations

import math
import random
from typing import Any, Protocol

from digestkit.core.clock import now_ms as _now_ms
from digestkit.core.models import Task
from digestkit.taskqueue.store import TaskStore

DEFAULT_BASE_DELAY_S = 10
DEFAULT_MAX_DELAY_S = 21600
DEFAULT_JITTER = 0.3

_READY_WHERE = """(status = 'to-do' OR (status = 'failed' AND attempts < ?))
    AND (run_after IS NULL OR run_after <= ?)"""


class _Uniform(Protocol):
    def uniform(self, a: float, b: float) -> float: ...


def calculate_retry_delay(
    attempts: int,
    base_delay_s: float = DEFAULT_BASE_DELAY_S,
    max_delay_s: float = DEFAULT_MAX_DELAY_S,
    jitter: float = DEFAULT_JITTER,
    rng: _Uniform | None = None,
) -> int:
    """Whole seconds to wait before the next attempt.

    ``base · 4^(attempts−1)``, capped at ``max_delay_s``, scaled by a uniform
    factor in ``[1 − jitter, 1 + jitter]`` and floored.
    """
    source = rng or random
    exponent = max(attempts, 1) - 1
    capped = min(base_delay_s * (4**exponent), max_delay_s)
    factor = 1 + source.uniform(-jitter, jitter)
    return max(0, math.floor(capped * factor))


def get_next_retry_time(task: Task, **delay_kwargs: Any) -> int:
    """Epoch ms at which a failed task becomes eligible again."""
    delay = calculate_retry_delay(task.attempts, **delay_kwargs)
    last = task.last_attempt_at or task.created_at
    return last + delay * 1000


async def get_ready_tasks(
    store: TaskStore,
    limit: int = 10,
    max_attempts: int = 3,
    now_ms: int | None = None,
) -> list[Task]:
    """To-do or retryable failed tasks whose run_after has passed, oldest first."""
    now = _now_ms() if now_ms is None else now_ms
    return await store.select(_READY_WHERE, (max_attempts, now), limit=limit)


async def has_ready_tasks(
    store: TaskStore, max_attempts: int = 3, now_ms: int | None = None
) -> bool:
    now = _now_ms() if now_ms is None else now_ms
    return await store.count(_READY_WHERE, (max_attempts, now)) > 0


async def get_stale_tasks(
    store: TaskStore, timeout_seconds: float = 300, now_ms: int | None = None
) -> list[Task]:
    """In-progress tasks whose last attempt started before now − timeout."""
    now = _now_ms() if now_ms is None else now_ms
    cutoff = now - int(timeout_seconds * 1000)
    return await store.select(
        "status = 'in-progress' AND last_attempt_at < ?",
        (cutoff,),
        order_by="last_attempt_at ASC",
    )


async def get_pending_task_count_by_type(store: TaskStore) -> dict[str, int]:
    """Per type, tasks that are queued, running or failed.

    Deferred tasks (run_after in the future) and failed tasks past their
    attempt ceiling are both included, so permanent failures stay visible.
    """
    return await store.count_by_type("status IN ('to-do', 'failed', 'in-progress')")
