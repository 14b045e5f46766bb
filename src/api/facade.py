# src/api/facade.py — v1
"""Public API facade — read-only views over a running Runtime.

Usage:
    from digestkit.api.facade import get_system_status
    status = await get_system_status(runtime)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from digestkit.api.models import SupervisorStatus, SystemStatus
from digestkit.taskqueue.scheduler import get_pending_task_count_by_type, has_ready_tasks

if TYPE_CHECKING:
    from digestkit.runtime import Runtime

logger = logging.getLogger(__name__)


async def get_system_status(runtime: Runtime) -> SystemStatus:
    """Snapshot of queue, worker, supervisor and digest state.

    Args:
        runtime: Runtime whose database and loops are inspected. It does
            not need to be started.

    Returns:
        SystemStatus with pending task counts per type, the has-ready flag,
        worker status, task stats and per-digester status counts.
    """
    max_attempts = runtime.settings.task_max_attempts
    store = runtime.tasks

    status = SystemStatus(
        pending_tasks_by_type=await get_pending_task_count_by_type(store),
        has_ready_tasks=await has_ready_tasks(store, max_attempts),
        worker=runtime.worker.status(),
        supervisor=SupervisorStatus(
            running=runtime.supervisor.running,
            consecutive_failures=runtime.supervisor.consecutive_failures,
        ),
        task_stats=await store.get_stats(max_attempts),
        digests=await runtime.digests.stats(),
        files=await runtime.files.count(),
        registered_digesters=[d.name for d in runtime.registry.get_all()],
        registered_task_types=runtime.queue.registered_types,
    )
    logger.debug(
        "System status: %d tasks, ready=%s", status.task_stats.total, status.has_ready_tasks
    )
    return status
