# src/api/models.py — v1
"""API-level models: SystemStatus and its parts."""

from __future__ import annotations

from pydantic import BaseModel, Field

from digestkit.core.models import TaskStats
from digestkit.taskqueue.worker import WorkerStatus


class SupervisorStatus(BaseModel):
    running: bool
    consecutive_failures: int = 0


class SystemStatus(BaseModel):
    """Return value of facade.get_system_status()."""

    pending_tasks_by_type: dict[str, int] = Field(default_factory=dict)
    has_ready_tasks: bool = False
    worker: WorkerStatus
    supervisor: SupervisorStatus
    task_stats: TaskStats
    digests: dict[str, dict[str, int]] = Field(default_factory=dict)
    files: int = 0
    registered_digesters: list[str] = Field(default_factory=list)
    registered_task_types: list[str] = Field(default_factory=list)
