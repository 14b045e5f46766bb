# src/logging/context.py — v1
"""Contextual logging support — attach file_path, digester, task to log records.

Context variables are task-local under asyncio, so concurrent file passes and
task executions each carry their own context.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

_file_path: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "file_path", default=None
)
_digester: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "digester", default=None
)
_task_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "task_id", default=None
)
_task_type: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "task_type", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    file_path: str | None = None
    digester: str | None = None
    task_id: str | None = None
    task_type: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        file_path=_file_path.get(),
        digester=_digester.get(),
        task_id=_task_id.get(),
        task_type=_task_type.get(),
    )


def set_file_context(file_path: str | None) -> None:
    """Set file-level context (called once per coordinator pass)."""
    _file_path.set(file_path)
    _digester.set(None)


def set_digester_context(digester: str | None) -> None:
    """Set digester-level context (called per digester run)."""
    _digester.set(digester)


def set_task_context(task_id: str | None, task_type: str | None = None) -> None:
    """Set task-level context (called per task execution)."""
    _task_id.set(task_id)
    _task_type.set(task_type)


def clear_context() -> None:
    """Reset all context variables."""
    _file_path.set(None)
    _digester.set(None)
    _task_id.set(None)
    _task_type.set(None)
