# src/taskqueue/store.py — v1
"""Durable task records in the tasks table.

Every mutation after creation goes through ``update`` which is guarded by
an optimistic-lock version counter.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from collections.abc import Sequence
from typing import Any

from digestkit.core.clock import now_ms
from digestkit.core.models import Task, TaskStats, TaskStatus
from digestkit.storage.database import Database

logger = logging.getLogger(__name__)

_UPDATABLE = frozenset(
    {"status", "attempts", "last_attempt_at", "output", "error", "run_after"}
)
_TERMINAL: frozenset[str] = frozenset({"success", "failed"})


def _row_to_task(row: sqlite3.Row) -> Task:
    return Task(**dict(row))


class TaskStore:
    """CRUD over task records."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def create(
        self, task_type: str, input_json: str, run_after: int | None = None
    ) -> Task:
        now = now_ms()
        task_id = uuid.uuid4().hex
        self._db.execute(
            """INSERT INTO tasks
               (id, type, input, status, version, attempts, run_after,
                created_at, updated_at)
               VALUES (?, ?, ?, 'to-do', 0, 0, ?, ?, ?)""",
            (task_id, task_type, input_json, run_after, now, now),
        )
        logger.debug("Created task %s (%s)", task_id, task_type)
        return Task(
            id=task_id,
            type=task_type,
            input=input_json,
            run_after=run_after,
            created_at=now,
            updated_at=now,
        )

    async def get(self, task_id: str) -> Task | None:
        row = self._db.fetch_one("SELECT * FROM tasks WHERE id = ?", (task_id,))
        return _row_to_task(row) if row else None

    async def list_tasks(
        self,
        status: TaskStatus | None = None,
        task_type: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Task]:
        """Newest first, optionally filtered."""
        conditions: list[str] = []
        params: list[Any] = []
        if status:
            conditions.append("status = ?")
            params.append(status)
        if task_type:
            conditions.append("type = ?")
            params.append(task_type)
        where = " AND ".join(conditions) if conditions else "1 = 1"
        return await self.select(
            where, params, order_by="created_at DESC, rowid DESC", limit=limit, offset=offset
        )

    async def list_by_type(
        self, task_type: str, status: TaskStatus | None = None
    ) -> list[Task]:
        return await self.list_tasks(status=status, task_type=task_type)

    async def select(
        self,
        where: str,
        params: Sequence[Any] = (),
        *,
        order_by: str = "created_at ASC, rowid ASC",
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Task]:
        """Run a filtered SELECT. Used by the scheduler queries."""
        sql = f"SELECT * FROM tasks WHERE {where} ORDER BY {order_by}"
        args = list(params)
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            args.extend([limit, offset])
        return [_row_to_task(r) for r in self._db.fetch_all(sql, args)]

    async def count(self, where: str, params: Sequence[Any] = ()) -> int:
        row = self._db.fetch_one(f"SELECT COUNT(*) AS n FROM tasks WHERE {where}", params)
        return int(row["n"]) if row else 0

    async def count_by_type(self, where: str, params: Sequence[Any] = ()) -> dict[str, int]:
        rows = self._db.fetch_all(
            f"SELECT type, COUNT(*) AS n FROM tasks WHERE {where} GROUP BY type",
            params,
        )
        return {r["type"]: int(r["n"]) for r in rows}

    async def update(self, task_id: str, expected_version: int, **fields: Any) -> bool:
        """Apply fields only if the stored version matches.

        Bumps the version, stamps updated_at, and sets completed_at when the
        status moves to success or failed.

        Returns:
            False when the version no longer matches (lost race) or the
            task does not exist.
        """
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update task fields: {sorted(unknown)}")

        now = now_ms()
        clauses = ["updated_at = ?", "version = version + 1"]
        params: list[Any] = [now]
        for name, value in fields.items():
            clauses.append(f"{name} = ?")
            params.append(value)
        if fields.get("status") in _TERMINAL:
            clauses.append("completed_at = ?")
            params.append(now)

        params.extend([task_id, expected_version])
        cursor = self._db.execute(
            f"UPDATE tasks SET {', '.join(clauses)} WHERE id = ? AND version = ?",
            params,
        )
        return cursor.rowcount > 0

    async def delete(self, task_id: str) -> bool:
        return self._db.execute("DELETE FROM tasks WHERE id = ?", (task_id,)).rowcount > 0

    async def delete_by_status(self, status: TaskStatus) -> int:
        return self._db.execute("DELETE FROM tasks WHERE status = ?", (status,)).rowcount

    async def get_stats(self, max_attempts: int = 3) -> TaskStats:
        """Totals by status and type, plus failed tasks past the retry ceiling."""
        by_status = {"to-do": 0, "in-progress": 0, "success": 0, "failed": 0}
        for row in self._db.fetch_all(
            "SELECT status, COUNT(*) AS n FROM tasks GROUP BY status"
        ):
            by_status[row["status"]] = int(row["n"])
        by_type = {
            row["type"]: int(row["n"])
            for row in self._db.fetch_all(
                "SELECT type, COUNT(*) AS n FROM tasks GROUP BY type"
            )
        }
        exhausted = await self.count(
            "status = 'failed' AND attempts >= ?", (max_attempts,)
        )
        return TaskStats(
            total=sum(by_status.values()),
            by_status=by_status,
            by_type=by_type,
            exhausted=exhausted,
        )

    async def cleanup_old_tasks(self, older_than_s: float) -> int:
        """Delete finished tasks completed before the cutoff."""
        cutoff = now_ms() - int(older_than_s * 1000)
        cursor = self._db.execute(
            """DELETE FROM tasks
               WHERE status IN ('success', 'failed') AND completed_at < ?""",
            (cutoff,),
        )
        if cursor.rowcount:
            logger.info("Deleted %d finished tasks", cursor.rowcount)
        return cursor.rowcount
