# src/storage/digests.py — v1
"""Digest rows: one per (file_path, digester), upserted by deterministic id."""

from __future__ import annotations

import hashlib
import logging
import sqlite3
from collections.abc import Iterable
from datetime import timedelta

from digestkit.core.clock import from_iso, to_iso, utc_now
from digestkit.core.models import Digest, DigestStatus
from digestkit.storage.database import Database

logger = logging.getLogger(__name__)


def digest_id(file_path: str, digester: str) -> str:
    """Deterministic row id for a (file_path, digester) pair."""
    raw = f"{file_path}\0{digester}".encode("utf-8")
    return hashlib.sha256(raw).hexdigest()[:32]


def _row_to_digest(row: sqlite3.Row) -> Digest:
    return Digest(
        id=row["id"],
        file_path=row["file_path"],
        digester=row["digester"],
        status=row["status"],
        content=row["content"],
        sqlar_name=row["sqlar_name"],
        error=row["error"],
        attempts=row["attempts"],
        created_at=from_iso(row["created_at"]),
        updated_at=from_iso(row["updated_at"]),
    )


class DigestStore:
    """Persistence for Digest rows."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def list_for_path(self, file_path: str) -> list[Digest]:
        rows = self._db.fetch_all(
            "SELECT * FROM digests WHERE file_path = ? ORDER BY digester",
            (file_path,),
        )
        return [_row_to_digest(r) for r in rows]

    async def get(self, file_path: str, digester: str) -> Digest | None:
        row = self._db.fetch_one(
            "SELECT * FROM digests WHERE id = ?", (digest_id(file_path, digester),)
        )
        return _row_to_digest(row) if row else None

    async def upsert(
        self,
        file_path: str,
        digester: str,
        *,
        status: DigestStatus,
        content: str | None = None,
        sqlar_name: str | None = None,
        error: str | None = None,
        attempts: int = 0,
    ) -> None:
        """Write every column of the row. Last writer wins; created_at is kept."""
        now = to_iso(utc_now())
        self._db.execute(
            """INSERT INTO digests
               (id, file_path, digester, status, content, sqlar_name, error,
                attempts, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                   status = excluded.status,
                   content = excluded.content,
                   sqlar_name = excluded.sqlar_name,
                   error = excluded.error,
                   attempts = excluded.attempts,
                   updated_at = excluded.updated_at""",
            (
                digest_id(file_path, digester),
                file_path,
                digester,
                status,
                content,
                sqlar_name,
                error,
                attempts,
                now,
                now,
            ),
        )

    async def set_status(
        self,
        file_path: str,
        digesters: Iterable[str],
        status: DigestStatus,
        *,
        error: str | None = None,
        attempts: int | None = None,
    ) -> None:
        """Change status (and optionally error/attempts) keeping stored content.

        Missing rows are created.
        """
        now = to_iso(utc_now())
        with self._db.transaction() as conn:
            for name in digesters:
                conn.execute(
                    """INSERT INTO digests
                       (id, file_path, digester, status, error, attempts,
                        created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                       ON CONFLICT(id) DO UPDATE SET
                           status = excluded.status,
                           error = excluded.error,
                           attempts = COALESCE(?, digests.attempts),
                           updated_at = excluded.updated_at""",
                    (
                        digest_id(file_path, name),
                        file_path,
                        name,
                        status,
                        error,
                        attempts or 0,
                        now,
                        now,
                        attempts,
                    ),
                )

    async def ensure(self, file_path: str, digesters: Iterable[str]) -> list[str]:
        """Create `todo` rows for digesters that have none. Returns the added names."""
        now = to_iso(utc_now())
        added: list[str] = []
        with self._db.transaction() as conn:
            for name in digesters:
                cursor = conn.execute(
                    """INSERT OR IGNORE INTO digests
                       (id, file_path, digester, status, attempts, created_at, updated_at)
                       VALUES (?, ?, ?, 'todo', 0, ?, ?)""",
                    (digest_id(file_path, name), file_path, name, now, now),
                )
                if cursor.rowcount:
                    added.append(name)
        return added

    async def reset(self, file_path: str, digester: str | None = None) -> int:
        """Set rows back to `todo`, clearing content, error and attempts."""
        now = to_iso(utc_now())
        sql = """UPDATE digests
                 SET status = 'todo', content = NULL, sqlar_name = NULL,
                     error = NULL, attempts = 0, updated_at = ?
                 WHERE file_path = ?"""
        params: list[object] = [now, file_path]
        if digester is not None:
            sql += " AND digester = ?"
            params.append(digester)
        return self._db.execute(sql, params).rowcount

    async def reset_stale_in_progress(self, older_than_s: float) -> int:
        """Return rows stuck `in-progress` past the threshold to `todo`."""
        now = utc_now()
        cutoff = to_iso(now - timedelta(seconds=older_than_s))
        cursor = self._db.execute(
            """UPDATE digests SET status = 'todo', updated_at = ?
               WHERE status = 'in-progress' AND updated_at < ?""",
            (to_iso(now), cutoff),
        )
        if cursor.rowcount:
            logger.warning("Reset %d stale in-progress digests", cursor.rowcount)
        return cursor.rowcount

    async def mark_orphans_skipped(
        self, file_path: str, registered: Iterable[str]
    ) -> list[str]:
        """Skip pending rows whose digester is no longer registered."""
        known = set(registered)
        orphans = [
            d.digester
            for d in await self.list_for_path(file_path)
            if d.digester not in known and d.status in ("todo", "failed")
        ]
        if orphans:
            await self.set_status(
                file_path, orphans, "skipped", error="Digester no longer registered"
            )
        return orphans

    async def delete_for_path(self, file_path: str) -> None:
        self._db.execute("DELETE FROM digests WHERE file_path = ?", (file_path,))

    async def stats(self) -> dict[str, dict[str, int]]:
        """Per-digester counts by status."""
        rows = self._db.fetch_all(
            """SELECT digester, status, COUNT(*) AS n FROM digests
               GROUP BY digester, status ORDER BY digester"""
        )
        result: dict[str, dict[str, int]] = {}
        for row in rows:
            result.setdefault(row["digester"], {})[row["status"]] = int(row["n"])
        return result
