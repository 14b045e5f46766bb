# src/storage/locks.py — v1
"""Per-file advisory lock backed by the processing_locks table.

Insert-if-absent gives mutual exclusion across processes sharing the
database file, not only across coroutines.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from digestkit.core.clock import now_ms
from digestkit.storage.database import Database

logger = logging.getLogger(__name__)


class ProcessingLockStore:
    """Acquire/release per-file processing locks."""

    def __init__(self, db: Database, owner: str = "digestkit") -> None:
        self._db = db
        self._owner = owner

    async def acquire(self, file_path: str) -> bool:
        """Take the lock. Returns False when another holder has it."""
        cursor = self._db.execute(
            """INSERT OR IGNORE INTO processing_locks (file_path, locked_at, locked_by)
               VALUES (?, ?, ?)""",
            (file_path, now_ms(), self._owner),
        )
        return cursor.rowcount == 1

    async def release(self, file_path: str) -> None:
        self._db.execute(
            "DELETE FROM processing_locks WHERE file_path = ?", (file_path,)
        )

    async def is_locked(self, file_path: str) -> bool:
        row = self._db.fetch_one(
            "SELECT 1 FROM processing_locks WHERE file_path = ?", (file_path,)
        )
        return row is not None

    async def cleanup_stale(self, older_than_s: float) -> int:
        """Drop locks left behind by a crashed process."""
        cutoff = now_ms() - int(older_than_s * 1000)
        cursor = self._db.execute(
            "DELETE FROM processing_locks WHERE locked_at < ?", (cutoff,)
        )
        if cursor.rowcount:
            logger.warning("Cleared %d stale processing locks", cursor.rowcount)
        return cursor.rowcount

    @asynccontextmanager
    async def hold(self, file_path: str) -> AsyncIterator[bool]:
        """Scoped acquisition. Yields whether the lock was obtained.

        The lock is released on every exit path, including exceptions.
        """
        acquired = await self.acquire(file_path)
        try:
            yield acquired
        finally:
            if acquired:
                await self.release(file_path)
