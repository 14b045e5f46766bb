# src/storage/archive.py — v1
"""Binary digest artifacts kept in an sqlar-compatible table.

Entries are stored uncompressed (sz == length(data)), which the sqlite
archive format reads as raw content.
"""

from __future__ import annotations

import logging
import time

from digestkit.storage.database import Database

logger = logging.getLogger(__name__)


class ArchiveStore:
    """Read/write blobs by archive name."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def put(self, name: str, data: bytes, mode: int = 0o100644) -> None:
        self._db.execute(
            """INSERT OR REPLACE INTO sqlar (name, mode, mtime, sz, data)
               VALUES (?, ?, ?, ?, ?)""",
            (name, mode, int(time.time()), len(data), data),
        )
        logger.debug("Stored archive entry %s (%d bytes)", name, len(data))

    async def get(self, name: str) -> bytes | None:
        row = self._db.fetch_one("SELECT data FROM sqlar WHERE name = ?", (name,))
        return bytes(row["data"]) if row else None

    async def delete(self, name: str) -> None:
        self._db.execute("DELETE FROM sqlar WHERE name = ?", (name,))

    async def list_names(self, prefix: str = "") -> list[str]:
        rows = self._db.fetch_all(
            "SELECT name FROM sqlar WHERE substr(name, 1, ?) = ? ORDER BY name",
            (len(prefix), prefix),
        )
        return [r["name"] for r in rows]

    async def delete_prefix(self, prefix: str) -> int:
        cursor = self._db.execute(
            "DELETE FROM sqlar WHERE substr(name, 1, ?) = ?", (len(prefix), prefix)
        )
        return cursor.rowcount
