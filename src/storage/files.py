# src/storage/files.py — v1
"""Read access to the file metadata cache.

The files table is populated by the scanner. The digest core only reads it;
upsert exists so the scanner and tests can seed rows.
"""

from __future__ import annotations

import base64
import logging
import mimetypes
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from digestkit.core.clock import from_iso, to_iso, utc_now
from digestkit.core.models import FileRecord
from digestkit.storage.database import Database

logger = logging.getLogger(__name__)


def path_hash(file_path: str) -> str:
    """Short stable prefix used to namespace archive entries per file."""
    return base64.urlsafe_b64encode(file_path.encode("utf-8")).decode("ascii")[:12]


def _row_to_file(row: sqlite3.Row) -> FileRecord:
    return FileRecord(
        path=row["path"],
        name=row["name"],
        is_folder=bool(row["is_folder"]),
        size=row["size"],
        mime_type=row["mime_type"],
        hash=row["hash"],
        modified_at=from_iso(row["modified_at"]),
        created_at=from_iso(row["created_at"]),
        last_scanned_at=from_iso(row["last_scanned_at"]),
        text_preview=row["text_preview"],
    )


class FileStore:
    """Query surface over the files table."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def get(self, path: str) -> FileRecord | None:
        row = self._db.fetch_one("SELECT * FROM files WHERE path = ?", (path,))
        return _row_to_file(row) if row else None

    async def upsert(self, record: FileRecord) -> None:
        """Insert or replace a file row (scanner/test seeding)."""
        self._db.execute(
            """INSERT OR REPLACE INTO files
               (path, name, is_folder, size, mime_type, hash,
                modified_at, created_at, last_scanned_at, text_preview)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                record.path,
                record.name,
                int(record.is_folder),
                record.size,
                record.mime_type,
                record.hash,
                to_iso(record.modified_at) if record.modified_at else None,
                to_iso(record.created_at) if record.created_at else None,
                to_iso(record.last_scanned_at) if record.last_scanned_at else None,
                record.text_preview,
            ),
        )

    async def delete(self, path: str) -> None:
        self._db.execute("DELETE FROM files WHERE path = ?", (path,))

    async def count(self) -> int:
        row = self._db.fetch_one("SELECT COUNT(*) AS n FROM files WHERE is_folder = 0")
        return int(row["n"]) if row else 0


def record_from_disk(data_root: Path | str, file_path: str) -> FileRecord | None:
    """Build a FileRecord by stat-ing a path under the data root.

    Used when a file is digested on demand before any scan indexed it.
    Returns None when the path does not exist.
    """
    absolute = Path(data_root).expanduser() / file_path
    if not absolute.exists():
        return None
    stat = absolute.stat()
    is_folder = absolute.is_dir()
    mime_type = None if is_folder else mimetypes.guess_type(absolute.name)[0]
    modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
    return FileRecord(
        path=file_path.strip("/"),
        name=absolute.name,
        is_folder=is_folder,
        size=0 if is_folder else stat.st_size,
        mime_type=mime_type,
        modified_at=modified,
        created_at=modified,
        last_scanned_at=utc_now(),
    )
