# src/digest/file_selection.py — v1
"""Finds files that still owe work to at least one registered digester."""

from __future__ import annotations

import logging
from typing import Any

from digestkit.digest.registry import DigesterRegistry
from digestkit.storage.database import Database

logger = logging.getLogger(__name__)


class FileSelector:
    """Query over files × digests for pending digestion work.

    A file is pending when, across all registered digest types, a row is
    missing, still ``todo``, or ``failed`` below the attempt ceiling.
    """

    def __init__(
        self,
        db: Database,
        registry: DigesterRegistry,
        max_attempts: int = 3,
        excluded_prefixes: list[str] | None = None,
    ) -> None:
        self._db = db
        self._registry = registry
        self._max_attempts = max_attempts
        self._excluded = [p.strip("/") for p in (excluded_prefixes or []) if p.strip("/")]

    def is_excluded(self, file_path: str) -> bool:
        path = file_path.strip("/")
        return any(path == p or path.startswith(p + "/") for p in self._excluded)

    async def find_files_needing_digestion(self, limit: int = 10) -> list[str]:
        """Oldest pending files first."""
        types = self._registry.get_all_digest_types()
        if not types:
            return []

        type_marks = ", ".join("?" for _ in types)
        params: list[Any] = []
        exclusion_sql = ""
        for prefix in self._excluded:
            exclusion_sql += (
                " AND NOT (f.path = ? OR substr(f.path, 1, ?) = ?)"
            )
            params.extend([prefix, len(prefix) + 1, prefix + "/"])

        sql = f"""
            SELECT f.path FROM files f
            WHERE f.is_folder = 0{exclusion_sql}
              AND (
                (SELECT COUNT(*) FROM digests d
                 WHERE d.file_path = f.path AND d.digester IN ({type_marks})) < ?
                OR EXISTS (
                  SELECT 1 FROM digests d
                  WHERE d.file_path = f.path AND d.digester IN ({type_marks})
                    AND (d.status = 'todo'
                         OR (d.status = 'failed' AND d.attempts < ?))
                )
              )
            ORDER BY f.created_at ASC, f.path ASC
            LIMIT ?
        """
        params.extend(types)
        params.append(len(types))
        params.extend(types)
        params.append(self._max_attempts)
        params.append(limit)

        rows = self._db.fetch_all(sql, params)
        paths = [r["path"] for r in rows]
        if paths:
            logger.debug("Found %d files needing digestion", len(paths))
        return paths
