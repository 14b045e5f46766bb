# src/search/store.py — v1
"""Local tables tracking what has been pushed to the search backends."""

from __future__ import annotations

import hashlib
import json
import logging
import sqlite3

from digestkit.core.clock import from_iso, to_iso, utc_now
from digestkit.core.models import KeywordDocument, SemanticDocument
from digestkit.storage.database import Database

logger = logging.getLogger(__name__)


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def semantic_document_id(file_path: str, source_type: str, chunk_index: int) -> str:
    return f"{file_path}:{source_type}:{chunk_index}"


def keyword_document_id(file_path: str) -> str:
    return hashlib.sha256(file_path.encode("utf-8")).hexdigest()[:32]


def _row_to_semantic(row: sqlite3.Row) -> SemanticDocument:
    data = dict(row)
    data["created_at"] = from_iso(data["created_at"])
    data["updated_at"] = from_iso(data["updated_at"])
    return SemanticDocument(**data)


def _row_to_keyword(row: sqlite3.Row) -> KeywordDocument:
    data = dict(row)
    data["tags"] = json.loads(data["tags"] or "[]")
    data["created_at"] = from_iso(data["created_at"])
    data["updated_at"] = from_iso(data["updated_at"])
    return KeywordDocument(**data)


class SemanticDocumentStore:
    """Per-chunk documents awaiting or holding embeddings."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def replace_for_file(
        self, file_path: str, documents: list[SemanticDocument]
    ) -> list[str]:
        """Swap the file's documents for a new set.

        A document whose id and content hash are unchanged keeps its
        embedding status, so unchanged chunks are not re-embedded.

        Returns:
            Ids of the new document set, in order.
        """
        previous = {d.document_id: d for d in await self.list_for_file(file_path)}
        with self._db.transaction() as conn:
            conn.execute(
                "DELETE FROM semantic_documents WHERE file_path = ?", (file_path,)
            )
            for doc in documents:
                old = previous.get(doc.document_id)
                if old is not None and old.content_hash == doc.content_hash:
                    doc = doc.model_copy(
                        update={
                            "embedding_status": old.embedding_status,
                            "embedding_version": old.embedding_version,
                            "created_at": old.created_at,
                        }
                    )
                conn.execute(
                    """INSERT INTO semantic_documents
                       (document_id, file_path, source_type, chunk_index, chunk_count,
                        span_start, span_end, overlap_tokens, word_count, token_count,
                        content, content_hash, embedding_status, embedding_version,
                        created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        doc.document_id,
                        doc.file_path,
                        doc.source_type,
                        doc.chunk_index,
                        doc.chunk_count,
                        doc.span_start,
                        doc.span_end,
                        doc.overlap_tokens,
                        doc.word_count,
                        doc.token_count,
                        doc.content,
                        doc.content_hash,
                        doc.embedding_status,
                        doc.embedding_version,
                        to_iso(doc.created_at),
                        to_iso(doc.updated_at),
                    ),
                )
        removed = set(previous) - {d.document_id for d in documents}
        if removed:
            logger.debug("Dropped %d stale semantic documents for %s", len(removed), file_path)
        return [d.document_id for d in documents]

    async def list_for_file(self, file_path: str) -> list[SemanticDocument]:
        rows = self._db.fetch_all(
            """SELECT * FROM semantic_documents WHERE file_path = ?
               ORDER BY source_type, chunk_index""",
            (file_path,),
        )
        return [_row_to_semantic(r) for r in rows]

    async def get_many(self, document_ids: list[str]) -> list[SemanticDocument]:
        if not document_ids:
            return []
        placeholders = ", ".join("?" for _ in document_ids)
        rows = self._db.fetch_all(
            f"SELECT * FROM semantic_documents WHERE document_id IN ({placeholders})",
            document_ids,
        )
        by_id = {r["document_id"]: _row_to_semantic(r) for r in rows}
        return [by_id[i] for i in document_ids if i in by_id]

    async def mark_status(self, document_ids: list[str], status: str) -> None:
        now = to_iso(utc_now())
        bump = 1 if status == "indexed" else 0
        with self._db.transaction() as conn:
            for document_id in document_ids:
                conn.execute(
                    """UPDATE semantic_documents
                       SET embedding_status = ?,
                           embedding_version = embedding_version + ?,
                           updated_at = ?
                       WHERE document_id = ?""",
                    (status, bump, now, document_id),
                )

    async def delete_for_file(self, file_path: str) -> list[str]:
        ids = [d.document_id for d in await self.list_for_file(file_path)]
        self._db.execute("DELETE FROM semantic_documents WHERE file_path = ?", (file_path,))
        return ids


class KeywordDocumentStore:
    """One full-text document per file."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def upsert(self, doc: KeywordDocument) -> None:
        self._db.execute(
            """INSERT INTO keyword_documents
               (document_id, file_path, content, summary, tags, content_hash,
                word_count, mime_type, index_status, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(document_id) DO UPDATE SET
                   content = excluded.content,
                   summary = excluded.summary,
                   tags = excluded.tags,
                   content_hash = excluded.content_hash,
                   word_count = excluded.word_count,
                   mime_type = excluded.mime_type,
                   index_status = excluded.index_status,
                   updated_at = excluded.updated_at""",
            (
                doc.document_id,
                doc.file_path,
                doc.content,
                doc.summary,
                json.dumps(doc.tags),
                doc.content_hash,
                doc.word_count,
                doc.mime_type,
                doc.index_status,
                to_iso(doc.created_at),
                to_iso(doc.updated_at),
            ),
        )

    async def get(self, document_id: str) -> KeywordDocument | None:
        row = self._db.fetch_one(
            "SELECT * FROM keyword_documents WHERE document_id = ?", (document_id,)
        )
        return _row_to_keyword(row) if row else None

    async def get_for_file(self, file_path: str) -> KeywordDocument | None:
        row = self._db.fetch_one(
            "SELECT * FROM keyword_documents WHERE file_path = ?", (file_path,)
        )
        return _row_to_keyword(row) if row else None

    async def mark_status(self, document_id: str, status: str) -> None:
        self._db.execute(
            """UPDATE keyword_documents SET index_status = ?, updated_at = ?
               WHERE document_id = ?""",
            (status, to_iso(utc_now()), document_id),
        )
