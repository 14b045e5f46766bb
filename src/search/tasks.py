# src/search/tasks.py — v1
"""Task handlers pushing local search documents to the search backends.

Both handlers fail fast with ``VendorNotConfiguredError`` when their
backend is absent; the executor records that as a permanent failure.
"""

from __future__ import annotations

import logging
from typing import Any

from digestkit.search.store import KeywordDocumentStore, SemanticDocumentStore
from digestkit.taskqueue.payloads import KeywordIndexPayload, SemanticEmbedPayload
from digestkit.taskqueue.queue import TaskHandler
from digestkit.vendors.base import (
    BaseEmbedder,
    BaseKeywordIndex,
    BaseVectorIndex,
    VendorNotConfiguredError,
)

logger = logging.getLogger(__name__)

EMBED_BATCH_SIZE = 32


def make_semantic_embed_handler(
    store: SemanticDocumentStore,
    embedder: BaseEmbedder | None,
    vector_index: BaseVectorIndex | None,
    batch_size: int = EMBED_BATCH_SIZE,
) -> TaskHandler:
    """Build the handler embedding a file's pending semantic documents."""

    async def handle(payload: SemanticEmbedPayload) -> dict[str, Any]:
        if embedder is None:
            raise VendorNotConfiguredError("embedder")
        if vector_index is None:
            raise VendorNotConfiguredError("vector-index")

        documents = await store.get_many(payload.document_ids)
        pending = [d for d in documents if d.embedding_status != "indexed"]
        missing = len(payload.document_ids) - len(documents)
        if missing:
            # Superseded by a later pass over the same file
            logger.info("%d semantic documents no longer exist", missing)

        for start in range(0, len(pending), batch_size):
            batch = pending[start:start + batch_size]
            vectors = await embedder.embed_texts([d.content for d in batch])
            if len(vectors) != len(batch):
                raise ValueError(
                    f"Embedder returned {len(vectors)} vectors for {len(batch)} texts"
                )
            await vector_index.upsert(
                [d.document_id for d in batch],
                vectors,
                [
                    {
                        "file_path": d.file_path,
                        "source_type": d.source_type,
                        "chunk_index": d.chunk_index,
                        "content_hash": d.content_hash,
                        "model": embedder.model_name,
                    }
                    for d in batch
                ],
            )
            await store.mark_status([d.document_id for d in batch], "indexed")

        logger.info(
            "Embedded %d documents for %s (%d already indexed)",
            len(pending), payload.file_path, len(documents) - len(pending),
        )
        return {
            "file_path": payload.file_path,
            "embedded": len(pending),
            "already_indexed": len(documents) - len(pending),
            "missing": missing,
        }

    return handle


def make_keyword_index_handler(
    store: KeywordDocumentStore,
    keyword_index: BaseKeywordIndex | None,
) -> TaskHandler:
    """Build the handler pushing one keyword document to the full-text index."""

    async def handle(payload: KeywordIndexPayload) -> dict[str, Any]:
        if keyword_index is None:
            raise VendorNotConfiguredError("keyword-index")

        doc = await store.get(payload.document_id)
        if doc is None:
            logger.info("Keyword document %s is gone, nothing to index", payload.document_id)
            return {"document_id": payload.document_id, "indexed": False}

        await keyword_index.upsert_document(
            doc.document_id,
            {
                "file_path": doc.file_path,
                "content": doc.content,
                "summary": doc.summary,
                "tags": doc.tags,
                "word_count": doc.word_count,
                "mime_type": doc.mime_type,
                "content_hash": doc.content_hash,
            },
        )
        await store.mark_status(doc.document_id, "indexed")
        return {"document_id": doc.document_id, "indexed": True}

    return handle
