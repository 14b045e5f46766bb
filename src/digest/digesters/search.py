# src/digest/digesters/search.py — v1
"""Search indexing digesters.

Both build local documents inline and hand the backend push to the task
queue, so a slow or unavailable search backend never blocks a file pass.
"""

from __future__ import annotations

import json
import logging

from digestkit.chunking.markdown_chunker import chunk_markdown_content
from digestkit.config.settings import ConfigurationError
from digestkit.core.clock import utc_now
from digestkit.core.models import (
    Digest,
    DigestInput,
    FileRecord,
    KeywordDocument,
    SemanticDocument,
)
from digestkit.digest.base_digester import BaseDigester, upstream_changed
from digestkit.digest.digesters.enrichment import TAGS_UPSTREAM
from digestkit.digest.text_source import (
    get_content_sources,
    get_summary_text,
    get_tags,
)
from digestkit.search.store import (
    KeywordDocumentStore,
    SemanticDocumentStore,
    content_hash,
    keyword_document_id,
    semantic_document_id,
)
from digestkit.taskqueue.payloads import KeywordIndexPayload, SemanticEmbedPayload

logger = logging.getLogger(__name__)

KEYWORD_UPSTREAM: tuple[str, ...] = TAGS_UPSTREAM + (
    "url-crawl-summary",
    "speech-recognition-summary",
    "tags",
)
SEMANTIC_UPSTREAM: tuple[str, ...] = TAGS_UPSTREAM + (
    "image-objects",
    "url-crawl-summary",
    "speech-recognition-summary",
    "tags",
)


class SearchKeywordDigester(BaseDigester):
    """Maintains the file's full-text document."""

    @property
    def name(self) -> str:
        return "search-keyword"

    def _store(self) -> KeywordDocumentStore:
        if self.services.keyword_store is None:
            raise ConfigurationError("Keyword document store is not configured")
        return self.services.keyword_store

    async def can_digest(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> bool:
        return not file.is_folder

    async def digest(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> list[DigestInput] | None:
        sources = await get_content_sources(
            file_path, file, existing, self.services.data_root
        )
        text = "\n\n".join(s.text for s in sources if s.text).strip()
        summary = get_summary_text(existing)
        tags = get_tags(existing)
        if not text and not summary and not tags:
            return [DigestInput(digester=self.name, content=None)]

        store = self._store()
        queue = self.services.require_queue()
        document_id = keyword_document_id(file_path)
        existing_doc = await store.get(document_id)
        now = utc_now()
        await store.upsert(
            KeywordDocument(
                document_id=document_id,
                file_path=file_path,
                content=text,
                summary=summary,
                tags=tags,
                content_hash=content_hash(f"{text}\0{summary or ''}\0{','.join(tags)}"),
                word_count=len(text.split()),
                mime_type=file.mime_type,
                index_status="pending",
                created_at=existing_doc.created_at if existing_doc else now,
                updated_at=now,
            )
        )
        task = await queue.add(
            KeywordIndexPayload(file_path=file_path, document_id=document_id)
        )
        metadata = {
            "documentId": document_id,
            "taskId": task.id,
            "hasContent": bool(text),
            "hasSummary": bool(summary),
            "hasTags": bool(tags),
        }
        return [DigestInput(digester=self.name, content=json.dumps(metadata))]

    async def should_reprocess_completed(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> bool:
        return upstream_changed([self.name], KEYWORD_UPSTREAM, existing)


class SearchSemanticDigester(BaseDigester):
    """Chunks every text source of the file for embedding."""

    @property
    def name(self) -> str:
        return "search-semantic"

    def _store(self) -> SemanticDocumentStore:
        if self.services.semantic_store is None:
            raise ConfigurationError("Semantic document store is not configured")
        return self.services.semantic_store

    async def can_digest(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> bool:
        return not file.is_folder

    async def _collect_sources(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> list[tuple[str, str]]:
        sources: list[tuple[str, str]] = [
            (s.source_type, s.text)
            for s in await get_content_sources(
                file_path, file, existing, self.services.data_root
            )
        ]
        summary = get_summary_text(existing)
        if summary:
            sources.append(("summary", summary))
        tags = get_tags(existing)
        if tags:
            sources.append(("tags", ", ".join(tags)))
        return sources

    async def digest(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> list[DigestInput] | None:
        store = self._store()
        sources = await self._collect_sources(file_path, file, existing)
        now = utc_now()

        documents: list[SemanticDocument] = []
        per_source: dict[str, int] = {}
        for source_type, text in sources:
            chunks = chunk_markdown_content(text, self.services.chunk_options)
            if not chunks:
                continue
            per_source[source_type] = len(chunks)
            for chunk in chunks:
                documents.append(
                    SemanticDocument(
                        document_id=semantic_document_id(
                            file_path, source_type, chunk.chunk_index
                        ),
                        file_path=file_path,
                        source_type=source_type,
                        chunk_index=chunk.chunk_index,
                        chunk_count=chunk.chunk_count,
                        span_start=chunk.span_start,
                        span_end=chunk.span_end,
                        overlap_tokens=chunk.overlap_tokens,
                        word_count=chunk.word_count,
                        token_count=chunk.token_count,
                        content=chunk.text,
                        content_hash=content_hash(chunk.text),
                        created_at=now,
                        updated_at=now,
                    )
                )

        document_ids = await store.replace_for_file(file_path, documents)
        if not document_ids:
            logger.debug("No text to index semantically for %s", file_path)
            return [DigestInput(digester=self.name, content=None)]

        queue = self.services.require_queue()
        task = await queue.add(
            SemanticEmbedPayload(file_path=file_path, document_ids=document_ids)
        )
        metadata = {
            "sources": per_source,
            "totalChunks": len(document_ids),
            "taskId": task.id,
        }
        return [DigestInput(digester=self.name, content=json.dumps(metadata))]

    async def should_reprocess_completed(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> bool:
        return upstream_changed([self.name], SEMANTIC_UPSTREAM, existing)
