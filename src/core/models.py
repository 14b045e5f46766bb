# src/core/models.py — v1
"""Shared Pydantic domain models used across modules.

No module redefines these types — all imports come from core.models.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

DigestStatus = Literal["todo", "in-progress", "completed", "failed", "skipped"]
TaskStatus = Literal["to-do", "in-progress", "success", "failed"]


# === FILES ===


class FileRecord(BaseModel):
    """Metadata cache row for a scanned file (owned by the scanner)."""

    path: str
    name: str
    is_folder: bool = False
    size: int = 0
    mime_type: str | None = None
    hash: str | None = None
    modified_at: datetime | None = None
    created_at: datetime | None = None
    last_scanned_at: datetime | None = None
    text_preview: str | None = None


# === DIGESTS ===


class Digest(BaseModel):
    """Persisted result of one digester output against one file."""

    id: str
    file_path: str
    digester: str
    status: DigestStatus = "todo"
    content: str | None = None
    sqlar_name: str | None = None
    error: str | None = None
    attempts: int = 0
    created_at: datetime
    updated_at: datetime


class DigestInput(BaseModel):
    """What a digester hands back for one of its outputs."""

    digester: str
    status: DigestStatus = "completed"
    content: str | None = None
    sqlar_name: str | None = None
    archive_data: bytes | None = None
    error: str | None = None


class DigesterOutcome(BaseModel):
    """Per-digester summary of a coordinator pass."""

    digester: str
    action: Literal[
        "ran", "skipped", "not-applicable", "in-progress", "deferred", "failed"
    ]
    outputs: list[str] = Field(default_factory=list)
    error: str | None = None


class FileProcessResult(BaseModel):
    """Result of processing one file through every registered digester."""

    file_path: str
    locked: bool = False
    missing: bool = False
    outcomes: list[DigesterOutcome] = Field(default_factory=list)

    @property
    def failed(self) -> list[str]:
        return [o.digester for o in self.outcomes if o.action == "failed"]

    @property
    def deferred(self) -> list[str]:
        return [o.digester for o in self.outcomes if o.action == "deferred"]

    @property
    def ran(self) -> list[str]:
        return [o.digester for o in self.outcomes if o.action == "ran"]


# === TASKS ===


class Task(BaseModel):
    """Durable background job. All times are epoch milliseconds."""

    id: str
    type: str
    input: str
    status: TaskStatus = "to-do"
    version: int = 0
    attempts: int = 0
    last_attempt_at: int | None = None
    output: str | None = None
    error: str | None = None
    run_after: int | None = None
    created_at: int
    updated_at: int
    completed_at: int | None = None


class TaskStats(BaseModel):
    """Aggregate task table counts."""

    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    by_type: dict[str, int] = Field(default_factory=dict)
    exhausted: int = 0


class ExecutionResult(BaseModel):
    """Outcome of a single executor run."""

    task_id: str
    success: bool
    output: Any = None
    error: str | None = None
    skipped: bool = False


# === CHUNKS ===


class ChunkDescriptor(BaseModel):
    """One token-bounded, overlapping span of a longer text."""

    model_config = ConfigDict(frozen=True)

    chunk_index: int
    chunk_count: int
    text: str
    span_start: int
    span_end: int
    overlap_tokens: int = 0
    word_count: int = 0
    token_count: int = 0


# === CONTENT SOURCES ===


class ContentSource(BaseModel):
    """A piece of text derived from a file, tagged with where it came from."""

    source_type: Literal[
        "url-crawl-content",
        "doc-to-markdown",
        "image-ocr",
        "image-captioning",
        "image-objects",
        "speech-recognition",
        "file",
    ]
    text: str


# === SEARCH DOCUMENTS ===


class SemanticDocument(BaseModel):
    """One chunk of a file queued for embedding."""

    document_id: str
    file_path: str
    source_type: str
    chunk_index: int
    chunk_count: int
    span_start: int
    span_end: int
    overlap_tokens: int = 0
    word_count: int = 0
    token_count: int = 0
    content: str
    content_hash: str
    embedding_status: Literal["pending", "indexed", "failed"] = "pending"
    embedding_version: int = 0
    created_at: datetime
    updated_at: datetime


class KeywordDocument(BaseModel):
    """Full-text search document for one file."""

    document_id: str
    file_path: str
    content: str = ""
    summary: str | None = None
    tags: list[str] = Field(default_factory=list)
    content_hash: str = ""
    word_count: int = 0
    mime_type: str | None = None
    index_status: Literal["pending", "indexed", "failed"] = "pending"
    created_at: datetime
    updated_at: datetime
