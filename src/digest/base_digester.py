# src/digest/base_digester.py — v1
"""Standard digester interface and the services digesters are built with.

A digester is a named enrichment step producing one or more digest outputs
for a file. It is stateless: everything it knows about the file comes from
the FileRecord and the file's current Digest rows.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from digestkit.core.models import Digest, DigestInput, FileRecord
from digestkit.vendors.base import (
    BaseMediaVendor,
    BaseTextModel,
    VendorNotConfiguredError,
)
from digestkit.vendors.retry import with_retry

if TYPE_CHECKING:
    from digestkit.chunking.markdown_chunker import ChunkerOptions
    from digestkit.search.store import KeywordDocumentStore, SemanticDocumentStore
    from digestkit.taskqueue.queue import TaskQueue

IMAGE_EXTENSIONS = frozenset(
    {".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp", ".tiff", ".tif", ".heic"}
)
AUDIO_VIDEO_EXTENSIONS = frozenset(
    {".mp3", ".wav", ".m4a", ".aac", ".ogg", ".flac", ".opus", ".webm", ".mp4", ".mov", ".mkv", ".avi"}
)
DOCUMENT_EXTENSIONS = frozenset(
    {".pdf", ".doc", ".docx", ".ppt", ".pptx", ".xls", ".xlsx", ".odt", ".rtf", ".epub"}
)
DOCUMENT_MIME_TYPES = frozenset(
    {
        "application/pdf",
        "application/msword",
        "application/vnd.ms-powerpoint",
        "application/vnd.ms-excel",
        "application/vnd.oasis.opendocument.text",
        "application/rtf",
        "application/epub+zip",
    }
)


def _extension(file_path: str) -> str:
    return Path(file_path).suffix.lower()


def is_image(file: FileRecord) -> bool:
    if file.is_folder:
        return False
    if file.mime_type:
        return file.mime_type.lower().startswith("image/")
    return _extension(file.path) in IMAGE_EXTENSIONS


def is_audio_or_video(file: FileRecord) -> bool:
    if file.is_folder:
        return False
    if file.mime_type:
        mime = file.mime_type.lower()
        return mime.startswith("audio/") or mime.startswith("video/")
    return _extension(file.path) in AUDIO_VIDEO_EXTENSIONS


def is_document(file: FileRecord) -> bool:
    if file.is_folder:
        return False
    if file.mime_type:
        mime = file.mime_type.lower()
        if mime in DOCUMENT_MIME_TYPES or "officedocument" in mime:
            return True
    return _extension(file.path) in DOCUMENT_EXTENSIONS


def find_digest(
    existing: Iterable[Digest], name: str, status: str | None = None
) -> Digest | None:
    """First row for the named output, optionally requiring a status."""
    for digest in existing:
        if digest.digester == name and (status is None or digest.status == status):
            return digest
    return None


def upstream_changed(
    own: Iterable[str], upstream: Iterable[str], existing: list[Digest]
) -> bool:
    """True if a completed upstream row is newer than any settled own row."""
    settled = []
    for name in own:
        row = find_digest(existing, name)
        if row is not None and row.status in ("completed", "skipped"):
            settled.append(row.updated_at)
    if not settled:
        return False
    oldest_own = min(settled)
    for name in upstream:
        row = find_digest(existing, name, status="completed")
        if row is not None and row.updated_at > oldest_own:
            return True
    return False


@dataclass
class DigesterServices:
    """Collaborators injected into every digester."""

    data_root: Path
    media: BaseMediaVendor | None = None
    text_model: BaseTextModel | None = None
    queue: TaskQueue | None = None
    semantic_store: SemanticDocumentStore | None = None
    keyword_store: KeywordDocumentStore | None = None
    chunk_options: ChunkerOptions | None = None
    vendor_timeout_s: float | None = 30.0

    def require_media(self) -> BaseMediaVendor:
        if self.media is None:
            raise VendorNotConfiguredError("media")
        return self.media

    def require_text_model(self) -> BaseTextModel:
        if self.text_model is None:
            raise VendorNotConfiguredError("text-model")
        return self.text_model

    def require_queue(self) -> TaskQueue:
        if self.queue is None:
            raise VendorNotConfiguredError("task-queue")
        return self.queue

    def absolute_path(self, file_path: str) -> str:
        return str(Path(self.data_root).expanduser() / file_path)

    async def call(
        self, fn: Callable[..., Awaitable[Any]], *args: Any, operation: str
    ) -> Any:
        """Vendor call with the configured timeout and retry policy."""
        return await with_retry(
            fn, *args, operation=operation, timeout_s=self.vendor_timeout_s
        )


class BaseDigester(ABC):
    """Standard interface for all digesters."""

    def __init__(self, services: DigesterServices) -> None:
        self.services = services

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique digester identifier (e.g. 'image-ocr')."""

    @property
    def outputs(self) -> list[str]:
        """Digest types this digester writes. Defaults to its own name."""
        return [self.name]

    @abstractmethod
    async def can_digest(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> bool:
        """Whether this digester applies to the file at all."""

    @abstractmethod
    async def digest(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> list[DigestInput] | None:
        """Produce outputs, or None for "nothing to persist, try later".

        Raises on hard failure; the coordinator records it.
        """

    async def should_reprocess_completed(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> bool:
        """Whether completed/skipped outputs must run again."""
        return False
