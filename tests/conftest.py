# tests/conftest.py — v1
"""Shared test fixtures for all unit and integration tests.

Provides settings in temp directories, an in-memory database with its
stores, fake vendors built on AsyncMock, and file seeding helpers.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from digestkit.chunking.markdown_chunker import ChunkerOptions
from digestkit.config.settings import Settings
from digestkit.core.models import Digest, DigestInput, FileRecord
from digestkit.digest.base_digester import BaseDigester, DigesterServices
from digestkit.search.store import KeywordDocumentStore, SemanticDocumentStore
from digestkit.storage.archive import ArchiveStore
from digestkit.storage.database import Database
from digestkit.storage.digests import DigestStore
from digestkit.storage.files import FileStore
from digestkit.storage.locks import ProcessingLockStore
from digestkit.taskqueue.queue import TaskQueue
from digestkit.taskqueue.store import TaskStore
from digestkit.vendors.base import BaseMediaVendor, BaseTextModel
from digestkit.vendors.models import (
    CaptionResult,
    CrawlResult,
    DetectedObject,
    MarkdownResult,
    ObjectDetectionResult,
    OcrResult,
    ScreenshotResult,
    SummaryResult,
    TagsResult,
    TranscriptResult,
    TranscriptSegment,
)


# === FIXTURES: Settings and storage ===


@pytest.fixture
def data_root(tmp_path: Path) -> Path:
    root = tmp_path / "data"
    root.mkdir()
    return root


@pytest.fixture
def settings(tmp_path: Path, data_root: Path) -> Settings:
    """Settings isolated from any .env, pointing at temp directories."""
    return Settings(
        _env_file=None,
        db_path=tmp_path / "digestkit.db",
        data_root=data_root,
        digest_start_delay_s=0,
        vendor_timeout_s=5,
    )


@pytest.fixture
def db():
    database = Database(":memory:")
    yield database
    database.close()


@pytest.fixture
def file_store(db: Database) -> FileStore:
    return FileStore(db)


@pytest.fixture
def digest_store(db: Database) -> DigestStore:
    return DigestStore(db)


@pytest.fixture
def archive_store(db: Database) -> ArchiveStore:
    return ArchiveStore(db)


@pytest.fixture
def lock_store(db: Database) -> ProcessingLockStore:
    return ProcessingLockStore(db, owner="test")


@pytest.fixture
def task_store(db: Database) -> TaskStore:
    return TaskStore(db)


@pytest.fixture
def task_queue(task_store: TaskStore) -> TaskQueue:
    return TaskQueue(task_store)


@pytest.fixture
def semantic_store(db: Database) -> SemanticDocumentStore:
    return SemanticDocumentStore(db)


@pytest.fixture
def keyword_store(db: Database) -> KeywordDocumentStore:
    return KeywordDocumentStore(db)


# === FIXTURES: Fake vendors ===


@pytest.fixture
def fake_media() -> AsyncMock:
    """Media vendor whose every call succeeds with small canned results."""
    media = AsyncMock(spec=BaseMediaVendor)
    media.crawl_url.return_value = CrawlResult(
        url="https://example.com/article",
        markdown="# Example\n\n" + "Example article body text. " * 10,
        title="Example",
        domain="example.com",
        screenshot=b"\x89PNG fake",
        screenshot_mime_type="image/png",
    )
    media.doc_to_markdown.return_value = MarkdownResult(
        markdown="# Report\n\nQuarterly figures improved across regions."
    )
    media.doc_screenshot.return_value = ScreenshotResult(data=b"\x89PNG doc")
    media.ocr_image.return_value = OcrResult(text="STOP sign at the corner")
    media.caption_image.return_value = CaptionResult(caption="A red stop sign on a street")
    media.detect_objects.return_value = ObjectDetectionResult(
        objects=[DetectedObject(title="sign", description="red octagon", confidence=0.9)]
    )
    media.transcribe.return_value = TranscriptResult(
        text="hello there general",
        language="en",
        segments=[
            TranscriptSegment(start=0.0, end=3.0, text="hello there", speaker="A"),
            TranscriptSegment(start=3.0, end=4.0, text="general", speaker="B"),
        ],
    )
    media.speaker_embeddings.return_value = []
    return media


@pytest.fixture
def fake_text_model() -> AsyncMock:
    model = AsyncMock(spec=BaseTextModel)
    model.summarize.return_value = SummaryResult(summary="A short summary.")
    model.generate_tags.return_value = TagsResult(tags=["traffic", "Signs", "signs"])
    return model


@pytest.fixture
def fake_embedder() -> MagicMock:
    embedder = MagicMock()
    embedder.model_name = "fake-embedder"
    embedder.embed_texts = AsyncMock(side_effect=lambda texts: [[0.1, 0.2] for _ in texts])
    return embedder


@pytest.fixture
def fake_vector_index() -> MagicMock:
    index = MagicMock()
    index.upsert = AsyncMock(return_value=None)
    index.delete = AsyncMock(return_value=None)
    return index


@pytest.fixture
def fake_keyword_index() -> MagicMock:
    index = MagicMock()
    index.upsert_document = AsyncMock(return_value=None)
    index.delete_document = AsyncMock(return_value=None)
    return index


@pytest.fixture
def services(
    data_root: Path,
    fake_media: AsyncMock,
    fake_text_model: AsyncMock,
    task_queue: TaskQueue,
    semantic_store: SemanticDocumentStore,
    keyword_store: KeywordDocumentStore,
) -> DigesterServices:
    return DigesterServices(
        data_root=data_root,
        media=fake_media,
        text_model=fake_text_model,
        queue=task_queue,
        semantic_store=semantic_store,
        keyword_store=keyword_store,
        chunk_options=ChunkerOptions(),
        vendor_timeout_s=5,
    )


# === FIXTURES: Sample data ===


def make_file(
    path: str,
    mime_type: str | None = None,
    size: int = 100,
    is_folder: bool = False,
    text_preview: str | None = None,
    created_at: datetime | None = None,
) -> FileRecord:
    """FileRecord with sensible defaults for tests."""
    return FileRecord(
        path=path,
        name=Path(path).name,
        is_folder=is_folder,
        size=size,
        mime_type=mime_type,
        text_preview=text_preview,
        created_at=created_at or datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def image_file() -> FileRecord:
    return make_file("photos/sign.jpg", mime_type="image/jpeg", size=2048)


@pytest.fixture
def file_factory():
    """Factory fixture: ``file_factory("a.md", mime_type="text/markdown")``."""
    return make_file


# === FIXTURES: Scriptable digester ===


class ScriptedDigester(BaseDigester):
    """Digester whose behaviour is set per test.

    ``result`` may be a list of DigestInput, None (defer), an exception to
    raise, or a callable taking (file_path, existing) and returning one of
    those. The default produces completed content for every output.
    """

    def __init__(
        self,
        services: DigesterServices,
        name: str,
        outputs: list[str] | None = None,
        applies: bool = True,
        result: object = "default",
        reprocess: bool = False,
    ) -> None:
        super().__init__(services)
        self._name = name
        self._outputs = outputs or [name]
        self.applies = applies
        self.result = result
        self.reprocess = reprocess
        self.calls = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def outputs(self) -> list[str]:
        return list(self._outputs)

    async def can_digest(self, file_path, file, existing: list[Digest]) -> bool:
        return self.applies

    async def digest(self, file_path, file, existing: list[Digest]):
        self.calls += 1
        result = self.result
        if callable(result) and not isinstance(result, type):
            result = result(file_path, existing)
        if isinstance(result, BaseException):
            raise result
        if result == "default":
            return [
                DigestInput(digester=o, content=f"{o} of {file_path}")
                for o in self._outputs
            ]
        return result

    async def should_reprocess_completed(self, file_path, file, existing) -> bool:
        return self.reprocess


@pytest.fixture
def digester_factory(services: DigesterServices):
    """``digester_factory("name", result=...)`` builds a ScriptedDigester."""

    def build(name: str, **kwargs) -> ScriptedDigester:
        return ScriptedDigester(services, name, **kwargs)

    return build
