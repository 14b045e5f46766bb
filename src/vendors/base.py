# src/vendors/base.py — v1
"""Abstract vendor interfaces consumed by digesters and search handlers.

Concrete adapters (HTTP clients for OCR, transcription, crawling, LLMs,
vector and keyword backends) live outside this package and are injected
through the Runtime.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from digestkit.config.settings import ConfigurationError
from digestkit.vendors.models import (
    CaptionResult,
    CrawlResult,
    MarkdownResult,
    ObjectDetectionResult,
    OcrResult,
    ScreenshotResult,
    SpeakerEmbedding,
    SummaryResult,
    TagsResult,
    TranscriptResult,
)


class VendorNotConfiguredError(ConfigurationError):
    """A digester or handler needs a vendor that was never configured."""

    def __init__(self, vendor: str) -> None:
        self.vendor = vendor
        super().__init__(f"Vendor '{vendor}' is not configured")


class BaseMediaVendor(ABC):
    """Media understanding: crawling, conversion, vision and speech."""

    @abstractmethod
    async def crawl_url(self, url: str) -> CrawlResult:
        """Fetch a URL and render its main content to markdown."""

    @abstractmethod
    async def doc_to_markdown(self, path: str, mime_type: str | None) -> MarkdownResult:
        """Convert a PDF or office document to markdown."""

    @abstractmethod
    async def doc_screenshot(self, path: str, mime_type: str | None) -> ScreenshotResult:
        """Render a first-page preview of a document."""

    @abstractmethod
    async def ocr_image(self, path: str) -> OcrResult:
        """Extract printed text from an image."""

    @abstractmethod
    async def caption_image(self, path: str) -> CaptionResult:
        """Describe an image in one or two sentences."""

    @abstractmethod
    async def detect_objects(self, path: str) -> ObjectDetectionResult:
        """List objects visible in an image."""

    @abstractmethod
    async def transcribe(self, path: str) -> TranscriptResult:
        """Speech-to-text with timed segments."""

    @abstractmethod
    async def speaker_embeddings(
        self, path: str, transcript: TranscriptResult
    ) -> list[SpeakerEmbedding]:
        """Voice embedding per diarized speaker."""


class BaseTextModel(ABC):
    """Text generation used for summaries and tags."""

    @abstractmethod
    async def summarize(self, text: str) -> SummaryResult:
        """Produce a short summary of the text."""

    @abstractmethod
    async def generate_tags(self, text: str) -> TagsResult:
        """Produce a handful of topical tags."""


class BaseEmbedder(ABC):
    """Unified interface for embedding providers."""

    @abstractmethod
    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch of texts into vectors."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Model identifier."""


class BaseVectorIndex(ABC):
    """Vector search backend."""

    @abstractmethod
    async def upsert(
        self,
        ids: list[str],
        embeddings: list[list[float]],
        payloads: list[dict[str, Any]],
    ) -> None:
        """Insert or update vectors with their payloads."""

    @abstractmethod
    async def delete(self, ids: list[str]) -> None:
        """Delete vectors by id."""


class BaseKeywordIndex(ABC):
    """Full-text search backend."""

    @abstractmethod
    async def upsert_document(self, document_id: str, document: dict[str, Any]) -> None:
        """Insert or replace one search document."""

    @abstractmethod
    async def delete_document(self, document_id: str) -> None:
        """Remove one search document."""
