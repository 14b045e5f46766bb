# src/vendors/models.py — v1
"""Typed results returned by vendor adapters."""

from __future__ import annotations

from pydantic import BaseModel, Field


class CrawlResult(BaseModel):
    """Fetched web page rendered to markdown."""

    url: str
    markdown: str = ""
    title: str | None = None
    description: str | None = None
    domain: str | None = None
    screenshot: bytes | None = None
    screenshot_mime_type: str | None = None


class MarkdownResult(BaseModel):
    """Document converted to markdown."""

    markdown: str
    page_count: int | None = None


class ScreenshotResult(BaseModel):
    """Rendered preview image of a document."""

    data: bytes
    mime_type: str = "image/png"


class OcrResult(BaseModel):
    text: str


class CaptionResult(BaseModel):
    caption: str


class DetectedObject(BaseModel):
    """One object found in an image."""

    title: str
    description: str = ""
    confidence: float | None = None
    bbox: list[float] | None = None


class ObjectDetectionResult(BaseModel):
    objects: list[DetectedObject] = Field(default_factory=list)


class TranscriptSegment(BaseModel):
    start: float
    end: float
    text: str
    speaker: str | None = None


class TranscriptResult(BaseModel):
    """Speech-to-text output with timed segments."""

    text: str = ""
    language: str | None = None
    segments: list[TranscriptSegment] = Field(default_factory=list)


class SpeakerEmbedding(BaseModel):
    speaker: str
    embedding: list[float]
    duration_s: float = 0.0


class SummaryResult(BaseModel):
    summary: str


class TagsResult(BaseModel):
    tags: list[str] = Field(default_factory=list)
