# src/digest/text_source.py — v1
"""Helpers that pull text out of a file and its digests.

Sources are returned in a fixed priority order: crawled page, converted
document, OCR, caption, detected objects, transcript, then the file itself
(or ``text.md`` for folders).
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from digestkit.core.models import ContentSource, Digest, FileRecord
from digestkit.digest.base_digester import find_digest

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = frozenset(
    {".md", ".mdx", ".markdown", ".txt", ".log", ".json", ".yaml", ".yml", ".csv", ".tsv"}
)
EXTRA_TEXT_MIME_TYPES = frozenset(
    {
        "application/json",
        "application/xml",
        "application/javascript",
        "application/x-javascript",
        "application/x-sh",
        "application/sql",
    }
)


def _parse_json(raw: str | None) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return None


def has_local_text(file: FileRecord) -> bool:
    """Whether the file itself is text (by MIME type or extension)."""
    if file.is_folder:
        return False
    if file.mime_type:
        mime = file.mime_type.lower()
        if mime.startswith("text/") or mime in EXTRA_TEXT_MIME_TYPES:
            return True
    return Path(file.path).suffix.lower() in TEXT_EXTENSIONS


async def read_text_file(path: Path) -> str | None:
    """Read a UTF-8 text file off the event loop. None if unreadable."""
    try:
        return await asyncio.to_thread(path.read_text, encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.warning("Failed to read text file %s: %s", path, exc)
        return None


def get_url_crawl_markdown(existing: list[Digest]) -> str | None:
    row = find_digest(existing, "url-crawl-content", status="completed")
    if row is None or not row.content:
        return None
    parsed = _parse_json(row.content)
    if isinstance(parsed, dict) and parsed.get("markdown"):
        return str(parsed["markdown"])
    return row.content


def _objects_text(content: str) -> str | None:
    parsed = _parse_json(content)
    if not isinstance(parsed, dict):
        return None
    lines = []
    for obj in parsed.get("objects") or []:
        parts = [p for p in (obj.get("title"), obj.get("description")) if p]
        if parts:
            lines.append(": ".join(parts))
    return "\n".join(lines) or None


def _transcript_text(content: str) -> str:
    parsed = _parse_json(content)
    if isinstance(parsed, dict) and parsed.get("segments"):
        return " ".join(str(seg.get("text", "")) for seg in parsed["segments"])
    return content


async def get_content_sources(
    file_path: str, file: FileRecord, existing: list[Digest], data_root: Path
) -> list[ContentSource]:
    """All available text for the file, in priority order."""
    sources: list[ContentSource] = []

    markdown = get_url_crawl_markdown(existing)
    if markdown:
        sources.append(ContentSource(source_type="url-crawl-content", text=markdown))

    for name in ("doc-to-markdown", "image-ocr", "image-captioning"):
        row = find_digest(existing, name, status="completed")
        if row is not None and row.content:
            sources.append(ContentSource(source_type=name, text=row.content))

    row = find_digest(existing, "image-objects", status="completed")
    if row is not None and row.content:
        text = _objects_text(row.content)
        if text:
            sources.append(ContentSource(source_type="image-objects", text=text))

    row = find_digest(existing, "speech-recognition", status="completed")
    if row is not None and row.content:
        text = _transcript_text(row.content)
        if text.strip():
            sources.append(ContentSource(source_type="speech-recognition", text=text))

    root = Path(data_root).expanduser()
    if has_local_text(file):
        text = await read_text_file(root / file_path)
        if text:
            sources.append(ContentSource(source_type="file", text=text))
    elif file.is_folder:
        candidate = root / file_path / "text.md"
        if candidate.is_file():
            text = await read_text_file(candidate)
            if text:
                sources.append(ContentSource(source_type="file", text=text))

    return sources


async def get_primary_text(
    file_path: str, file: FileRecord, existing: list[Digest], data_root: Path
) -> str:
    """All sources joined by blank lines; empty string when there are none."""
    sources = await get_content_sources(file_path, file, existing, data_root)
    return "\n\n".join(s.text for s in sources if s.text)


def get_summary_text(existing: list[Digest]) -> str | None:
    for name in ("url-crawl-summary", "speech-recognition-summary"):
        row = find_digest(existing, name, status="completed")
        if row is None or not row.content:
            continue
        parsed = _parse_json(row.content)
        if isinstance(parsed, dict) and parsed.get("summary"):
            return str(parsed["summary"])
        return row.content
    return None


def get_tags(existing: list[Digest]) -> list[str]:
    row = find_digest(existing, "tags", status="completed")
    if row is None or not row.content:
        return []
    parsed = _parse_json(row.content)
    if isinstance(parsed, dict):
        parsed = parsed.get("tags")
    if isinstance(parsed, list):
        return [str(t) for t in parsed if t]
    return []
