# src/digest/digesters/url.py — v1
"""Digesters for files whose content is a single web URL."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from urllib.parse import urlparse

from digestkit.core.models import Digest, DigestInput, FileRecord
from digestkit.digest.base_digester import BaseDigester, find_digest, upstream_changed
from digestkit.digest.text_source import get_url_crawl_markdown, read_text_file

logger = logging.getLogger(__name__)

# URL files are one line; anything bigger is a document that mentions a URL
_MAX_URL_FILE_BYTES = 4096
_MIN_SUMMARY_CHARS = 100
_WORDS_PER_MINUTE = 200


def _screenshot_extension(mime_type: str | None) -> str:
    if not mime_type:
        return "png"
    if "jpeg" in mime_type or "jpg" in mime_type:
        return "jpg"
    if "webp" in mime_type:
        return "webp"
    return "png"


class UrlCrawlDigester(BaseDigester):
    """Crawls the URL stored in a text file."""

    @property
    def name(self) -> str:
        return "url-crawl"

    @property
    def outputs(self) -> list[str]:
        return ["url-crawl-content", "url-crawl-screenshot"]

    async def _read_url(self, file_path: str, file: FileRecord) -> str | None:
        if file.is_folder or file.size > _MAX_URL_FILE_BYTES:
            return None
        if file.mime_type and not file.mime_type.startswith("text/"):
            return None
        text = file.text_preview
        if text is None:
            text = await read_text_file(Path(self.services.absolute_path(file_path)))
        if not text:
            return None
        candidate = text.strip()
        if not candidate.startswith(("http://", "https://")) or any(
            c.isspace() for c in candidate
        ):
            return None
        return candidate

    async def can_digest(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> bool:
        return await self._read_url(file_path, file) is not None

    async def digest(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> list[DigestInput] | None:
        url = await self._read_url(file_path, file)
        if url is None:
            raise ValueError("File no longer contains a URL")
        media = self.services.require_media()
        logger.info("Crawling %s", url)
        result = await self.services.call(media.crawl_url, url, operation="crawl_url")

        word_count = len(result.markdown.split())
        content = {
            "url": result.url or url,
            "title": result.title,
            "description": result.description,
            "domain": result.domain or urlparse(result.url or url).hostname,
            "markdown": result.markdown,
            "wordCount": word_count,
            "readingTimeMinutes": max(1, -(-word_count // _WORDS_PER_MINUTE)),
        }
        outputs = [
            DigestInput(digester="url-crawl-content", content=json.dumps(content))
        ]
        if result.screenshot:
            ext = _screenshot_extension(result.screenshot_mime_type)
            outputs.append(
                DigestInput(
                    digester="url-crawl-screenshot",
                    sqlar_name=f"screenshot.{ext}",
                    archive_data=result.screenshot,
                )
            )
        else:
            outputs.append(
                DigestInput(
                    digester="url-crawl-screenshot",
                    status="skipped",
                    error="Crawler returned no screenshot",
                )
            )
        return outputs


class UrlCrawlSummaryDigester(BaseDigester):
    """Summarizes crawled page content."""

    @property
    def name(self) -> str:
        return "url-crawl-summary"

    async def can_digest(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> bool:
        markdown = get_url_crawl_markdown(existing)
        return bool(markdown) and len(markdown.strip()) >= _MIN_SUMMARY_CHARS

    async def digest(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> list[DigestInput] | None:
        markdown = get_url_crawl_markdown(existing)
        if not markdown:
            return None
        model = self.services.require_text_model()
        result = await self.services.call(model.summarize, markdown, operation="summarize")
        return [
            DigestInput(
                digester=self.name, content=json.dumps({"summary": result.summary})
            )
        ]

    async def should_reprocess_completed(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> bool:
        if find_digest(existing, self.name) is None:
            return False
        return upstream_changed([self.name], ("url-crawl-content",), existing)
