# src/digest/digesters/documents.py — v1
"""Digesters for PDFs and office documents."""

from __future__ import annotations

import logging

from digestkit.core.models import Digest, DigestInput, FileRecord
from digestkit.digest.base_digester import BaseDigester, is_document

logger = logging.getLogger(__name__)


class DocToMarkdownDigester(BaseDigester):
    """Converts a document to markdown text."""

    @property
    def name(self) -> str:
        return "doc-to-markdown"

    async def can_digest(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> bool:
        return is_document(file)

    async def digest(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> list[DigestInput] | None:
        media = self.services.require_media()
        result = await self.services.call(
            media.doc_to_markdown,
            self.services.absolute_path(file_path),
            file.mime_type,
            operation="doc_to_markdown",
        )
        return [DigestInput(digester=self.name, content=result.markdown)]


class DocToScreenshotDigester(BaseDigester):
    """Renders a first-page preview image of a document."""

    @property
    def name(self) -> str:
        return "doc-to-screenshot"

    async def can_digest(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> bool:
        return is_document(file)

    async def digest(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> list[DigestInput] | None:
        media = self.services.require_media()
        result = await self.services.call(
            media.doc_screenshot,
            self.services.absolute_path(file_path),
            file.mime_type,
            operation="doc_screenshot",
        )
        ext = "jpg" if "jpeg" in result.mime_type else "png"
        return [
            DigestInput(
                digester=self.name,
                sqlar_name=f"screenshot.{ext}",
                archive_data=result.data,
            )
        ]
