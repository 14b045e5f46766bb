# src/digest/digesters/images.py — v1
"""Digesters for still images: OCR, captioning, object detection."""

from __future__ import annotations

from digestkit.core.models import Digest, DigestInput, FileRecord
from digestkit.digest.base_digester import BaseDigester, is_image


class _ImageDigester(BaseDigester):
    async def can_digest(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> bool:
        return is_image(file)


class ImageOcrDigester(_ImageDigester):
    """Extracts printed text."""

    @property
    def name(self) -> str:
        return "image-ocr"

    async def digest(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> list[DigestInput] | None:
        media = self.services.require_media()
        result = await self.services.call(
            media.ocr_image, self.services.absolute_path(file_path), operation="ocr_image"
        )
        return [DigestInput(digester=self.name, content=result.text.strip() or None)]


class ImageCaptioningDigester(_ImageDigester):
    """Describes the image in natural language."""

    @property
    def name(self) -> str:
        return "image-captioning"

    async def digest(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> list[DigestInput] | None:
        media = self.services.require_media()
        result = await self.services.call(
            media.caption_image,
            self.services.absolute_path(file_path),
            operation="caption_image",
        )
        return [DigestInput(digester=self.name, content=result.caption.strip() or None)]


class ImageObjectsDigester(_ImageDigester):
    """Lists detected objects as JSON."""

    @property
    def name(self) -> str:
        return "image-objects"

    async def digest(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> list[DigestInput] | None:
        media = self.services.require_media()
        result = await self.services.call(
            media.detect_objects,
            self.services.absolute_path(file_path),
            operation="detect_objects",
        )
        return [DigestInput(digester=self.name, content=result.model_dump_json())]
