# src/digest/digesters/enrichment.py — v1
"""Text enrichment digesters built on the text model."""

from __future__ import annotations

import json
import logging

from digestkit.core.models import Digest, DigestInput, FileRecord
from digestkit.digest.base_digester import BaseDigester, upstream_changed
from digestkit.digest.text_source import get_primary_text

logger = logging.getLogger(__name__)

# Digests whose text feeds tagging
TAGS_UPSTREAM: tuple[str, ...] = (
    "url-crawl-content",
    "doc-to-markdown",
    "image-ocr",
    "image-captioning",
    "speech-recognition",
)
MIN_TAGGABLE_CHARS = 10
MAX_TAGGING_CHARS = 20000


def _clean_tags(tags: list[str]) -> list[str]:
    seen: set[str] = set()
    cleaned: list[str] = []
    for tag in tags:
        value = tag.strip()
        key = value.lower()
        if value and key not in seen:
            seen.add(key)
            cleaned.append(value)
    return cleaned


class TagsDigester(BaseDigester):
    """Generates topical tags from whatever text the file has."""

    @property
    def name(self) -> str:
        return "tags"

    async def can_digest(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> bool:
        return not file.is_folder

    async def digest(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> list[DigestInput] | None:
        text = await get_primary_text(file_path, file, existing, self.services.data_root)
        if len(text.strip()) < MIN_TAGGABLE_CHARS:
            # No text yet; an upstream completion will bring this back
            return [DigestInput(digester=self.name, content=None)]
        model = self.services.require_text_model()
        result = await self.services.call(
            model.generate_tags, text[:MAX_TAGGING_CHARS], operation="generate_tags"
        )
        tags = _clean_tags(result.tags)
        return [DigestInput(digester=self.name, content=json.dumps({"tags": tags}))]

    async def should_reprocess_completed(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> bool:
        return upstream_changed([self.name], TAGS_UPSTREAM, existing)
