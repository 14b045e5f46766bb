# src/digest/initialization.py — v1
"""Registers the built-in digesters in priority order.

Order matters: upstream text sources run before the digesters that read
them, so a single pass can carry new content all the way to the indexes.
"""

from __future__ import annotations

import logging

from digestkit.digest.base_digester import BaseDigester, DigesterServices
from digestkit.digest.digesters.audio import (
    SpeakerEmbeddingDigester,
    SpeechRecognitionDigester,
    SpeechRecognitionSummaryDigester,
)
from digestkit.digest.digesters.documents import (
    DocToMarkdownDigester,
    DocToScreenshotDigester,
)
from digestkit.digest.digesters.enrichment import TagsDigester
from digestkit.digest.digesters.images import (
    ImageCaptioningDigester,
    ImageObjectsDigester,
    ImageOcrDigester,
)
from digestkit.digest.digesters.search import (
    SearchKeywordDigester,
    SearchSemanticDigester,
)
from digestkit.digest.digesters.url import UrlCrawlDigester, UrlCrawlSummaryDigester
from digestkit.digest.registry import DigesterRegistry

logger = logging.getLogger(__name__)

DIGESTER_CLASSES: tuple[type[BaseDigester], ...] = (
    UrlCrawlDigester,
    DocToMarkdownDigester,
    DocToScreenshotDigester,
    ImageOcrDigester,
    ImageCaptioningDigester,
    ImageObjectsDigester,
    SpeechRecognitionDigester,
    SpeakerEmbeddingDigester,
    SpeechRecognitionSummaryDigester,
    UrlCrawlSummaryDigester,
    TagsDigester,
    SearchKeywordDigester,
    SearchSemanticDigester,
)


def initialize_digesters(
    registry: DigesterRegistry, services: DigesterServices
) -> DigesterRegistry:
    """Register every built-in digester. Safe to call repeatedly."""
    before = len(registry)
    for cls in DIGESTER_CLASSES:
        registry.register(cls(services))
    added = len(registry) - before
    if added:
        logger.info(
            "Registered %d digesters (%d digest types)",
            added,
            len(registry.get_all_digest_types()),
        )
    return registry
