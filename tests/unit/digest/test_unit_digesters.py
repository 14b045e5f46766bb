# tests/unit/digest/test_unit_digesters.py — v1
"""Direct tests for the built-in digesters, outside a coordinator pass."""

from __future__ import annotations

import json
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from digestkit.core.models import Digest
from digestkit.digest.digesters.audio import (
    SpeakerEmbeddingDigester,
    SpeechRecognitionDigester,
    SpeechRecognitionSummaryDigester,
)
from digestkit.digest.digesters.documents import DocToMarkdownDigester, DocToScreenshotDigester
from digestkit.digest.digesters.enrichment import TagsDigester
from digestkit.digest.digesters.images import ImageObjectsDigester, ImageOcrDigester
from digestkit.digest.digesters.search import SearchKeywordDigester, SearchSemanticDigester
from digestkit.digest.digesters.url import UrlCrawlDigester, UrlCrawlSummaryDigester
from digestkit.vendors.base import VendorNotConfiguredError
from digestkit.vendors.models import CrawlResult, OcrResult, SpeakerEmbedding

STAMP = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _row(name: str, content: str | None, status: str = "completed") -> Digest:
    return Digest(
        id=f"id-{name}", file_path="f", digester=name, status=status,
        content=content, created_at=STAMP, updated_at=STAMP,
    )


@pytest.fixture
def pdf(file_factory):
    return file_factory("docs/report.pdf", mime_type="application/pdf", size=50_000)


@pytest.fixture
def audio(file_factory):
    return file_factory("talks/intro.mp3", mime_type="audio/mpeg", size=90_000)


class TestDocuments:
    @pytest.mark.asyncio
    async def test_markdown(self, services, pdf, image_file, fake_media, data_root):
        digester = DocToMarkdownDigester(services)
        assert await digester.can_digest(pdf.path, pdf, [])
        assert not await digester.can_digest(image_file.path, image_file, [])
        outputs = await digester.digest(pdf.path, pdf, [])
        assert outputs[0].content.startswith("# Report")
        fake_media.doc_to_markdown.assert_awaited_once_with(
            str(data_root / pdf.path), "application/pdf"
        )

    @pytest.mark.asyncio
    async def test_screenshot_goes_to_archive(self, services, pdf):
        outputs = await DocToScreenshotDigester(services).digest(pdf.path, pdf, [])
        assert outputs[0].sqlar_name == "screenshot.png"
        assert outputs[0].archive_data == b"\x89PNG doc"
        assert outputs[0].content is None


class TestImages:
    @pytest.mark.asyncio
    async def test_blank_ocr_is_empty_content(self, services, image_file, fake_media):
        fake_media.ocr_image.return_value = OcrResult(text="   ")
        outputs = await ImageOcrDigester(services).digest(image_file.path, image_file, [])
        assert outputs[0].content is None
        assert outputs[0].status == "completed"

    @pytest.mark.asyncio
    async def test_objects_json(self, services, image_file):
        outputs = await ImageObjectsDigester(services).digest(image_file.path, image_file, [])
        objects = json.loads(outputs[0].content)["objects"]
        assert objects[0]["title"] == "sign"

    @pytest.mark.asyncio
    async def test_missing_vendor(self, services, image_file):
        digester = ImageOcrDigester(replace(services, media=None))
        with pytest.raises(VendorNotConfiguredError):
            await digester.digest(image_file.path, image_file, [])


class TestAudio:
    @pytest.mark.asyncio
    async def test_transcript_stored_as_json(self, services, audio):
        outputs = await SpeechRecognitionDigester(services).digest(audio.path, audio, [])
        transcript = json.loads(outputs[0].content)
        assert [s["speaker"] for s in transcript["segments"]] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_speaker_embedding_needs_diarized_transcript(self, services, audio):
        digester = SpeakerEmbeddingDigester(services)
        assert not await digester.can_digest(audio.path, audio, [])
        plain = json.dumps({"text": "hi", "segments": [{"start": 0, "end": 1, "text": "hi"}]})
        assert not await digester.can_digest(
            audio.path, audio, [_row("speech-recognition", plain)]
        )

    @pytest.mark.asyncio
    async def test_short_speakers_skipped(self, services, audio, fake_media):
        transcript = (await SpeechRecognitionDigester(services).digest(audio.path, audio, []))[0]
        existing = [_row("speech-recognition", transcript.content)]
        fake_media.speaker_embeddings.return_value = [
            SpeakerEmbedding(speaker="A", embedding=[0.1, 0.2, 0.3], duration_s=3.0),
            SpeakerEmbedding(speaker="B", embedding=[0.4, 0.5, 0.6], duration_s=1.0),
        ]
        digester = SpeakerEmbeddingDigester(services)
        assert await digester.can_digest(audio.path, audio, existing)
        content = json.loads((await digester.digest(audio.path, audio, existing))[0].content)
        assert content["speakersProcessed"] == 1
        assert content["speakersSkipped"] == 1
        assert content["speakers"][0] == {"speaker": "A", "durationS": 3.0, "dimensions": 3}

    @pytest.mark.asyncio
    async def test_summary_waits_for_transcript(self, services, audio, fake_text_model):
        digester = SpeechRecognitionSummaryDigester(services)
        assert await digester.can_digest(audio.path, audio, [])
        assert await digester.digest(audio.path, audio, []) is None
        pending = [_row("speech-recognition", None, status="in-progress")]
        assert await digester.digest(audio.path, audio, pending) is None
        fake_text_model.summarize.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_summary_of_transcript(self, services, audio, fake_text_model):
        transcript = (await SpeechRecognitionDigester(services).digest(audio.path, audio, []))[0]
        existing = [_row("speech-recognition", transcript.content)]
        outputs = await SpeechRecognitionSummaryDigester(services).digest(
            audio.path, audio, existing
        )
        assert outputs[0].digester == "speech-recognition-summary"
        assert json.loads(outputs[0].content) == {"summary": "A short summary."}
        fake_text_model.summarize.assert_awaited_once_with("hello there general")

    @pytest.mark.asyncio
    async def test_silent_transcript_completes_empty(self, services, audio, fake_text_model):
        silent = json.dumps({"text": "", "segments": []})
        outputs = await SpeechRecognitionSummaryDigester(services).digest(
            audio.path, audio, [_row("speech-recognition", silent)]
        )
        assert outputs[0].content is None
        fake_text_model.summarize.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_summary_follows_new_transcript(self, services, audio):
        digester = SpeechRecognitionSummaryDigester(services)
        summary = _row("speech-recognition-summary", json.dumps({"summary": "old"}))
        transcript = _row("speech-recognition", json.dumps({"text": "new"}))
        assert not await digester.should_reprocess_completed(
            audio.path, audio, [transcript, summary]
        )
        newer = transcript.model_copy(update={"updated_at": STAMP + timedelta(minutes=5)})
        assert await digester.should_reprocess_completed(audio.path, audio, [newer, summary])


class TestUrl:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "preview,expected",
        [
            ("https://example.com/a\n", True),
            ("http://example.com", True),
            ("see https://example.com", False),
            ("ftp://example.com", False),
            ("", False),
        ],
    )
    async def test_detects_url_files(self, services, file_factory, preview, expected):
        file = file_factory("links/x.url", mime_type="text/plain", text_preview=preview)
        assert await UrlCrawlDigester(services).can_digest(file.path, file, []) is expected

    @pytest.mark.asyncio
    async def test_reads_url_from_disk(self, services, file_factory, data_root):
        (data_root / "bookmark.txt").write_text("https://example.org/page", encoding="utf-8")
        file = file_factory("bookmark.txt", mime_type="text/plain")
        assert await UrlCrawlDigester(services).can_digest(file.path, file, [])

    @pytest.mark.asyncio
    async def test_missing_screenshot_is_skipped(self, services, file_factory, fake_media):
        fake_media.crawl_url.return_value = CrawlResult(
            url="https://example.org/page", markdown="one two three"
        )
        file = file_factory("x.url", mime_type="text/plain", text_preview="https://example.org/page")
        content, screenshot = await UrlCrawlDigester(services).digest(file.path, file, [])
        meta = json.loads(content.content)
        assert meta["domain"] == "example.org"
        assert meta["wordCount"] == 3
        assert meta["readingTimeMinutes"] == 1
        assert screenshot.status == "skipped"

    @pytest.mark.asyncio
    async def test_summary_needs_enough_text(self, services, file_factory):
        file = file_factory("x.url", mime_type="text/plain")
        digester = UrlCrawlSummaryDigester(services)
        short = [_row("url-crawl-content", json.dumps({"markdown": "tiny"}))]
        long = [_row("url-crawl-content", json.dumps({"markdown": "word " * 40}))]
        assert not await digester.can_digest(file.path, file, short)
        assert await digester.can_digest(file.path, file, long)


class TestTags:
    @pytest.mark.asyncio
    async def test_no_text_completes_empty(self, services, image_file, fake_text_model):
        outputs = await TagsDigester(services).digest(image_file.path, image_file, [])
        assert outputs[0].content is None
        fake_text_model.generate_tags.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_tags_deduplicated(self, services, image_file):
        existing = [_row("image-ocr", "STOP sign at the corner")]
        outputs = await TagsDigester(services).digest(image_file.path, image_file, existing)
        assert json.loads(outputs[0].content) == {"tags": ["traffic", "Signs"]}


class TestSearchDigesters:
    @pytest.mark.asyncio
    async def test_keyword_document_and_task(
        self, services, image_file, keyword_store, task_store
    ):
        existing = [
            _row("image-ocr", "STOP sign at the corner"),
            _row("tags", json.dumps({"tags": ["traffic"]})),
        ]
        outputs = await SearchKeywordDigester(services).digest(image_file.path, image_file, existing)
        meta = json.loads(outputs[0].content)
        assert meta["hasContent"] and meta["hasTags"] and not meta["hasSummary"]
        doc = await keyword_store.get_for_file(image_file.path)
        assert doc.content == "STOP sign at the corner"
        assert doc.tags == ["traffic"]
        task = await task_store.get(meta["taskId"])
        assert task.type == "keyword-index"

    @pytest.mark.asyncio
    async def test_keyword_nothing_to_index(self, services, image_file, task_store):
        outputs = await SearchKeywordDigester(services).digest(image_file.path, image_file, [])
        assert outputs[0].content is None
        assert await task_store.list_tasks() == []

    @pytest.mark.asyncio
    async def test_semantic_documents_per_source(
        self, services, image_file, semantic_store, task_store
    ):
        existing = [
            _row("image-captioning", "A red stop sign on a street"),
            _row("url-crawl-summary", json.dumps({"summary": "Short summary"})),
        ]
        outputs = await SearchSemanticDigester(services).digest(
            image_file.path, image_file, existing
        )
        meta = json.loads(outputs[0].content)
        assert meta["sources"] == {"image-captioning": 1, "summary": 1}
        docs = await semantic_store.list_for_file(image_file.path)
        assert {d.document_id for d in docs} == {
            f"{image_file.path}:image-captioning:0",
            f"{image_file.path}:summary:0",
        }
        task = await task_store.get(meta["taskId"])
        assert task.type == "semantic-embed"

    @pytest.mark.asyncio
    async def test_semantic_without_text(self, services, image_file):
        outputs = await SearchSemanticDigester(services).digest(image_file.path, image_file, [])
        assert outputs[0].content is None
