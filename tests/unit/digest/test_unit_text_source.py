# tests/unit/digest/test_unit_text_source.py — v1
"""Tests for digest/text_source.py and the helpers in digest/base_digester.py."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from digestkit.core.models import Digest
from digestkit.digest.base_digester import find_digest, is_audio_or_video, is_image, upstream_changed
from digestkit.digest.text_source import (
    get_content_sources,
    get_primary_text,
    get_summary_text,
    get_tags,
    has_local_text,
)

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _row(name: str, status: str = "completed", content: str | None = None, minutes: int = 0) -> Digest:
    stamp = T0 + timedelta(minutes=minutes)
    return Digest(
        id=f"id-{name}",
        file_path="f",
        digester=name,
        status=status,
        content=content,
        created_at=stamp,
        updated_at=stamp,
    )


class TestFileKinds:
    def test_image_by_mime_or_extension(self, file_factory):
        assert is_image(file_factory("a.bin", mime_type="image/png"))
        assert is_image(file_factory("a.JPG"))
        assert not is_image(file_factory("a.txt", mime_type="text/plain"))

    def test_audio_video(self, file_factory):
        assert is_audio_or_video(file_factory("talk.mp3"))
        assert is_audio_or_video(file_factory("clip", mime_type="video/mp4"))

    def test_local_text(self, file_factory):
        assert has_local_text(file_factory("notes.md"))
        assert has_local_text(file_factory("data", mime_type="application/json"))
        assert not has_local_text(file_factory("dir", is_folder=True))
        assert not has_local_text(file_factory("photo.jpg", mime_type="image/jpeg"))


class TestUpstreamChanged:
    def test_newer_upstream(self):
        existing = [_row("tags", minutes=0), _row("image-ocr", minutes=5)]
        assert upstream_changed(["tags"], ["image-ocr"], existing)

    def test_older_upstream(self):
        existing = [_row("tags", minutes=5), _row("image-ocr", minutes=0)]
        assert not upstream_changed(["tags"], ["image-ocr"], existing)

    def test_only_completed_upstream_counts(self):
        existing = [_row("tags", minutes=0), _row("image-ocr", status="failed", minutes=5)]
        assert not upstream_changed(["tags"], ["image-ocr"], existing)

    def test_unsettled_own_rows(self):
        existing = [_row("tags", status="todo"), _row("image-ocr", minutes=5)]
        assert not upstream_changed(["tags"], ["image-ocr"], existing)

    def test_find_digest_with_status(self):
        existing = [_row("tags", status="failed")]
        assert find_digest(existing, "tags").status == "failed"
        assert find_digest(existing, "tags", status="completed") is None


class TestContentSources:
    @pytest.mark.asyncio
    async def test_priority_order(self, file_factory, data_root):
        (data_root / "page.md").write_text("local body", encoding="utf-8")
        existing = [
            _row("image-captioning", content="a caption"),
            _row("image-ocr", content="ocr text"),
            _row("url-crawl-content", content=json.dumps({"markdown": "# Page"})),
            _row(
                "image-objects",
                content=json.dumps({"objects": [{"title": "cat", "description": "sleeping"}]}),
            ),
        ]
        sources = await get_content_sources(
            "page.md", file_factory("page.md"), existing, data_root
        )
        assert [s.source_type for s in sources] == [
            "url-crawl-content", "image-ocr", "image-captioning", "image-objects", "file",
        ]
        assert sources[0].text == "# Page"
        assert sources[3].text == "cat: sleeping"

    @pytest.mark.asyncio
    async def test_incomplete_rows_ignored(self, file_factory, data_root):
        existing = [_row("image-ocr", status="failed", content="stale")]
        sources = await get_content_sources(
            "x.jpg", file_factory("x.jpg", mime_type="image/jpeg"), existing, data_root
        )
        assert sources == []

    @pytest.mark.asyncio
    async def test_transcript_segments_joined(self, file_factory, data_root):
        content = json.dumps({"segments": [{"text": "hello"}, {"text": "world"}]})
        text = await get_primary_text(
            "talk.mp3",
            file_factory("talk.mp3", mime_type="audio/mpeg"),
            [_row("speech-recognition", content=content)],
            data_root,
        )
        assert text == "hello world"

    @pytest.mark.asyncio
    async def test_folder_text_md(self, file_factory, data_root):
        (data_root / "clip").mkdir()
        (data_root / "clip" / "text.md").write_text("folder notes", encoding="utf-8")
        text = await get_primary_text(
            "clip", file_factory("clip", is_folder=True), [], data_root
        )
        assert text == "folder notes"

    @pytest.mark.asyncio
    async def test_missing_local_file(self, file_factory, data_root):
        text = await get_primary_text("gone.md", file_factory("gone.md"), [], data_root)
        assert text == ""


class TestSummaryAndTags:
    def test_summary_from_json(self):
        assert get_summary_text([_row("url-crawl-summary", content='{"summary": "S"}')]) == "S"

    def test_summary_from_transcript(self):
        rows = [_row("speech-recognition-summary", content='{"summary": "Talk"}')]
        assert get_summary_text(rows) == "Talk"

    def test_summary_absent(self):
        assert get_summary_text([]) is None

    def test_tags_variants(self):
        assert get_tags([_row("tags", content='{"tags": ["a", "b"]}')]) == ["a", "b"]
        assert get_tags([_row("tags", content='["x"]')]) == ["x"]
        assert get_tags([_row("tags", content="not json")]) == []
