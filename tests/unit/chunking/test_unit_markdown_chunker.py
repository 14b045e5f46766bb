# tests/unit/chunking/test_unit_markdown_chunker.py — v1
"""Tests for chunking/markdown_chunker.py and chunking/chunk_validator.py."""

from __future__ import annotations

import pytest

from digestkit.chunking.chunk_validator import validate_chunks
from digestkit.chunking.markdown_chunker import (
    ChunkerOptions,
    chunk_markdown_content,
    count_words,
    estimate_token_count,
    normalize_content,
)

SMALL = ChunkerOptions(
    target_tokens=10,
    max_tokens=12,
    overlap_ratio=0.2,
    min_overlap_tokens=2,
    max_overlap_tokens=3,
)


def _paragraph(i: int, words: int = 5) -> str:
    return " ".join(f"p{i}w{j}" for j in range(1, words + 1))


def _document(paragraphs: int) -> str:
    return "\n\n".join(_paragraph(i) for i in range(1, paragraphs + 1))


class TestHelpers:
    def test_normalize_line_endings(self):
        assert normalize_content("  a\r\nb\rc\n  ") == "a\nb\nc"

    def test_normalize_none(self):
        assert normalize_content(None) == ""

    def test_token_and_word_counts(self):
        assert estimate_token_count("a  b\n\tc") == 3
        assert count_words(" one two ") == 2


class TestChunking:
    @pytest.mark.parametrize("content", ["", "   \n\t\r\n  ", None])
    def test_empty_input(self, content):
        assert chunk_markdown_content(content, SMALL) == []

    def test_short_text_is_single_chunk(self):
        chunks = chunk_markdown_content("just a few words", SMALL)
        assert len(chunks) == 1
        chunk = chunks[0]
        assert chunk.chunk_index == 0
        assert chunk.chunk_count == 1
        assert chunk.overlap_tokens == 0
        assert chunk.text == "just a few words"
        assert (chunk.span_start, chunk.span_end) == (0, 16)

    def test_greedy_packing_flushes_at_target(self):
        chunks = chunk_markdown_content(_document(5), SMALL)
        assert len(chunks) == 3
        assert [c.chunk_count for c in chunks] == [3, 3, 3]
        assert chunks[0].text == f"{_paragraph(1)}\n\n{_paragraph(2)}"

    def test_overlap_prepends_previous_tail(self):
        chunks = chunk_markdown_content(_document(5), SMALL)
        second = chunks[1]
        assert second.overlap_tokens == 2
        assert second.text.startswith("p2w4 p2w5\n\np3w1")
        assert second.token_count == 12
        assert second.word_count == 12

    def test_overlap_budget_clamped_to_minimum(self):
        # 5 own tokens · 0.2 = 1, clamped up to the minimum of 2
        chunks = chunk_markdown_content(_document(5), SMALL)
        assert chunks[2].overlap_tokens == 2
        assert chunks[2].text.startswith("p4w4 p4w5\n\n")

    def test_overlap_limited_by_short_previous_chunk(self):
        big = " ".join(f"b{j}" for j in range(20))
        chunks = chunk_markdown_content(f"a b\n\n{big}", SMALL)
        assert len(chunks) == 2
        assert chunks[0].text == "a b"
        assert chunks[1].overlap_tokens == 2
        assert chunks[1].text == f"a b\n\n{big}"

    def test_oversized_block_is_own_chunk(self):
        big = " ".join(f"b{j}" for j in range(30))
        chunks = chunk_markdown_content(big, SMALL)
        assert len(chunks) == 1
        assert chunks[0].token_count == 30

    def test_headings_start_new_blocks(self):
        content = "intro words here\n# Heading\n" + " ".join(f"h{j}" for j in range(12))
        chunks = chunk_markdown_content(content, SMALL)
        assert len(chunks) == 2
        assert chunks[0].text == "intro words here"
        assert chunks[1].text.endswith("h11")
        assert "# Heading" in chunks[1].text

    def test_spans_tile_normalized_content(self):
        content = "\r\n" + _document(7).replace("\n\n", "\r\n\r\n\r\n") + "\n\n"
        normalized = normalize_content(content)
        chunks = chunk_markdown_content(content, SMALL)
        assert chunks[0].span_start == 0
        assert chunks[-1].span_end == len(normalized)
        for prev, nxt in zip(chunks, chunks[1:]):
            assert prev.span_end == nxt.span_start
        assert "".join(normalized[c.span_start:c.span_end] for c in chunks) == normalized

    def test_default_options(self):
        content = _document(400)
        chunks = chunk_markdown_content(content)
        assert len(chunks) > 1
        for chunk in chunks[1:]:
            assert 80 <= chunk.overlap_tokens <= 180


class TestValidator:
    def test_valid_chunks(self):
        content = _document(6)
        chunks = chunk_markdown_content(content, SMALL)
        result = validate_chunks(chunks, content, SMALL)
        assert result.valid, result.errors

    def test_empty_content_no_chunks(self):
        result = validate_chunks([], "", SMALL)
        assert result.valid
        assert result.warnings

    def test_missing_chunks_for_content(self):
        result = validate_chunks([], "text", SMALL)
        assert not result.valid

    def test_detects_gap(self):
        content = _document(5)
        chunks = chunk_markdown_content(content, SMALL)
        broken = [chunks[0], chunks[1].model_copy(update={"span_start": chunks[1].span_start + 1}), chunks[2]]
        result = validate_chunks(broken, content, SMALL)
        assert not result.valid
        assert any("span starts" in e for e in result.errors)

    def test_detects_bad_index(self):
        content = _document(5)
        chunks = chunk_markdown_content(content, SMALL)
        broken = [chunks[0], chunks[1].model_copy(update={"chunk_index": 5}), chunks[2]]
        assert not validate_chunks(broken, content, SMALL).valid

    def test_detects_first_chunk_overlap(self):
        content = _document(5)
        chunks = chunk_markdown_content(content, SMALL)
        broken = [chunks[0].model_copy(update={"overlap_tokens": 2})] + chunks[1:]
        result = validate_chunks(broken, content, SMALL)
        assert "First chunk carries overlap" in result.errors

    def test_detects_truncated_coverage(self):
        content = _document(5)
        chunks = chunk_markdown_content(content, SMALL)
        result = validate_chunks(chunks[:-1], content, SMALL)
        assert not result.valid
