# src/chunking/markdown_chunker.py — v1
"""Token-bounded, overlapping segmentation of markdown for search ingestion.

Text is cut into blocks at blank lines and before headings, blocks are packed
greedily into chunks, and every chunk after the first is prefixed with the
tail of the previous chunk. Tokens are whitespace runs (``\\S+``), an
approximation that is fast and deterministic.

Blocks are never split: a single block larger than ``max_tokens`` becomes its
own chunk.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass

from digestkit.config.settings import Settings
from digestkit.core.models import ChunkDescriptor

_TOKEN = re.compile(r"\S+")


@dataclass(frozen=True)
class ChunkerOptions:
    """Chunk sizing knobs."""

    target_tokens: int = 900
    max_tokens: int = 1200
    overlap_ratio: float = 0.15
    min_overlap_tokens: int = 80
    max_overlap_tokens: int = 180

    @classmethod
    def from_settings(cls, settings: Settings) -> ChunkerOptions:
        return cls(
            target_tokens=settings.chunk_target_tokens,
            max_tokens=settings.chunk_max_tokens,
            overlap_ratio=settings.chunk_overlap_ratio,
            min_overlap_tokens=settings.chunk_min_overlap_tokens,
            max_overlap_tokens=settings.chunk_max_overlap_tokens,
        )


@dataclass
class _Block:
    text: str
    start: int
    end: int
    token_count: int


@dataclass
class _BaseChunk:
    text: str
    start: int
    end: int
    token_count: int


def normalize_content(content: str | None) -> str:
    """Unify line endings and trim surrounding whitespace."""
    if not content:
        return ""
    return content.replace("\r\n", "\n").replace("\r", "\n").strip()


def estimate_token_count(text: str) -> int:
    return len(_TOKEN.findall(text))


def count_words(text: str) -> int:
    return len(text.split())


def chunk_markdown_content(
    content: str | None, options: ChunkerOptions | None = None
) -> list[ChunkDescriptor]:
    """Split content into overlapping chunks.

    Args:
        content: Raw text or markdown.
        options: Sizing knobs; defaults when omitted.

    Returns:
        Ordered chunk descriptors. Spans refer to the normalized content and
        cover only each chunk's own text, not the prepended overlap.
    """
    opts = options or ChunkerOptions()
    normalized = normalize_content(content)
    if not normalized:
        return []

    base_chunks = _pack_blocks(_split_blocks(normalized), opts)
    chunk_count = len(base_chunks)

    result: list[ChunkDescriptor] = []
    previous_text = ""
    for index, chunk in enumerate(base_chunks):
        overlap_tokens = 0
        overlap_text = ""
        if index > 0 and previous_text:
            budget = _clamp(
                _round_half_up(chunk.token_count * opts.overlap_ratio),
                opts.min_overlap_tokens,
                opts.max_overlap_tokens,
            )
            overlap_text, overlap_tokens = _trailing_tokens(previous_text, budget)

        if overlap_text:
            combined = f"{overlap_text.rstrip()}\n\n{chunk.text}".strip()
        else:
            combined = chunk.text

        result.append(
            ChunkDescriptor(
                chunk_index=index,
                chunk_count=chunk_count,
                text=combined,
                span_start=chunk.start,
                span_end=chunk.end,
                overlap_tokens=overlap_tokens,
                word_count=count_words(combined),
                token_count=estimate_token_count(combined),
            )
        )
        previous_text = chunk.text

    return result


def _split_blocks(content: str) -> list[_Block]:
    """Cut content into blocks whose spans tile the whole string."""
    blocks: list[_Block] = []
    lines = content.split("\n")
    buffer = ""
    buffer_start = 0
    cursor = 0

    def flush() -> None:
        nonlocal buffer
        if not buffer:
            return
        end = buffer_start + len(buffer)
        if not buffer.strip():
            # Whitespace-only run: extend the previous block over it
            if blocks:
                blocks[-1].end = end
            buffer = ""
            return
        blocks.append(
            _Block(
                text=buffer.rstrip(),
                start=buffer_start,
                end=end,
                token_count=estimate_token_count(buffer),
            )
        )
        buffer = ""

    for i, line in enumerate(lines):
        line_with_newline = f"{line}\n" if i < len(lines) - 1 else line
        stripped = line.strip()
        line_start = cursor
        cursor += len(line_with_newline)

        if not buffer:
            buffer_start = line_start

        if stripped.startswith("#") and buffer.strip():
            flush()
            buffer_start = line_start

        buffer += line_with_newline

        if not stripped:
            flush()

    flush()
    return blocks


def _pack_blocks(blocks: list[_Block], opts: ChunkerOptions) -> list[_BaseChunk]:
    """Greedily group consecutive blocks into chunks."""
    chunks: list[_BaseChunk] = []
    current: list[_Block] = []
    current_tokens = 0

    def flush() -> None:
        nonlocal current, current_tokens
        if current:
            text = "\n\n".join(b.text for b in current).strip()
            chunks.append(
                _BaseChunk(
                    text=text,
                    start=current[0].start,
                    end=current[-1].end,
                    token_count=estimate_token_count(text),
                )
            )
        current = []
        current_tokens = 0

    for block in blocks:
        if current and current_tokens + block.token_count > opts.max_tokens:
            flush()
        current.append(block)
        current_tokens += block.token_count
        if current_tokens >= opts.target_tokens:
            flush()

    flush()
    return chunks


def _trailing_tokens(text: str, budget: int) -> tuple[str, int]:
    """Return the last `budget` tokens of text and how many were taken."""
    if budget <= 0:
        return "", 0
    matches = list(_TOKEN.finditer(text))
    if not matches:
        return "", 0
    taken = min(budget, len(matches))
    start = matches[len(matches) - taken].start()
    return text[start:].lstrip(), taken


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))
