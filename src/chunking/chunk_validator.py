# src/chunking/chunk_validator.py — v1
"""Chunk validation ensuring integrity constraints.

Validates:
- Index and count consistency
- Own spans tile the normalized input (concatenation round-trips)
- Overlap within configured bounds when the previous chunk is long enough
"""

from __future__ import annotations

from dataclasses import dataclass, field

from digestkit.chunking.markdown_chunker import (
    ChunkerOptions,
    estimate_token_count,
    normalize_content,
)
from digestkit.core.models import ChunkDescriptor


@dataclass
class ValidationResult:
    """Result of chunk validation."""

    valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def validate_chunks(
    chunks: list[ChunkDescriptor],
    content: str,
    options: ChunkerOptions | None = None,
) -> ValidationResult:
    """Validate chunks produced from `content`.

    Args:
        chunks: Ordered chunk descriptors.
        content: The text that was chunked (normalized here again).
        options: Options used for chunking, for overlap bounds.

    Returns:
        ValidationResult with errors and warnings.
    """
    opts = options or ChunkerOptions()
    normalized = normalize_content(content)
    result = ValidationResult()

    if not chunks:
        if normalized:
            result.valid = False
            result.errors.append("No chunks for non-empty content")
        else:
            result.warnings.append("Empty chunk list")
        return result

    expected_start = 0
    for i, chunk in enumerate(chunks):
        if chunk.chunk_index != i:
            result.valid = False
            result.errors.append(f"Chunk {i}: index {chunk.chunk_index} != position {i}")
        if chunk.chunk_count != len(chunks):
            result.valid = False
            result.errors.append(
                f"Chunk {i}: chunk_count {chunk.chunk_count} != {len(chunks)}"
            )

        # Spans must be contiguous
        if chunk.span_start != expected_start:
            result.valid = False
            result.errors.append(
                f"Chunk {i}: span starts at {chunk.span_start}, expected {expected_start}"
            )
        if chunk.span_end <= chunk.span_start:
            result.valid = False
            result.errors.append(f"Chunk {i}: empty span")
        expected_start = chunk.span_end

        if i == 0:
            if chunk.overlap_tokens:
                result.valid = False
                result.errors.append("First chunk carries overlap")
            continue

        prev = chunks[i - 1]
        prev_tokens = estimate_token_count(normalized[prev.span_start:prev.span_end])
        if chunk.overlap_tokens > opts.max_overlap_tokens:
            result.valid = False
            result.errors.append(
                f"Chunk {i}: overlap {chunk.overlap_tokens} > {opts.max_overlap_tokens}"
            )
        if (
            prev_tokens >= opts.min_overlap_tokens
            and chunk.overlap_tokens < opts.min_overlap_tokens
        ):
            result.valid = False
            result.errors.append(
                f"Chunk {i}: overlap {chunk.overlap_tokens} < {opts.min_overlap_tokens}"
            )

        if chunk.token_count > opts.max_tokens + opts.max_overlap_tokens:
            result.warnings.append(
                f"Chunk {i} exceeds max size: {chunk.token_count} tokens"
            )

    if expected_start != len(normalized):
        result.valid = False
        result.errors.append(
            f"Spans end at {expected_start}, content length {len(normalized)}"
        )

    rebuilt = "".join(normalized[c.span_start:c.span_end] for c in chunks)
    if rebuilt != normalized:
        result.valid = False
        result.errors.append("Concatenated spans do not reproduce the content")

    return result
