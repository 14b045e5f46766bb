# src/main.py — v1
"""CLI entry point — run, status, digest, chunk commands.

Usage:
    digestkit run [--duration SECONDS]
    digestkit status
    digestkit digest <path> [--reset] [--digester NAME] [--queue]
    digestkit chunk <file>
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from digestkit.config.settings import ConfigurationError, Settings, load_settings
from digestkit.logging.logger import setup_logging
from digestkit.version import __version__

if TYPE_CHECKING:
    from digestkit.core.models import FileProcessResult

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        settings = load_settings()
    except (ConfigurationError, ValueError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1
    _setup_logging(settings, args.verbose)
    args.settings = settings

    try:
        return asyncio.run(args.func(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="digestkit",
        description=f"digestkit v{__version__} — Progressive file digestion",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- run ---
    p_run = subparsers.add_parser(
        "run", help="Run the digest supervisor and task worker",
    )
    p_run.add_argument(
        "--duration", type=float, default=None,
        help="Stop after this many seconds (default: run until interrupted)",
    )
    p_run.set_defaults(func=_cmd_run)

    # --- status ---
    p_status = subparsers.add_parser(
        "status", help="Show queue, worker and digest status",
    )
    p_status.set_defaults(func=_cmd_status)

    # --- digest ---
    p_digest = subparsers.add_parser(
        "digest", help="Digest one file (path relative to the data root)",
    )
    p_digest.add_argument("path", help="File path relative to DATA_ROOT")
    p_digest.add_argument(
        "--reset", action="store_true",
        help="Reset digests to todo before running",
    )
    p_digest.add_argument(
        "--digester", default=None,
        help="With --reset, only reset this digester",
    )
    p_digest.add_argument(
        "--queue", action="store_true",
        help="Enqueue a durable digest-file task instead of running inline",
    )
    p_digest.set_defaults(func=_cmd_digest)

    # --- chunk ---
    p_chunk = subparsers.add_parser(
        "chunk", help="Chunk a markdown/text file and print the chunks",
    )
    p_chunk.add_argument("file", type=Path, help="Path to file")
    p_chunk.set_defaults(func=_cmd_chunk)

    return parser


async def _cmd_run(args: argparse.Namespace) -> int:
    """Run background loops until interrupted or the duration elapses."""
    from digestkit.runtime import Runtime

    async with Runtime(args.settings) as runtime:
        logger.info("digestkit running (db=%s)", runtime.db.path)
        if args.duration is not None:
            await asyncio.sleep(args.duration)
        else:
            await asyncio.Event().wait()
    return 0


async def _cmd_status(args: argparse.Namespace) -> int:
    """Print a JSON system status snapshot."""
    from digestkit.api.facade import get_system_status
    from digestkit.runtime import Runtime

    runtime = Runtime(args.settings)
    try:
        status = await get_system_status(runtime)
    finally:
        await runtime.stop()
    print(status.model_dump_json(indent=2))
    return 0


async def _cmd_digest(args: argparse.Namespace) -> int:
    """Run one coordinator pass over a file, or enqueue it."""
    from digestkit.runtime import Runtime
    from digestkit.storage.files import record_from_disk

    settings: Settings = args.settings
    file_path = args.path.strip("/")
    runtime = Runtime(settings)
    try:
        if await runtime.files.get(file_path) is None:
            record = record_from_disk(settings.resolved_data_root, file_path)
            if record is None:
                logger.error("File not found: %s", file_path)
                return 1
            await runtime.files.upsert(record)

        if args.queue:
            task = await runtime.supervisor.request_digest(
                file_path, reset=args.reset, digester=args.digester
            )
            print(f"Enqueued task {task.id}")
            return 0

        result = await runtime.coordinator.process_file(
            file_path, reset=args.reset, digester=args.digester
        )
    finally:
        await runtime.stop()

    if result.locked:
        print(f"{file_path} is being processed elsewhere")
        return 1
    _print_process_result(result)
    return 1 if result.failed else 0


async def _cmd_chunk(args: argparse.Namespace) -> int:
    """Chunk a file with the configured options and print the chunks."""
    from digestkit.chunking.chunk_validator import validate_chunks
    from digestkit.chunking.markdown_chunker import (
        ChunkerOptions,
        chunk_markdown_content,
        normalize_content,
    )

    file_path: Path = args.file
    if not file_path.is_file():
        logger.error("File not found: %s", file_path)
        return 1

    options = ChunkerOptions.from_settings(args.settings)
    content = await asyncio.to_thread(file_path.read_text, encoding="utf-8", errors="replace")
    chunks = chunk_markdown_content(content, options)
    for chunk in chunks:
        print(json.dumps({
            "index": chunk.chunk_index,
            "span": [chunk.span_start, chunk.span_end],
            "tokens": chunk.token_count,
            "words": chunk.word_count,
            "overlap": chunk.overlap_tokens,
        }))

    report = validate_chunks(chunks, normalize_content(content), options)
    print(f"\n{len(chunks)} chunks, valid={report.valid}")
    for error in report.errors:
        print(f"  error: {error}")
    for warning in report.warnings:
        print(f"  warning: {warning}")
    return 0 if report.valid else 1


def _print_process_result(result: FileProcessResult) -> None:
    """Print a human-readable summary of a FileProcessResult."""
    print(f"\nDigest pass for {result.file_path}:")
    if result.missing:
        print("  File not found in index")
        return
    for outcome in result.outcomes:
        line = f"  {outcome.digester:<20} {outcome.action}"
        if outcome.error:
            line += f"  ({outcome.error})"
        print(line)


def _setup_logging(settings: Settings, verbose: bool) -> None:
    """Configure logging for CLI usage."""
    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=settings.log_file or None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )


if __name__ == "__main__":
    sys.exit(main())
