# src/digest/tasks.py — v1
"""Task handler for durable ``digest-file`` requests."""

from __future__ import annotations

import logging
from typing import Any

from digestkit.digest.coordinator import DigestCoordinator
from digestkit.taskqueue.payloads import DigestFilePayload
from digestkit.taskqueue.queue import TaskHandler

logger = logging.getLogger(__name__)


class FileLockedError(RuntimeError):
    """The file was being processed by another pass; the task will retry."""


def make_digest_file_handler(coordinator: DigestCoordinator) -> TaskHandler:
    """Build the handler running one coordinator pass per task."""

    async def handle(payload: DigestFilePayload) -> dict[str, Any]:
        result = await coordinator.process_file(
            payload.file_path, reset=payload.reset, digester=payload.digester
        )
        if result.locked:
            raise FileLockedError(f"File is locked: {payload.file_path}")
        if result.missing:
            logger.warning("Requested digest for unknown file %s", payload.file_path)
        return {
            "file_path": result.file_path,
            "missing": result.missing,
            "ran": result.ran,
            "failed": result.failed,
            "deferred": result.deferred,
        }

    return handle
