# src/digest/coordinator.py — v1
"""Digest coordinator — runs every registered digester over one file.

Per (file, digester output) the state machine is
``absent → todo → in-progress → completed | failed | skipped``. Failed
outputs are retried below the attempt ceiling; completed and skipped
outputs run again only when the digester reports that upstream content
changed.

A failing digester never aborts the others. Persistence errors do: they
end the pass and propagate, with the file lock still released.
"""

from __future__ import annotations

import logging
import sqlite3

from digestkit.config.settings import ConfigurationError
from digestkit.core.models import (
    Digest,
    DigesterOutcome,
    DigestInput,
    FileProcessResult,
    FileRecord,
)
from digestkit.digest.base_digester import BaseDigester
from digestkit.digest.registry import DigesterRegistry
from digestkit.logging.context import set_digester_context, set_file_context
from digestkit.notifications.service import NotificationEvent, NotificationService
from digestkit.storage.archive import ArchiveStore
from digestkit.storage.digests import DigestStore
from digestkit.storage.files import FileStore, path_hash
from digestkit.storage.locks import ProcessingLockStore

logger = logging.getLogger(__name__)

PREVIEW_OUTPUTS = frozenset({"url-crawl-screenshot", "doc-to-screenshot"})


def _error_text(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class DigestCoordinator:
    """Processes files through all digesters in priority order."""

    def __init__(
        self,
        files: FileStore,
        digests: DigestStore,
        archive: ArchiveStore,
        locks: ProcessingLockStore,
        registry: DigesterRegistry,
        notifications: NotificationService | None = None,
        max_attempts: int = 3,
    ) -> None:
        self._files = files
        self._digests = digests
        self._archive = archive
        self._locks = locks
        self._registry = registry
        self._notifications = notifications
        self._max_attempts = max_attempts

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    async def process_file(
        self, file_path: str, reset: bool = False, digester: str | None = None
    ) -> FileProcessResult:
        """Run one pass over a file under its processing lock.

        Args:
            file_path: Path relative to the data root.
            reset: Reset rows to ``todo`` before running.
            digester: With reset, limit the reset to this digester (or output).

        Returns:
            Per-digester outcomes; ``locked`` when another pass holds the file.
        """
        set_file_context(file_path)
        try:
            async with self._locks.hold(file_path) as acquired:
                if not acquired:
                    logger.info("File is being processed elsewhere, skipping")
                    return FileProcessResult(file_path=file_path, locked=True)
                return await self._process_locked(file_path, reset, digester)
        finally:
            set_file_context(None)

    async def ensure_placeholders(self, file_path: str) -> tuple[list[str], list[str]]:
        """Create ``todo`` rows for every digest type; skip orphaned rows.

        Returns:
            (added digest types, orphaned digest types)
        """
        types = self._registry.get_all_digest_types()
        added = await self._digests.ensure(file_path, types)
        orphaned = await self._digests.mark_orphans_skipped(file_path, types)
        if orphaned:
            logger.info("Skipped %d orphaned digests for %s", len(orphaned), file_path)
        return added, orphaned

    async def _process_locked(
        self, file_path: str, reset: bool, digester_name: str | None
    ) -> FileProcessResult:
        file = await self._files.get(file_path)
        if file is None:
            logger.error("File not found: %s", file_path)
            return FileProcessResult(file_path=file_path, missing=True)

        if reset:
            await self._reset(file_path, digester_name)

        result = FileProcessResult(file_path=file_path)
        for digester in self._registry.get_all():
            set_digester_context(digester.name)
            try:
                outcome = await self._run_digester(digester, file_path, file)
            finally:
                set_digester_context(None)
            result.outcomes.append(outcome)

        logger.info(
            "Processed %s: %d ran, %d failed, %d deferred",
            file_path, len(result.ran), len(result.failed), len(result.deferred),
        )
        return result

    async def _reset(self, file_path: str, digester_name: str | None) -> None:
        if digester_name is None:
            count = await self._digests.reset(file_path)
        else:
            digester = self._registry.get(digester_name)
            outputs = digester.outputs if digester else [digester_name]
            count = 0
            for output in outputs:
                count += await self._digests.reset(file_path, output)
        logger.info("Reset %d digests for %s", count, file_path)

    def _is_pending(self, row: Digest | None) -> bool:
        if row is None:
            return True
        if row.status == "todo":
            return True
        return row.status == "failed" and row.attempts < self._max_attempts

    async def _run_digester(
        self, digester: BaseDigester, file_path: str, file: FileRecord
    ) -> DigesterOutcome:
        # Fresh rows each iteration: earlier digesters in this pass may have written
        existing = await self._digests.list_for_path(file_path)
        rows = {d.digester: d for d in existing}
        outputs = digester.outputs

        if any(rows[o].status == "in-progress" for o in outputs if o in rows):
            logger.debug("%s is in progress elsewhere", digester.name)
            return DigesterOutcome(digester=digester.name, action="in-progress")

        pending = [o for o in outputs if self._is_pending(rows.get(o))]
        try:
            if not pending:
                settled = any(
                    rows[o].status in ("completed", "skipped") for o in outputs if o in rows
                )
                if not settled or not await digester.should_reprocess_completed(
                    file_path, file, existing
                ):
                    return DigesterOutcome(digester=digester.name, action="skipped")
                logger.info("Upstream content changed, re-running %s", digester.name)
                pending = list(outputs)

            if not await digester.can_digest(file_path, file, existing):
                await self._digests.set_status(
                    file_path, pending, "skipped", error="Not applicable", attempts=0
                )
                return DigesterOutcome(
                    digester=digester.name, action="not-applicable", outputs=pending
                )

            await self._digests.set_status(file_path, pending, "in-progress")
            logger.info("Running digester %s", digester.name)
            produced = await digester.digest(file_path, file, existing)
        except sqlite3.Error:
            raise
        except Exception as exc:
            return await self._record_failure(digester, file_path, pending or outputs, rows, exc)

        if produced is None:
            await self._digests.set_status(file_path, pending, "todo")
            logger.info("%s has nothing to persist yet, deferring", digester.name)
            return DigesterOutcome(digester=digester.name, action="deferred", outputs=pending)

        return await self._save_outputs(digester, file_path, pending, rows, produced)

    async def _record_failure(
        self,
        digester: BaseDigester,
        file_path: str,
        targets: list[str],
        rows: dict[str, Digest],
        exc: Exception,
    ) -> DigesterOutcome:
        error = _error_text(exc)
        permanent = isinstance(exc, ConfigurationError)
        for output in targets:
            row = rows.get(output)
            previous = row.attempts if row else 0
            attempts = (
                self._max_attempts if permanent else min(previous + 1, self._max_attempts)
            )
            await self._digests.set_status(
                file_path, [output], "failed", error=error, attempts=attempts
            )
        if permanent:
            logger.error("%s is not configured, giving up: %s", digester.name, error)
        else:
            logger.warning("%s failed: %s", digester.name, error, exc_info=exc)
        return DigesterOutcome(
            digester=digester.name, action="failed", outputs=targets, error=error
        )

    async def _save_outputs(
        self,
        digester: BaseDigester,
        file_path: str,
        pending: list[str],
        rows: dict[str, Digest],
        produced: list[DigestInput],
    ) -> DigesterOutcome:
        saved: list[str] = []
        failed = False
        for item in produced:
            if item.digester not in digester.outputs:
                logger.warning(
                    "%s produced foreign output %s, ignoring", digester.name, item.digester
                )
                continue
            if await self._save_output(file_path, item, rows.get(item.digester)):
                failed = True
            saved.append(item.digester)

        for output in pending:
            if output in saved:
                continue
            row = rows.get(output)
            previous = row.attempts if row else 0
            await self._digests.set_status(
                file_path,
                [output],
                "failed",
                error="Output not produced",
                attempts=min(previous + 1, self._max_attempts),
            )
            failed = True

        return DigesterOutcome(
            digester=digester.name,
            action="failed" if failed else "ran",
            outputs=saved,
        )

    async def _save_output(
        self, file_path: str, item: DigestInput, row: Digest | None
    ) -> bool:
        """Persist one output. Returns True if it was recorded as failed."""
        previous = row.attempts if row else 0
        status = item.status
        if status in ("completed", "skipped"):
            attempts = 0
        elif status == "failed":
            attempts = min(previous + 1, self._max_attempts)
        else:
            status, attempts = "todo", previous

        sqlar_name = item.sqlar_name
        if item.archive_data is not None:
            sqlar_name = (
                f"{path_hash(file_path)}/{item.digester}/{item.sqlar_name or 'data.bin'}"
            )
            await self._archive.put(sqlar_name, item.archive_data)

        await self._digests.upsert(
            file_path,
            item.digester,
            status=status,
            content=item.content,
            sqlar_name=sqlar_name,
            error=item.error,
            attempts=attempts,
        )

        if (
            status == "completed"
            and item.digester in PREVIEW_OUTPUTS
            and sqlar_name
            and self._notifications is not None
        ):
            await self._notifications.publish(
                NotificationEvent(
                    type="preview-updated",
                    file_path=file_path,
                    digester=item.digester,
                    data={"sqlar_name": sqlar_name},
                )
            )
        return status == "failed"
