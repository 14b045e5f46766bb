# src/runtime.py — v1
"""Runtime — wires every component from Settings and injected vendors.

One explicit object replaces module-level singletons: tests build their
own Runtime around an in-memory database and fake vendors.

Usage:
    async with Runtime(settings, media=vendor) as runtime:
        await runtime.supervisor.request_digest("notes/a.md")
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from digestkit.chunking.markdown_chunker import ChunkerOptions
from digestkit.config.settings import Settings
from digestkit.digest.base_digester import DigesterServices
from digestkit.digest.coordinator import DigestCoordinator
from digestkit.digest.file_selection import FileSelector
from digestkit.digest.initialization import initialize_digesters
from digestkit.digest.registry import DigesterRegistry
from digestkit.digest.supervisor import DigestSupervisor
from digestkit.digest.tasks import make_digest_file_handler
from digestkit.notifications.service import NotificationService
from digestkit.search.store import KeywordDocumentStore, SemanticDocumentStore
from digestkit.search.tasks import make_keyword_index_handler, make_semantic_embed_handler
from digestkit.storage.archive import ArchiveStore
from digestkit.storage.database import Database
from digestkit.storage.digests import DigestStore
from digestkit.storage.files import FileStore
from digestkit.storage.locks import ProcessingLockStore
from digestkit.taskqueue.executor import TaskExecutor
from digestkit.taskqueue.queue import TaskQueue
from digestkit.taskqueue.store import TaskStore
from digestkit.taskqueue.worker import TaskWorker
from digestkit.vendors.base import (
    BaseEmbedder,
    BaseKeywordIndex,
    BaseMediaVendor,
    BaseTextModel,
    BaseVectorIndex,
)

logger = logging.getLogger(__name__)


class Runtime:
    """Owns the database and every long-lived component built on it."""

    def __init__(
        self,
        settings: Settings,
        media: BaseMediaVendor | None = None,
        text_model: BaseTextModel | None = None,
        embedder: BaseEmbedder | None = None,
        vector_index: BaseVectorIndex | None = None,
        keyword_index: BaseKeywordIndex | None = None,
        db_path: Path | str | None = None,
    ) -> None:
        self.settings = settings
        self.db = Database(db_path if db_path is not None else settings.db_path)

        # Storage
        self.files = FileStore(self.db)
        self.digests = DigestStore(self.db)
        self.archive = ArchiveStore(self.db)
        self.locks = ProcessingLockStore(self.db, owner=settings.digest_lock_owner)
        self.semantic_documents = SemanticDocumentStore(self.db)
        self.keyword_documents = KeywordDocumentStore(self.db)
        self.notifications = NotificationService()

        # Task queue
        self.tasks = TaskStore(self.db)
        self.queue = TaskQueue(
            self.tasks,
            default_timeout_s=settings.task_default_timeout_s,
            global_rate_limit=settings.task_rate_limit_per_second,
        )
        self.executor = TaskExecutor(
            self.queue,
            retry_base_delay_s=settings.task_retry_base_delay_s,
            retry_max_delay_s=settings.task_retry_max_delay_s,
            retry_jitter=settings.task_retry_jitter,
        )
        self.worker = TaskWorker(
            self.queue,
            self.executor,
            poll_interval_s=settings.task_poll_interval_s,
            batch_size=settings.task_batch_size,
            max_attempts=settings.task_max_attempts,
            stale_timeout_s=settings.task_stale_timeout_s,
            stale_recovery_interval_s=settings.task_stale_recovery_interval_s,
        )

        # Digesters
        self.services = DigesterServices(
            data_root=settings.resolved_data_root,
            media=media,
            text_model=text_model,
            queue=self.queue,
            semantic_store=self.semantic_documents,
            keyword_store=self.keyword_documents,
            chunk_options=ChunkerOptions.from_settings(settings),
            vendor_timeout_s=settings.vendor_timeout_s,
        )
        self.registry = initialize_digesters(DigesterRegistry(), self.services)
        self.selector = FileSelector(
            self.db,
            self.registry,
            max_attempts=settings.digest_max_attempts,
            excluded_prefixes=settings.digest_excluded_prefixes_list,
        )
        self.coordinator = DigestCoordinator(
            self.files,
            self.digests,
            self.archive,
            self.locks,
            self.registry,
            notifications=self.notifications,
            max_attempts=settings.digest_max_attempts,
        )
        self.supervisor = DigestSupervisor(
            self.coordinator,
            self.selector,
            self.digests,
            self.locks,
            notifications=self.notifications,
            queue=self.queue,
            concurrency=settings.digest_concurrency,
            start_delay_s=settings.digest_start_delay_s,
            idle_sleep_s=settings.digest_idle_sleep_s,
            file_delay_s=settings.digest_file_delay_s,
            failure_base_delay_s=settings.digest_failure_base_delay_s,
            failure_max_delay_s=settings.digest_failure_max_delay_s,
            stale_threshold_s=settings.digest_stale_threshold_s,
            stale_sweep_interval_s=settings.digest_stale_sweep_interval_s,
            deferral_cooldown_s=settings.digest_deferral_cooldown_s,
            lock_stale_s=settings.digest_lock_stale_s,
        )

        self._register_handlers(embedder, vector_index, keyword_index)
        self._started = False

    def _register_handlers(
        self,
        embedder: BaseEmbedder | None,
        vector_index: BaseVectorIndex | None,
        keyword_index: BaseKeywordIndex | None,
    ) -> None:
        self.queue.register("digest-file", make_digest_file_handler(self.coordinator), timeout_s=600)
        self.queue.register(
            "semantic-embed",
            make_semantic_embed_handler(self.semantic_documents, embedder, vector_index),
            timeout_s=120,
        )
        self.queue.register(
            "keyword-index",
            make_keyword_index_handler(self.keyword_documents, keyword_index),
        )

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Start the task worker and the digest supervisor."""
        if self._started:
            return
        await self.worker.start()
        await self.supervisor.start()
        self._started = True
        logger.info("Runtime started (db=%s)", self.db.path)

    async def stop(self) -> None:
        """Stop background loops, then release the database."""
        if self._started:
            await self.supervisor.stop()
            await self.worker.stop()
            self._started = False
        self.notifications.close()
        self.db.close()
        logger.info("Runtime stopped")

    async def __aenter__(self) -> Runtime:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()
