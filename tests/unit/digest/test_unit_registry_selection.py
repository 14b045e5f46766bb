# tests/unit/digest/test_unit_registry_selection.py — v1
"""Tests for digest/registry.py, digest/initialization.py and digest/file_selection.py."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from digestkit.digest.file_selection import FileSelector
from digestkit.digest.initialization import DIGESTER_CLASSES, initialize_digesters
from digestkit.digest.registry import DigesterRegistry, RegistryError


class TestRegistry:
    def test_register_and_get(self, digester_factory):
        registry = DigesterRegistry()
        one = digester_factory("one")
        registry.register(one)
        assert registry.get("one") is one
        assert registry.get("two") is None
        assert "one" in registry
        assert len(registry) == 1

    def test_reregistration_is_noop(self, digester_factory):
        registry = DigesterRegistry()
        first = digester_factory("one")
        registry.register(first)
        registry.register(digester_factory("one"))
        assert registry.get("one") is first
        assert len(registry) == 1

    def test_get_or_raise(self):
        with pytest.raises(RegistryError, match="missing"):
            DigesterRegistry().get_or_raise("missing")

    def test_digest_types_expand_outputs(self, digester_factory):
        registry = DigesterRegistry()
        registry.register(digester_factory("multi", outputs=["multi-a", "multi-b"]))
        registry.register(digester_factory("single"))
        assert registry.get_all_digest_types() == ["multi-a", "multi-b", "single"]
        assert registry.find_by_output("multi-b").name == "multi"

    def test_clear(self, digester_factory):
        registry = DigesterRegistry()
        registry.register(digester_factory("one"))
        registry.clear()
        assert registry.get_all() == []


class TestInitialization:
    def test_priority_order(self, services):
        registry = initialize_digesters(DigesterRegistry(), services)
        assert [d.name for d in registry.get_all()] == [
            "url-crawl", "doc-to-markdown", "doc-to-screenshot", "image-ocr",
            "image-captioning", "image-objects", "speech-recognition",
            "speaker-embedding", "speech-recognition-summary", "url-crawl-summary",
            "tags", "search-keyword", "search-semantic",
        ]
        types = registry.get_all_digest_types()
        assert types[:2] == ["url-crawl-content", "url-crawl-screenshot"]
        assert len(types) == len(DIGESTER_CLASSES) + 1

    def test_idempotent(self, services):
        registry = DigesterRegistry()
        initialize_digesters(registry, services)
        initialize_digesters(registry, services)
        assert len(registry) == len(DIGESTER_CLASSES)


def _at(day: int) -> datetime:
    return datetime(2026, 1, day, tzinfo=timezone.utc)


class TestFileSelector:
    @pytest.fixture
    def registry(self, digester_factory) -> DigesterRegistry:
        registry = DigesterRegistry()
        registry.register(digester_factory("one"))
        registry.register(digester_factory("two"))
        return registry

    @pytest.fixture
    def selector(self, db, registry) -> FileSelector:
        return FileSelector(
            db, registry, max_attempts=3, excluded_prefixes=["app", ".git"]
        )

    @pytest.mark.asyncio
    async def test_missing_rows_are_pending(self, selector, file_store, file_factory):
        await file_store.upsert(file_factory("a.md"))
        assert await selector.find_files_needing_digestion() == ["a.md"]

    @pytest.mark.asyncio
    async def test_settled_file_is_not_pending(
        self, selector, file_store, file_factory, digest_store
    ):
        await file_store.upsert(file_factory("a.md"))
        await digest_store.upsert("a.md", "one", status="completed")
        await digest_store.upsert("a.md", "two", status="skipped")
        assert await selector.find_files_needing_digestion() == []

    @pytest.mark.asyncio
    async def test_todo_and_retryable_failed(
        self, selector, file_store, file_factory, digest_store
    ):
        await file_store.upsert(file_factory("todo.md"))
        await digest_store.upsert("todo.md", "one", status="completed")
        await digest_store.upsert("todo.md", "two", status="todo")
        await file_store.upsert(file_factory("retry.md"))
        await digest_store.upsert("retry.md", "one", status="completed")
        await digest_store.upsert("retry.md", "two", status="failed", attempts=2)
        assert sorted(await selector.find_files_needing_digestion()) == ["retry.md", "todo.md"]

    @pytest.mark.asyncio
    async def test_exhausted_failure_is_not_pending(
        self, selector, file_store, file_factory, digest_store
    ):
        await file_store.upsert(file_factory("a.md"))
        await digest_store.upsert("a.md", "one", status="completed")
        await digest_store.upsert("a.md", "two", status="failed", attempts=3)
        assert await selector.find_files_needing_digestion() == []

    @pytest.mark.asyncio
    async def test_rows_of_unregistered_digesters_ignored(
        self, selector, file_store, file_factory, digest_store
    ):
        await file_store.upsert(file_factory("a.md"))
        await digest_store.upsert("a.md", "one", status="completed")
        await digest_store.upsert("a.md", "two", status="completed")
        await digest_store.upsert("a.md", "retired", status="todo")
        assert await selector.find_files_needing_digestion() == []

    @pytest.mark.asyncio
    async def test_folders_and_excluded_prefixes(self, selector, file_store, file_factory):
        await file_store.upsert(file_factory("photos", is_folder=True))
        await file_store.upsert(file_factory("app/config.json"))
        await file_store.upsert(file_factory("app"))
        await file_store.upsert(file_factory(".git/HEAD"))
        await file_store.upsert(file_factory("application.md"))
        assert await selector.find_files_needing_digestion() == ["application.md"]

    @pytest.mark.asyncio
    async def test_oldest_first_and_limit(self, selector, file_store, file_factory):
        await file_store.upsert(file_factory("new.md", created_at=_at(3)))
        await file_store.upsert(file_factory("old.md", created_at=_at(1)))
        await file_store.upsert(file_factory("mid.md", created_at=_at(2)))
        assert await selector.find_files_needing_digestion(limit=2) == ["old.md", "mid.md"]

    @pytest.mark.asyncio
    async def test_no_digesters(self, db, file_store, file_factory):
        await file_store.upsert(file_factory("a.md"))
        selector = FileSelector(db, DigesterRegistry())
        assert await selector.find_files_needing_digestion() == []

    def test_is_excluded(self, selector):
        assert selector.is_excluded("app")
        assert selector.is_excluded("/app/x")
        assert not selector.is_excluded("apple/x")
