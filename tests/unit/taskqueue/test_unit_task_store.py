# tests/unit/taskqueue/test_unit_task_store.py — v1
"""Tests for taskqueue/store.py — task records and optimistic locking."""

from __future__ import annotations

import pytest


class TestTaskStore:
    @pytest.mark.asyncio
    async def test_create_and_get(self, task_store):
        task = await task_store.create("digest-file", '{"kind": "digest-file"}')
        loaded = await task_store.get(task.id)
        assert loaded is not None
        assert loaded.status == "to-do"
        assert loaded.version == 0
        assert loaded.attempts == 0

    @pytest.mark.asyncio
    async def test_update_bumps_version(self, task_store):
        task = await task_store.create("a", "{}")
        assert await task_store.update(task.id, 0, status="in-progress", attempts=1)
        loaded = await task_store.get(task.id)
        assert loaded.version == 1
        assert loaded.status == "in-progress"
        assert loaded.completed_at is None

    @pytest.mark.asyncio
    async def test_optimistic_lock_conflict(self, task_store):
        task = await task_store.create("a", "{}")
        assert await task_store.update(task.id, 0, status="in-progress") is True
        # Second writer still holds version 0
        assert await task_store.update(task.id, 0, status="in-progress") is False
        assert (await task_store.get(task.id)).version == 1

    @pytest.mark.asyncio
    async def test_terminal_status_sets_completed_at(self, task_store):
        task = await task_store.create("a", "{}")
        await task_store.update(task.id, 0, status="success", output='"ok"')
        assert (await task_store.get(task.id)).completed_at is not None

    @pytest.mark.asyncio
    async def test_rejects_unknown_fields(self, task_store):
        task = await task_store.create("a", "{}")
        with pytest.raises(ValueError, match="version"):
            await task_store.update(task.id, 0, version=5)

    @pytest.mark.asyncio
    async def test_list_filters(self, task_store):
        a = await task_store.create("a", "{}")
        await task_store.create("b", "{}")
        await task_store.update(a.id, 0, status="success")
        assert [t.id for t in await task_store.list_tasks(status="success")] == [a.id]
        assert len(await task_store.list_by_type("b")) == 1
        assert len(await task_store.list_tasks(limit=1)) == 1

    @pytest.mark.asyncio
    async def test_stats(self, task_store):
        a = await task_store.create("a", "{}")
        b = await task_store.create("b", "{}")
        await task_store.update(a.id, 0, status="failed", attempts=3)
        await task_store.update(b.id, 0, status="failed", attempts=1)
        stats = await task_store.get_stats(max_attempts=3)
        assert stats.total == 2
        assert stats.by_status["failed"] == 2
        assert stats.by_status["to-do"] == 0
        assert stats.by_type == {"a": 1, "b": 1}
        assert stats.exhausted == 1

    @pytest.mark.asyncio
    async def test_delete_and_cleanup(self, task_store):
        a = await task_store.create("a", "{}")
        b = await task_store.create("a", "{}")
        await task_store.update(a.id, 0, status="success")
        assert await task_store.cleanup_old_tasks(3600) == 0
        assert await task_store.cleanup_old_tasks(-1) == 1
        assert await task_store.get(a.id) is None
        assert await task_store.delete(b.id) is True
        assert await task_store.delete(b.id) is False

    @pytest.mark.asyncio
    async def test_delete_by_status(self, task_store):
        await task_store.create("a", "{}")
        await task_store.create("a", "{}")
        assert await task_store.delete_by_status("to-do") == 2
