#!/usr/bin/env python3
"""
Tests for the delta cache: merging, refresh atomicity and persistence.
"""

import json
import os

import pytest

from todo_sync.core.exceptions import CacheError, TransportError
from todo_sync.remote.schema import RemoteTask, TodoList
from todo_sync.sync.delta_cache import DeltaCache, merge_tasks


def task(task_id, title="t", modified=None):
    data = {"id": task_id, "title": title}
    if modified:
        data["lastModifiedDateTime"] = modified
    return RemoteTask.model_validate(data)


class TestMergeTasks:
    """Test the last-modified-wins merge."""

    def test_newer_copy_wins(self):
        old = task("a", "old", "2025-01-01T00:00:00Z")
        new = task("a", "new", "2025-01-02T00:00:00Z")

        assert merge_tasks([old], [new])["a"].title == "new"
        assert merge_tasks([new], [old])["a"].title == "new"

    def test_tie_keeps_first(self):
        first = task("a", "first", "2025-01-01T00:00:00Z")
        second = task("a", "second", "2025-01-01T00:00:00Z")

        assert merge_tasks([first], [second])["a"].title == "first"

    def test_missing_timestamp_is_superseded(self):
        bare = task("a", "bare")
        stamped = task("a", "stamped", "2025-01-01T00:00:00Z")

        assert merge_tasks([bare], [stamped])["a"].title == "stamped"
        assert merge_tasks([stamped], [bare])["a"].title == "stamped"

    def test_merge_is_idempotent(self):
        tasks = [task("a", "x", "2025-01-01T00:00:00Z"), task("b", "y", "2025-01-03T00:00:00Z")]

        once = merge_tasks([], tasks)
        twice = merge_tasks(once.values(), tasks)

        assert once == twice

    def test_inputs_are_not_modified(self):
        existing = {"a": task("a", "old", "2025-01-01T00:00:00Z")}
        merge_tasks(existing.values(), [task("a", "new", "2025-01-02T00:00:00Z")])

        assert existing["a"].title == "old"


class TestRefresh:
    """Test pulling deltas from the gateway."""

    @pytest.mark.asyncio
    async def test_full_sync_follows_pages(self, cache, gateway):
        for n in range(5):
            gateway.seed_task("list-default", f"Task {n}")

        await cache.refresh()

        entry = cache.get_list("list-default")
        assert len(entry.tasks) == 5
        assert entry.continuation_token.startswith("delta:list-default:")
        assert gateway.calls.count("getTasksDelta") == 3

    @pytest.mark.asyncio
    async def test_incremental_refresh_uses_token(self, cache, gateway):
        first = gateway.seed_task("list-default", "First")
        await cache.refresh()
        gateway.calls.clear()

        gateway.seed_task("list-default", "Second")
        await cache.refresh()

        request = gateway.requests[-1]
        assert request.link.startswith("delta:")
        assert len(cache.get_list("list-default").tasks) == 2
        assert cache.find_task(first["id"])[1].title == "First"

    @pytest.mark.asyncio
    async def test_empty_cache_discovers_lists(self, cache, gateway):
        other = gateway.add_list("Groceries")
        gateway.seed_task(other, "Milk")

        await cache.refresh()

        assert gateway.calls[0] == "listLists"
        assert cache.find_list_by_name("groceries").list_id == other

    @pytest.mark.asyncio
    async def test_removed_tasks_are_dropped(self, cache, gateway):
        doomed = gateway.seed_task("list-default", "Doomed")
        await cache.refresh()

        gateway.delete_task("list-default", doomed["id"])
        await cache.refresh()

        assert cache.find_task(doomed["id"]) == (None, None)

    @pytest.mark.asyncio
    async def test_gateway_failure_keeps_previous_snapshot(self, cache, gateway):
        gateway.seed_task("list-default", "Kept")
        await cache.refresh()
        before = cache.get_list("list-default")

        gateway.seed_task("list-default", "Lost")
        gateway.fail_operations["getTasksDelta"] = TransportError("offline")
        with pytest.raises(TransportError):
            await cache.refresh()

        after = cache.get_list("list-default")
        assert after.continuation_token == before.continuation_token
        assert len(after.tasks) == 1

    @pytest.mark.asyncio
    async def test_save_failure_keeps_token(self, cache, gateway, temp_dir):
        gateway.seed_task("list-default", "Saved")
        await cache.refresh()
        token = cache.get_list("list-default").continuation_token

        blocker = temp_dir / "file"
        blocker.write_text("x")
        cache.path = str(blocker / "cache.json")
        gateway.seed_task("list-default", "Unsaved")

        with pytest.raises(CacheError):
            await cache.refresh()

        entry = cache.get_list("list-default")
        assert entry.continuation_token == token
        assert [t.title for t in entry.tasks.values()] == ["Saved"]

    @pytest.mark.asyncio
    async def test_refresh_without_gateway(self, temp_dir):
        with pytest.raises(CacheError):
            await DeltaCache(str(temp_dir / "c.json")).refresh()


class TestPersistence:
    """Test reading and writing the cache file."""

    @pytest.mark.asyncio
    async def test_round_trip_through_file(self, cache, gateway, settings):
        seeded = gateway.seed_task("list-default", "Persisted", body={"content": "note", "contentType": "text"})
        await cache.refresh()

        reloaded = DeltaCache(cache.path, settings=settings)
        entry, remote = reloaded.find_task(seeded["id"])

        assert entry.list_name == "Tasks"
        assert entry.continuation_token == cache.get_list("list-default").continuation_token
        assert remote.title == "Persisted"
        assert remote.body.content == "note"
        assert remote.last_modified_date_time.tzinfo is not None

    def test_missing_file_is_empty(self, temp_dir):
        cache = DeltaCache(str(temp_dir / "absent.json"))

        assert list(cache.iter_tasks()) == []

    def test_corrupt_file_is_empty(self, temp_dir):
        path = temp_dir / "cache.json"
        path.write_text("{not json")

        assert list(DeltaCache(str(path)).iter_tasks()) == []

    def test_legacy_single_list_layout(self, temp_dir, settings):
        path = temp_dir / "cache.json"
        path.write_text(json.dumps({
            "deltaLink": "delta:list-default:3",
            "allTasks": [{"id": "t1", "title": "Old", "lastModifiedDateTime": "2025-01-01T00:00:00Z"}],
        }))

        cache = DeltaCache(str(path), settings=settings)
        entry, remote = cache.find_task("t1")

        assert entry.list_id == "list-default"
        assert entry.continuation_token == "delta:list-default:3"
        assert remote.title == "Old"

    def test_legacy_layout_without_default_list_is_ignored(self, temp_dir):
        path = temp_dir / "cache.json"
        path.write_text(json.dumps({"deltaLink": "x", "allTasks": [{"id": "t1"}]}))

        assert DeltaCache(str(path)).find_task("t1") == (None, None)

    def test_unreadable_cached_task_is_dropped(self, temp_dir):
        path = temp_dir / "cache.json"
        path.write_text(json.dumps({"allLists": [{
            "listId": "l1",
            "name": "One",
            "deltaLink": "d",
            "allTasks": [{"title": "no id"}, {"id": "ok", "title": "fine"}],
        }]}))

        tasks = [remote.id for _, remote in DeltaCache(str(path)).iter_tasks()]

        assert tasks == ["ok"]

    def test_add_list_persists(self, cache):
        cache.add_list(TodoList(id="new-list", display_name="Fresh"))

        reloaded = DeltaCache(cache.path)
        assert reloaded.find_list_by_name("FRESH").list_id == "new-list"

    def test_reset_removes_file(self, cache):
        cache.add_list(TodoList(id="l", display_name="L"))

        cache.reset()

        assert not os.path.exists(cache.path)
        assert cache.lists == {}

    def test_reset_failure_raises(self, temp_dir):
        directory = temp_dir / "cache.json"
        directory.mkdir()

        with pytest.raises(CacheError):
            DeltaCache(str(directory)).reset()
