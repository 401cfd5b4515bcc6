#!/usr/bin/env python3
import json
import os
from datetime import datetime, timezone

import pytest

from todo_sync.core.config import SettingsStore
from todo_sync.core.models import SyncSettings
from todo_sync.document.vault import FolderVault
from todo_sync.sync.delta_cache import DeltaCache
from todo_sync.sync.reconciler import Reconciler
from todo_sync.sync.registry import IdentityRegistry

from tests.e2e.fake_todo_gateway import FakeTodoGateway


def set_mtime(path, when):
    stamp = when.timestamp()
    os.utime(path, (stamp, stamp))


def anchor_of(line):
    return line.rsplit("^", 1)[1]


@pytest.mark.e2e
@pytest.mark.asyncio
async def test_end_to_end_sync_with_fake_gateway(tmp_path):
    """
    Full flow with a folder vault and a fake remote service:
      - Push new lines, creating a missing list and back-references
      - Pull a remote edit into the document
      - Push a local edit to the remote service
      - Re-sync with nothing to do and verify nothing is written
      - Drop a task on both sides and clean up its anchor
    """
    # 1) Vault, settings file and cache file in a temp dir
    vault_dir = tmp_path / "vault"
    vault_dir.mkdir()
    tasks_md = vault_dir / "Tasks.md"
    tasks_md.write_text(
        "# Inbox\n"
        "- [ ] Buy milk 📅 2025-02-01\n"
        "- [ ] Call Bob ⏫ +Work\n",
        encoding="utf-8",
    )

    config_path = tmp_path / "config.json"
    settings = SyncSettings(
        default_list_name="Tasks",
        default_list_id="list-default",
        create_list_if_missing=True,
        redirect_uri_base="https://example.com/redirect",
        vault_name="vault",
    )
    store = SettingsStore(settings, str(config_path))
    store.save()

    gateway = FakeTodoGateway(page_size=1)
    gateway.add_list("Tasks", list_id="list-default")
    cache = DeltaCache(str(tmp_path / "tasks-delta.json"), gateway=gateway, settings=settings)
    registry = IdentityRegistry(store)
    notices = []
    reconciler = Reconciler(store, registry, cache, gateway, FolderVault(str(vault_dir)), notify=notices.append)

    # 2) Push both lines
    changes = await reconciler.reconcile_selection("Tasks.md", [1, 2])

    assert changes["created"] == 2
    assert changes["lists_created"] == 1
    assert changes["linked_resources"] == 2
    assert sorted(gateway.write_calls) == sorted(
        ["createList", "createTask", "createTask", "createLinkedResource", "createLinkedResource"]
    )
    lines = tasks_md.read_text(encoding="utf-8").split("\n")
    assert lines[1].startswith("- [ ] Buy milk 📅2025-02-01 ^MSTD")
    assert lines[2].startswith("- [ ] Call Bob ⏫ +Work ^MSTD")
    milk_anchor, bob_anchor = anchor_of(lines[1]), anchor_of(lines[2])

    saved = json.loads(config_path.read_text(encoding="utf-8"))
    assert set(saved["taskIdLookup"]) == {milk_anchor, bob_anchor}
    milk_id = saved["taskIdLookup"][milk_anchor]
    bob_id = saved["taskIdLookup"][bob_anchor]
    work_list = cache.find_list_by_name("Work").list_id
    assert gateway.tasks[work_list][bob_id]["importance"] == "high"
    assert gateway.task(milk_id)["dueDateTime"]["dateTime"].startswith("2025-02-01")
    assert gateway.task(milk_id)["linkedResources"][0]["webUrl"].endswith(f"block={milk_anchor}")

    # 3) Someone completes and renames the milk task on their phone
    gateway.edit_task("list-default", milk_id, modified=datetime(2030, 1, 1, tzinfo=timezone.utc),
                      title="Buy oat milk", status="completed")
    set_mtime(tasks_md, datetime(2025, 1, 1, tzinfo=timezone.utc))
    gateway.calls.clear()

    changes = await reconciler.sync_vault()

    assert changes["local_updated"] == 1
    assert gateway.write_calls == []
    lines = tasks_md.read_text(encoding="utf-8").split("\n")
    assert lines[1].startswith("- [x] Buy oat milk 📅2025-02-01 ")
    assert lines[1].endswith(f"^{milk_anchor}")

    # 4) Local edit wins when the document is newer
    lines[2] = lines[2].replace("- [ ]", "- [x]")
    tasks_md.write_text("\n".join(lines), encoding="utf-8")
    set_mtime(tasks_md, datetime(2031, 1, 1, tzinfo=timezone.utc))

    changes = await reconciler.sync_vault()

    assert changes["remote_updated"] == 1
    assert gateway.write_calls == ["updateTask"]
    assert gateway.tasks[work_list][bob_id]["status"] == "completed"

    # 5) Nothing changed on either side
    gateway.calls.clear()
    before = tasks_md.read_text(encoding="utf-8")

    changes = await reconciler.sync_vault()

    assert changes["unchanged"] == 2
    assert gateway.write_calls == []
    assert tasks_md.read_text(encoding="utf-8") == before

    # 6) The milk task disappears everywhere; cleanup forgets its anchor
    gateway.delete_task("list-default", milk_id)
    lines = before.split("\n")
    del lines[1]
    tasks_md.write_text("\n".join(lines), encoding="utf-8")

    changes = await reconciler.sync_vault()
    removed = await reconciler.cleanup()

    assert cache.find_task(milk_id) == (None, None)
    assert removed == [milk_anchor]
    assert json.loads(config_path.read_text(encoding="utf-8"))["taskIdLookup"] == {bob_anchor: bob_id}
    assert notices == []
