"""Delta cache: per-list snapshot of remote tasks plus continuation tokens."""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, Optional, Tuple

from pydantic import ValidationError

from ..core.exceptions import CacheError
from ..core.models import SyncSettings
from ..remote.gateway import TodoGateway
from ..remote.schema import RemoteTask, TodoList
from ..utils.io import remove_file, safe_read_json, safe_write_json


@dataclass
class ListDelta:
    """Everything we know about one remote list.

    An empty ``continuation_token`` means the next refresh is a full sync.
    """

    list_id: str
    list_name: str
    continuation_token: str = ""
    tasks: Dict[str, RemoteTask] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "listId": self.list_id,
            "name": self.list_name,
            "deltaLink": self.continuation_token,
            "allTasks": [task.to_wire() for task in self.tasks.values()],
        }


def _supersedes(candidate: RemoteTask, current: RemoteTask) -> bool:
    if candidate.last_modified_date_time is None:
        return False
    if current.last_modified_date_time is None:
        return True
    return candidate.last_modified_date_time > current.last_modified_date_time


def merge_tasks(existing: Iterable[RemoteTask], incoming: Iterable[RemoteTask]) -> Dict[str, RemoteTask]:
    """Combine two task collections, keeping the most recently modified copy of each id.

    A snapshot without a timestamp loses to any snapshot that has one; on a
    tie the copy seen first is kept. Neither input is modified.
    """
    merged: Dict[str, RemoteTask] = {}
    for collection in (existing, incoming):
        for task in collection:
            current = merged.get(task.id)
            if current is None or _supersedes(task, current):
                merged[task.id] = task
    return merged


class DeltaCache:
    """Persisted snapshot of every tracked remote list.

    The continuation token of a list only moves forward together with the
    task data it covers: a refresh either persists both or changes nothing.
    """

    def __init__(self, path: Optional[str], gateway: Optional[TodoGateway] = None,
                 settings: Optional[SyncSettings] = None,
                 logger: Optional[logging.Logger] = None):
        self.path = path
        self.gateway = gateway
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)
        self.lists: Dict[str, ListDelta] = {}
        self._loaded = False

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def load(self) -> None:
        """Read the snapshot from disk; a missing or unreadable file is an empty cache."""
        self._loaded = True
        self.lists = {}
        if not self.path:
            return

        data = safe_read_json(self.path, default={})
        if "allLists" in data:
            for entry in data.get("allLists") or []:
                list_delta = self._list_from_dict(entry)
                if list_delta is not None:
                    self.lists[list_delta.list_id] = list_delta
        elif "allTasks" in data:
            self._load_single_list(data)

        self.logger.debug("Loaded delta cache with %d list(s)", len(self.lists))

    def _load_single_list(self, data: Dict) -> None:
        list_id = self.settings.default_list_id if self.settings else None
        if not list_id:
            self.logger.warning("Ignoring single-list delta cache: no default list configured")
            return
        list_name = (self.settings.default_list_name if self.settings else None) or ""
        list_delta = self._list_from_dict(
            {"listId": list_id, "name": list_name, "deltaLink": data.get("deltaLink"),
             "allTasks": data.get("allTasks")}
        )
        if list_delta is not None:
            self.lists[list_id] = list_delta

    def _list_from_dict(self, entry: Dict) -> Optional[ListDelta]:
        if not isinstance(entry, dict) or not entry.get("listId"):
            self.logger.warning("Skipping delta cache entry without a list id")
            return None

        tasks = []
        for raw in entry.get("allTasks") or []:
            try:
                tasks.append(RemoteTask.model_validate(raw))
            except ValidationError as exc:
                self.logger.warning("Dropping unreadable cached task: %s", exc)

        return ListDelta(
            list_id=entry["listId"],
            list_name=entry.get("name") or "",
            continuation_token=entry.get("deltaLink") or "",
            tasks=merge_tasks([], tasks),
        )

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def _persist(self, lists: Dict[str, ListDelta]) -> None:
        if not self.path:
            return
        data = {"allLists": [entry.to_dict() for entry in lists.values()]}
        if not safe_write_json(self.path, data):
            raise CacheError(f"Could not save delta cache to {self.path}")

    def save(self) -> None:
        self._ensure_loaded()
        self._persist(self.lists)

    def reset(self) -> None:
        """Discard the snapshot so the next refresh starts from scratch."""
        if self.path and not remove_file(self.path):
            raise CacheError(f"Could not remove delta cache {self.path}")
        self.lists = {}
        self._loaded = True
        self.logger.info("Delta cache reset")

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------
    async def refresh_list(self, list_delta: ListDelta) -> ListDelta:
        """Fetch one list's changes and return the merged entry without storing it."""
        delta = await self.gateway.get_tasks_delta(list_delta.list_id, list_delta.continuation_token)
        merged = merge_tasks(list_delta.tasks.values(), delta.tasks)
        for removed_id in delta.removed_ids:
            merged.pop(removed_id, None)

        self.logger.debug(
            "List %s: %d changed, %d removed, %d cached",
            list_delta.list_name, len(delta.tasks), len(delta.removed_ids), len(merged)
        )
        return ListDelta(
            list_id=list_delta.list_id,
            list_name=list_delta.list_name,
            continuation_token=delta.continuation_token,
            tasks=merged,
        )

    async def refresh(self) -> None:
        """Bring every list up to date and persist the result.

        Raises:
            RemoteError: a gateway call failed; the cache is untouched
            CacheError: the merged snapshot could not be saved; the cache is untouched
        """
        if self.gateway is None:
            raise CacheError("Delta cache has no gateway to refresh from")
        self._ensure_loaded()

        current = dict(self.lists)
        if not current:
            for todo_list in await self.gateway.list_lists():
                current[todo_list.id] = ListDelta(todo_list.id, todo_list.display_name)

        updated: Dict[str, ListDelta] = {}
        for list_id, list_delta in current.items():
            updated[list_id] = await self.refresh_list(list_delta)

        self._persist(updated)
        self.lists = updated
        self.logger.info(
            "Refreshed %d list(s), %d task(s) cached",
            len(updated), sum(len(entry.tasks) for entry in updated.values())
        )

    def add_list(self, todo_list: TodoList) -> ListDelta:
        """Start tracking a list, typically one we just created remotely."""
        self._ensure_loaded()
        list_delta = self.lists.get(todo_list.id)
        if list_delta is None:
            list_delta = ListDelta(todo_list.id, todo_list.display_name)
            updated = dict(self.lists)
            updated[todo_list.id] = list_delta
            self._persist(updated)
            self.lists = updated
        return list_delta

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def get_list(self, list_id: Optional[str]) -> Optional[ListDelta]:
        self._ensure_loaded()
        if not list_id:
            return None
        return self.lists.get(list_id)

    def find_list_by_name(self, name: str) -> Optional[ListDelta]:
        self._ensure_loaded()
        wanted = name.casefold()
        for list_delta in self.lists.values():
            if list_delta.list_name.casefold() == wanted:
                return list_delta
        return None

    def find_task(self, remote_id: Optional[str]) -> Tuple[Optional[ListDelta], Optional[RemoteTask]]:
        self._ensure_loaded()
        if remote_id:
            for list_delta in self.lists.values():
                task = list_delta.tasks.get(remote_id)
                if task is not None:
                    return list_delta, task
        return None, None

    def iter_tasks(self) -> Iterator[Tuple[ListDelta, RemoteTask]]:
        self._ensure_loaded()
        for list_delta in list(self.lists.values()):
            for task in list(list_delta.tasks.values()):
                yield list_delta, task
