"""Reconciler: decides, per tracked task, which side wins and applies it."""

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlencode

from ..core.config import SettingsStore
from ..core.exceptions import (
    CacheError,
    ConfigurationError,
    DocumentError,
    RemoteError,
    SyncError,
)
from ..core.models import (
    APPLICATION_NAME,
    DisplayOptions,
    LinkedResource,
    TaskRecord,
    TaskStatus,
    records_equal,
)
from ..document.blocks import scan_block
from ..document.parser import find_anchor, format_task, line_indent, parse_task_line
from ..document.vault import DocumentHost, join_lines, split_lines
from ..remote.gateway import TodoGateway
from ..remote.schema import LinkedResourceModel, RemoteTask, TaskPayload
from .delta_cache import DeltaCache, ListDelta
from .registry import IdentityRegistry
from .resolver import ConflictResolver, Direction


HTML_TAG_RE = re.compile(r"<[^>]*>")


class Mode(Enum):
    """How a selection run picks the winning side of a tracked task."""

    SYNC = "sync"    # last writer wins
    PUSH = "push"    # always local to remote
    PULL = "pull"    # always remote to local


@dataclass
class LocalBlock:
    """Where an anchor was found during a whole-vault scan."""

    doc_id: str
    line_number: int
    line: str
    modified_at: datetime


class Reconciler:
    """Main engine for reconciling document task lines with the remote service.

    All collaborators are passed in; the reconciler never touches the
    settings file or the cache file except through them.
    """

    def __init__(
        self,
        store: SettingsStore,
        registry: IdentityRegistry,
        cache: DeltaCache,
        gateway: Optional[TodoGateway],
        host: DocumentHost,
        notify: Optional[Callable[[str], None]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.registry = registry
        self.cache = cache
        self.gateway = gateway
        self.host = host
        self.logger = logger or logging.getLogger(__name__)
        self.notify = notify or self.logger.info
        self.resolver = ConflictResolver(logger=self.logger)

        self._document_locks: Dict[str, asyncio.Lock] = {}
        self._list_lock: Optional[asyncio.Lock] = None
        self.changes_made = self._empty_changes()

    @staticmethod
    def _empty_changes() -> Dict[str, int]:
        return {
            "created": 0,
            "remote_updated": 0,
            "local_updated": 0,
            "unchanged": 0,
            "skipped": 0,
            "cache_misses": 0,
            "failed": 0,
            "lists_created": 0,
            "linked_resources": 0,
            "tasks_added": 0,
        }

    @property
    def settings(self):
        return self.store.settings

    @property
    def options(self) -> DisplayOptions:
        return self.store.settings.display

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------
    def _document_lock(self, doc_id: str) -> asyncio.Lock:
        lock = self._document_locks.get(doc_id)
        if lock is None:
            lock = self._document_locks[doc_id] = asyncio.Lock()
        return lock

    def _parse(self, line: str) -> TaskRecord:
        return parse_task_line(line, self.options, self.registry.resolve)

    def _render(self, record: TaskRecord, indent: str = "", single_line: bool = True) -> str:
        text = format_task(record, self.options, single_line=single_line)
        return "\n".join(indent + line for line in text.split("\n"))

    async def _refresh_cache(self) -> None:
        try:
            await self.cache.refresh()
        except (RemoteError, CacheError) as exc:
            self.notify("Could not fetch remote tasks, nothing was synced.")
            raise SyncError(f"Delta cache refresh failed: {exc}") from exc

    def _fail(self, record: TaskRecord, exc: Exception) -> None:
        self.changes_made["failed"] += 1
        self.logger.error("Task '%s' (%s) failed: %s", record.title, record.anchor or "new", exc)
        if isinstance(exc, ConfigurationError):
            self.notify(f"'{record.title}': {exc}")
        else:
            self.notify(f"Could not sync '{record.title}'.")

    @staticmethod
    def _insert_position(doc_id: str, doc_lines: List[str], insert_at: Optional[int]) -> int:
        """Default to just before the trailing newline; reject lines outside the document."""
        if insert_at is None:
            return len(doc_lines) - 1 if doc_lines[-1] == "" else len(doc_lines)
        if not 0 <= insert_at <= len(doc_lines):
            raise DocumentError(f"Line {insert_at} is outside {doc_id}")
        return insert_at

    def _back_reference_url(self, anchor: str) -> str:
        query = urlencode({"vault": self.settings.vault_name, "block": anchor})
        return f"{self.settings.redirect_uri_base}?{query}"

    async def _target_list_id(self, record: TaskRecord) -> str:
        """Resolve where a new task goes, creating the list when allowed."""
        if self._list_lock is None:
            self._list_lock = asyncio.Lock()
        async with self._list_lock:
            if record.list_name:
                found = self.cache.find_list_by_name(record.list_name)
                if found is not None:
                    return found.list_id

                # The cache only learns about lists on its first refresh.
                wanted = record.list_name.casefold()
                for todo_list in await self.gateway.list_lists(record.list_name):
                    if todo_list.display_name.casefold() == wanted:
                        self.logger.info("Found list '%s' remotely, tracking it", todo_list.display_name)
                        return self.cache.add_list(todo_list).list_id

                if not self.settings.create_list_if_missing:
                    raise ConfigurationError(
                        f"List '{record.list_name}' does not exist and automatic list creation is off"
                    )
                todo_list = await self.gateway.create_list(record.list_name)
                self.cache.add_list(todo_list)
                self.changes_made["lists_created"] += 1
                return todo_list.id

            return self._default_list_id()

    def _default_list_id(self) -> str:
        if self.settings.default_list_id:
            return self.settings.default_list_id
        if self.settings.default_list_name:
            found = self.cache.find_list_by_name(self.settings.default_list_name)
            if found is not None:
                return found.list_id
        raise ConfigurationError("No default list configured")

    async def _create(self, record: TaskRecord, doc_id: str) -> None:
        list_id = await self._target_list_id(record)
        created = await self.gateway.create_task(list_id, TaskPayload.from_record(record, with_checklist=True))
        record.remote_id = created.id
        record.status = TaskStatus.from_remote(created.status)
        record.anchor = self.registry.generate(created.id)
        self.changes_made["created"] += 1
        self.logger.info("Created remote task '%s' as %s", record.title, record.anchor)
        await self._sync_linked_resource(list_id, record, created, doc_id)

    async def _push(self, record: TaskRecord, list_delta: ListDelta, remote: RemoteTask, doc_id: str) -> None:
        await self.gateway.update_task(list_delta.list_id, record.remote_id, TaskPayload.from_record(record))
        self.changes_made["remote_updated"] += 1
        self.logger.info("Pushed '%s' (%s) to list %s", record.title, record.anchor, list_delta.list_name)
        await self._sync_linked_resource(list_delta.list_id, record, remote, doc_id)

    async def _sync_linked_resource(self, list_id: str, record: TaskRecord,
                                    remote: Optional[RemoteTask], doc_id: str) -> None:
        """Point the remote task back at its line; a failure here is only logged."""
        if not self.settings.redirect_uri_base or not record.anchor:
            return

        url = self._back_reference_url(record.anchor)
        record.linked_resource = LinkedResource(
            web_url=url,
            external_id=record.anchor,
            display_name=f"Tracking Block Link: {doc_id}",
        )
        resource = LinkedResourceModel.from_resource(record.linked_resource)
        existing = None
        if remote is not None:
            existing = next(
                (r for r in remote.linked_resources if r.id and r.application_name == APPLICATION_NAME),
                None,
            )

        try:
            if existing is None:
                await self.gateway.create_linked_resource(list_id, record.remote_id, resource)
            elif existing.web_url != url:
                await self.gateway.update_linked_resource(list_id, record.remote_id, existing.id, resource)
            else:
                return
        except RemoteError as exc:
            self.logger.warning("Could not update back-reference for %s: %s", record.anchor, exc)
            return
        self.changes_made["linked_resources"] += 1

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------
    async def reconcile_selection(self, doc_id: str, lines: Iterable[int], mode: Mode = Mode.SYNC,
                                  refresh: bool = True) -> Dict[str, int]:
        """
        Reconcile the given lines of one document.

        Lines are processed concurrently and the results are written back
        in a single document rewrite.

        Args:
            doc_id: Document to work on
            lines: Zero-based line numbers
            mode: Last-writer-wins, or a forced direction
            refresh: Refresh the delta cache first

        Returns:
            Counters of what happened
        """
        self.changes_made = self._empty_changes()
        if refresh:
            await self._refresh_cache()

        async with self._document_lock(doc_id):
            doc_lines = split_lines(await self.host.read(doc_id))
            modified_at = await self.host.modified_at(doc_id)
            targets = sorted({n for n in lines if 0 <= n < len(doc_lines)})

            results = await asyncio.gather(
                *(self._reconcile_line(doc_id, doc_lines[n], modified_at, mode) for n in targets)
            )

            changed = False
            for line_number, new_line in zip(targets, results):
                if new_line is not None and new_line != doc_lines[line_number]:
                    doc_lines[line_number] = new_line
                    changed = True
            if changed:
                await self.host.write(doc_id, join_lines(doc_lines))

        self.logger.info("Selection in %s: %s", doc_id, self.changes_made)
        return dict(self.changes_made)

    async def push_selection(self, doc_id: str, lines: Iterable[int], refresh: bool = True) -> Dict[str, int]:
        return await self.reconcile_selection(doc_id, lines, Mode.PUSH, refresh)

    async def pull_selection(self, doc_id: str, lines: Iterable[int], refresh: bool = True) -> Dict[str, int]:
        return await self.reconcile_selection(doc_id, lines, Mode.PULL, refresh)

    async def _reconcile_line(self, doc_id: str, line: str, modified_at: datetime,
                              mode: Mode) -> Optional[str]:
        """Return the replacement line, or None to leave it alone."""
        if not line.strip():
            return None
        record = self._parse(line)
        if not record.title:
            return None
        indent = line_indent(line)

        try:
            if not record.has_anchor:
                if mode is Mode.PULL:
                    self.logger.debug("Nothing to pull for untracked line '%s'", record.title)
                    self.changes_made["skipped"] += 1
                    return None
                await self._create(record, doc_id)
                return self._render(record, indent)

            if not record.remote_id:
                self.logger.warning("Anchor %s has no registered remote task, skipping", record.anchor)
                self.changes_made["skipped"] += 1
                return None

            list_delta, remote = self.cache.find_task(record.remote_id)
            if remote is None:
                self.logger.info("Remote task for %s is not cached yet, skipping", record.anchor)
                self.changes_made["cache_misses"] += 1
                return None

            remote_record = remote.to_record()
            if records_equal(record, remote_record):
                self.changes_made["unchanged"] += 1
                return None

            if mode is Mode.PUSH:
                direction = Direction.PUSH
            elif mode is Mode.PULL:
                direction = Direction.PULL
            else:
                direction = self.resolver.resolve(remote.last_modified_date_time, modified_at)

            if direction is Direction.PULL:
                record.update_from(remote_record)
                self.changes_made["local_updated"] += 1
                return self._render(record, indent)

            await self._push(record, list_delta, remote, doc_id)
        except (ConfigurationError, RemoteError, CacheError) as exc:
            self._fail(record, exc)
        return None

    # ------------------------------------------------------------------
    # Task with children
    # ------------------------------------------------------------------
    async def push_block(self, doc_id: str, line_number: int, refresh: bool = True) -> Dict[str, int]:
        return await self._reconcile_block(doc_id, line_number, Direction.PUSH, refresh)

    async def pull_block(self, doc_id: str, line_number: int, refresh: bool = True) -> Dict[str, int]:
        return await self._reconcile_block(doc_id, line_number, Direction.PULL, refresh)

    async def _reconcile_block(self, doc_id: str, line_number: int, direction: Direction,
                               refresh: bool) -> Dict[str, int]:
        self.changes_made = self._empty_changes()
        if refresh:
            await self._refresh_cache()

        async with self._document_lock(doc_id):
            doc_lines = split_lines(await self.host.read(doc_id))
            block = scan_block(doc_lines, line_number)
            if block is None:
                raise DocumentError(f"Line {line_number} is outside {doc_id}")

            record = self._parse(block.task_line)
            record.set_body(block.body)
            record.checklist_items = list(block.checklist_items)
            if not record.title:
                self.changes_made["skipped"] += 1
                return dict(self.changes_made)

            try:
                if not await self._apply_block(record, direction, doc_id):
                    return dict(self.changes_made)
            except (ConfigurationError, RemoteError, CacheError) as exc:
                self._fail(record, exc)
                return dict(self.changes_made)

            new_text = self._render(record, line_indent(block.task_line), single_line=False)
            if new_text != join_lines(doc_lines[block.start:block.end]):
                doc_lines[block.start:block.end] = split_lines(new_text)
                await self.host.write(doc_id, join_lines(doc_lines))

        return dict(self.changes_made)

    async def _apply_block(self, record: TaskRecord, direction: Direction, doc_id: str) -> bool:
        """Apply one hierarchical push or pull; False means leave the document alone."""
        if not record.has_anchor:
            if direction is Direction.PULL:
                self.notify(f"'{record.title}' is not linked to a remote task yet.")
                self.changes_made["skipped"] += 1
                return False
            await self._create(record, doc_id)
            return True

        if not record.remote_id:
            self.logger.warning("Anchor %s has no registered remote task, skipping", record.anchor)
            self.changes_made["skipped"] += 1
            return False

        list_delta, _ = self.cache.find_task(record.remote_id)
        list_id = list_delta.list_id if list_delta else self._default_list_id()

        if direction is Direction.PUSH:
            remote = await self.gateway.update_task(list_id, record.remote_id, TaskPayload.from_record(record))
            record.status = TaskStatus.from_remote(remote.status)
            self.changes_made["remote_updated"] += 1
        else:
            remote = await self.gateway.get_task(list_id, record.remote_id)
            record.update_from(remote.to_record(), include_checklist=True)
            self.changes_made["local_updated"] += 1
        return True

    # ------------------------------------------------------------------
    # Whole vault
    # ------------------------------------------------------------------
    async def _index_anchors(self) -> Dict[str, LocalBlock]:
        """Map every anchor in the vault to its most recently modified occurrence."""
        index: Dict[str, LocalBlock] = {}
        for doc_id in await self.host.list_documents():
            try:
                text = await self.host.read(doc_id)
                modified_at = await self.host.modified_at(doc_id)
            except DocumentError as exc:
                self.logger.warning("Skipping unreadable document %s: %s", doc_id, exc)
                continue

            for line_number, line in enumerate(split_lines(text)):
                anchor = find_anchor(line)
                if not anchor:
                    continue
                key = anchor.lower()
                existing = index.get(key)
                if existing is not None and existing.doc_id != doc_id:
                    self.logger.warning("Anchor %s appears in %s and %s", anchor, existing.doc_id, doc_id)
                if existing is None or existing.modified_at < modified_at:
                    index[key] = LocalBlock(doc_id, line_number, line, modified_at)
        return index

    async def sync_vault(self, refresh: bool = True) -> Dict[str, int]:
        """Reconcile every registered anchor against its line and its cached remote task."""
        self.changes_made = self._empty_changes()
        if refresh:
            await self._refresh_cache()

        index = await self._index_anchors()
        pulls: Dict[str, Dict[int, Tuple[str, str]]] = {}

        for anchor, remote_id in list(self.registry.items()):
            local = index.get(anchor.lower())
            if local is None:
                self.logger.debug("Anchor %s is not in any document, skipping", anchor)
                self.changes_made["skipped"] += 1
                continue

            list_delta, remote = self.cache.find_task(remote_id)
            if remote is None or remote.last_modified_date_time is None:
                self.logger.debug("No cached remote task for %s, skipping", anchor)
                self.changes_made["cache_misses"] += 1
                continue

            record = self._parse(local.line)
            remote_record = remote.to_record()
            if records_equal(record, remote_record):
                self.changes_made["unchanged"] += 1
                continue

            direction = self.resolver.resolve(remote.last_modified_date_time, local.modified_at)
            if direction is Direction.PULL:
                record.update_from(remote_record)
                new_line = self._render(record, line_indent(local.line))
                pulls.setdefault(local.doc_id, {})[local.line_number] = (record.anchor, new_line)
                continue

            try:
                await self._push(record, list_delta, remote, local.doc_id)
            except RemoteError as exc:
                self._fail(record, exc)

        for doc_id, replacements in pulls.items():
            await self._apply_pulls(doc_id, replacements)

        self.logger.info("Vault sync: %s", self.changes_made)
        return dict(self.changes_made)

    async def _apply_pulls(self, doc_id: str, replacements: Dict[int, Tuple[str, str]]) -> None:
        async with self._document_lock(doc_id):
            try:
                doc_lines = split_lines(await self.host.read(doc_id))
                changed = 0
                for line_number, (anchor, new_line) in replacements.items():
                    # The document may have moved under us since indexing.
                    if line_number >= len(doc_lines):
                        continue
                    current = find_anchor(doc_lines[line_number])
                    if not current or current.lower() != anchor.lower():
                        self.logger.warning("Line for %s moved in %s, not rewriting", anchor, doc_id)
                        continue
                    if doc_lines[line_number] != new_line:
                        doc_lines[line_number] = new_line
                        changed += 1
                if changed:
                    await self.host.write(doc_id, join_lines(doc_lines))
                self.changes_made["local_updated"] += changed
            except DocumentError as exc:
                self.changes_made["failed"] += len(replacements)
                self.logger.error("Could not update %s: %s", doc_id, exc)

    # ------------------------------------------------------------------
    # Backfill and cleanup
    # ------------------------------------------------------------------
    async def add_missing_tasks(self, doc_id: Optional[str] = None, insert_at: Optional[int] = None,
                                refresh: bool = True) -> List[str]:
        """
        Emit a line for every open remote task that no anchor points at.

        Args:
            doc_id: When given, the lines are inserted into this document
            insert_at: Zero-based line to insert before; default appends
            refresh: Refresh the delta cache first

        Returns:
            The formatted lines, each carrying a freshly minted anchor

        Raises:
            DocumentError: the document cannot be read or written, or
                ``insert_at`` is outside it; no anchor is kept in that case
        """
        self.changes_made = self._empty_changes()
        if refresh:
            await self._refresh_cache()

        missing = [
            (list_delta, task) for list_delta, task in self.cache.iter_tasks()
            if not task.is_completed and not self.registry.has_remote_id(task.id)
        ]

        if doc_id is None:
            minted = self._mint_missing(missing)
        else:
            async with self._document_lock(doc_id):
                insert_at = self._insert_position(doc_id, split_lines(await self.host.read(doc_id)), insert_at)

                minted = self._mint_missing(missing)
                if minted:
                    try:
                        await self.host.replace_range(
                            doc_id, insert_at, insert_at, "\n".join(line for _, line in minted)
                        )
                    except DocumentError:
                        for anchor, _ in minted:
                            self.registry.forget(anchor, save=False)
                        self.store.save()
                        self.changes_made["tasks_added"] = 0
                        raise

        new_lines = [line for _, line in minted]
        self.logger.info("Added %d missing task(s)", len(new_lines))
        return new_lines

    def _mint_missing(self, missing: List[Tuple[ListDelta, RemoteTask]]) -> List[Tuple[str, str]]:
        """Give each untracked remote task an anchor and render its line."""
        minted = []
        for list_delta, task in missing:
            record = task.to_record()
            if list_delta.list_id != self.settings.default_list_id:
                record.list_name = list_delta.list_name
            record.anchor = self.registry.generate(task.id)
            minted.append((record.anchor, self._render(record)))
            self.changes_made["tasks_added"] += 1
        return minted

    async def summary(self, doc_id: Optional[str] = None, insert_at: Optional[int] = None,
                      today: Optional[date] = None, refresh: bool = True) -> str:
        """
        Render every list's open tasks, plus those completed today.

        Each list becomes a bold heading followed by plain task lines, open
        tasks first. Nothing is anchored or tracked.

        Args:
            doc_id: When given, the summary is inserted into this document
            insert_at: Zero-based line to insert before; default appends
            today: Day that counts as today; defaults to the local date
            refresh: Refresh the delta cache first

        Returns:
            The summary text, empty when there is nothing to show
        """
        if refresh:
            await self._refresh_cache()
        today = today or date.today()

        grouped: Dict[str, Tuple[ListDelta, List[RemoteTask]]] = {}
        for list_delta, task in self.cache.iter_tasks():
            completed_on = task.completed_on
            if task.is_completed and (completed_on is None or completed_on < today):
                continue
            grouped.setdefault(list_delta.list_id, (list_delta, []))[1].append(task)

        segments = []
        for list_delta, tasks in grouped.values():
            lines = [self._summary_line(task, today) for task in sorted(tasks, key=lambda t: t.is_completed)]
            segments.append(f"**{list_delta.list_name}**\n" + "\n".join(lines))
        text = "\n\n".join(segments)

        if not text:
            self.notify("No open remote tasks.")
            return text

        if doc_id is not None:
            async with self._document_lock(doc_id):
                insert_at = self._insert_position(doc_id, split_lines(await self.host.read(doc_id)), insert_at)
                await self.host.replace_range(doc_id, insert_at, insert_at, text)

        self.logger.info("Summarised %d list(s)", len(segments))
        return text

    def _summary_line(self, task: RemoteTask, today: date) -> str:
        options = self.options
        symbol = options.status_completed if task.is_completed else options.status_not_started
        parts = [f"- [{symbol}] {task.title.strip()}"]
        if task.created_date_time is not None and task.created_date_time.date() != today:
            parts.append(f"{options.task_created_prefix}[[{task.created_date_time.date().isoformat()}]]")
        if task.body is not None:
            body = " ".join(HTML_TAG_RE.sub("", task.body.content).split())
            if body:
                parts.append(f"{options.task_body_prefix}{body}")
        return " ".join(parts)

    async def cleanup(self) -> List[str]:
        """Forget every anchor that no longer appears in any document.

        Raises:
            SyncError: a document could not be read, so nothing is forgotten
        """
        texts = []
        for doc_id in await self.host.list_documents():
            try:
                texts.append(await self.host.read(doc_id))
            except DocumentError as exc:
                raise SyncError(f"Cleanup aborted, could not read {doc_id}: {exc}") from exc

        removed = []
        for anchor in self.registry.anchors():
            pattern = re.compile(r"(?<!\^)" + re.escape("^" + anchor) + r"(?![A-Za-z0-9])", re.IGNORECASE)
            if not any(pattern.search(text) for text in texts):
                self.registry.forget(anchor, save=False)
                removed.append(anchor)

        if removed:
            self.store.save()
        self.logger.info("Cleanup removed %d anchor(s)", len(removed))
        return removed
