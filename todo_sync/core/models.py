"""
Domain models for todo-sync.

This module contains the core data structures shared by the parser, the
sync layer and the gateway: the Task Record built from a document line,
the display options that drive its on-page syntax, and the persisted
settings blob.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import json
import os

from ..utils.date import dates_equal


def _normalize_path(path: str) -> str:
    """Expand user and convert to absolute path."""
    return os.path.abspath(os.path.expanduser(path))


class TaskStatus(Enum):
    """Task completion status, valued as the remote service spells it."""

    NOT_STARTED = "notStarted"
    IN_PROGRESS = "inProgress"
    COMPLETED = "completed"

    @classmethod
    def from_remote(cls, value: Optional[str]) -> TaskStatus:
        # waitingOnOthers and deferred have no on-page symbol
        try:
            return cls(value)
        except ValueError:
            return cls.NOT_STARTED


class Importance(Enum):
    """Task importance levels."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"

    @classmethod
    def from_remote(cls, value: Optional[str]) -> Importance:
        try:
            return cls(value)
        except ValueError:
            return cls.NORMAL


@dataclass
class ChecklistItem:
    """A checklist sub-item of a task."""

    text: str
    checked: bool = False


APPLICATION_NAME = "Obsidian Microsoft To Do Sync"


@dataclass
class LinkedResource:
    """Back-reference from a remote task to the line it came from."""

    web_url: str
    external_id: str
    application_name: str = APPLICATION_NAME
    display_name: Optional[str] = None
    resource_id: Optional[str] = None


@dataclass
class TaskRecord:
    """The structured form of one checklist line.

    Records are rebuilt from the document on every read; they are only
    mutated while a reconciliation step decides which side wins.
    """

    title: str = ""
    status: TaskStatus = TaskStatus.NOT_STARTED
    importance: Importance = Importance.NORMAL
    due_date: Optional[date] = None
    due_timezone: str = "UTC"
    created_date: Optional[datetime] = None
    list_name: Optional[str] = None
    anchor: Optional[str] = None
    remote_id: Optional[str] = None
    body: str = ""
    checklist_items: List[ChecklistItem] = field(default_factory=list)
    linked_resource: Optional[LinkedResource] = None

    @property
    def has_anchor(self) -> bool:
        return bool(self.anchor)

    @property
    def is_tracked(self) -> bool:
        return bool(self.anchor) and bool(self.remote_id)

    def set_body(self, body: str) -> None:
        self.body = body.strip()

    def update_from(self, other: TaskRecord, include_checklist: bool = False) -> None:
        """Overwrite the synced fields with those of ``other``.

        The anchor, list name and remote id stay with this record; they
        describe where the task lives, not what it says.
        """
        self.title = other.title
        self.status = other.status
        self.importance = other.importance
        self.due_date = other.due_date
        self.due_timezone = other.due_timezone
        if other.body:
            self.body = other.body
        if other.created_date:
            self.created_date = other.created_date
        if other.linked_resource:
            self.linked_resource = other.linked_resource
        if include_checklist:
            self.checklist_items = list(other.checklist_items)


def records_equal(a: TaskRecord, b: TaskRecord) -> bool:
    """Return True when two records would not warrant a write.

    Title, status, importance and the calendar date of the due date are
    compared; everything else is presentation.
    """
    return (
        a.title == b.title
        and a.status == b.status
        and a.importance == b.importance
        and dates_equal(a.due_date, b.due_date)
    )


@dataclass
class DisplayOptions:
    """On-page syntax for task lines."""

    task_created_prefix: str = "🔎"
    task_due_prefix: str = "📅"
    task_body_prefix: str = "💡"
    replacement_format: str = (
        "- [{{STATUS_SYMBOL}}] {{TASK}}{{IMPORTANCE}}{{TASK_LIST_NAME}}"
        "{{DUE_DATE}}{{CREATED_DATE}}"
    )
    list_indicator: str = "+"
    list_indicator_use_single_quotes: bool = False
    importance_low: str = "🔽"
    importance_normal: str = "🔼"
    importance_high: str = "⏫"
    status_not_started: str = " "
    status_in_progress: str = "/"
    status_completed: str = "x"
    title_strip_pattern: str = ""

    def status_symbol(self, status: TaskStatus) -> str:
        return {
            TaskStatus.NOT_STARTED: self.status_not_started,
            TaskStatus.IN_PROGRESS: self.status_in_progress,
            TaskStatus.COMPLETED: self.status_completed,
        }[status]

    def importance_glyph(self, importance: Importance) -> str:
        return {
            Importance.LOW: self.importance_low,
            Importance.NORMAL: self.importance_normal,
            Importance.HIGH: self.importance_high,
        }[importance]


# Settings blob key for each DisplayOptions attribute.
_DISPLAY_KEYS = {
    "task_created_prefix": "displayOptions_TaskCreatedPrefix",
    "task_due_prefix": "displayOptions_TaskDuePrefix",
    "task_body_prefix": "displayOptions_TaskBodyPrefix",
    "replacement_format": "displayOptions_ReplacementFormat",
    "list_indicator": "displayOptions_ListIndicator",
    "list_indicator_use_single_quotes": "displayOptions_ListIndicator_UseSingleQuotes",
    "importance_low": "displayOptions_TaskImportance_Low",
    "importance_normal": "displayOptions_TaskImportance_Normal",
    "importance_high": "displayOptions_TaskImportance_High",
    "status_not_started": "displayOptions_TaskStatus_NotStarted",
    "status_in_progress": "displayOptions_TaskStatus_InProgress",
    "status_completed": "displayOptions_TaskStatus_Completed",
    "title_strip_pattern": "displayOptions_RegExToRunOnPushAgainstTitle",
}


@dataclass
class SyncSettings:
    """Persisted settings blob.

    ``task_id_lookup`` and ``task_id_index`` belong to the identity
    registry; nothing else should touch them directly.
    """

    task_id_lookup: Dict[str, str] = field(default_factory=dict)
    task_id_index: int = 0
    default_list_name: Optional[str] = None
    default_list_id: Optional[str] = None
    create_list_if_missing: bool = False
    open_using_app_protocol: bool = True
    redirect_uri_base: str = ""
    vault_name: str = ""
    display: DisplayOptions = field(default_factory=DisplayOptions)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "taskIdLookup": dict(self.task_id_lookup),
            "taskIdIndex": self.task_id_index,
            "todoListSync": {
                "listName": self.default_list_name,
                "listId": self.default_list_id,
            },
            "todo_CreateToDoListIfMissing": self.create_list_if_missing,
            "todo_OpenUsingApplicationProtocol": self.open_using_app_protocol,
            "microsoftToDoApplication_RedirectUriBase": self.redirect_uri_base,
            "vaultName": self.vault_name,
        }
        for attr, key in _DISPLAY_KEYS.items():
            data[key] = getattr(self.display, attr)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SyncSettings:
        defaults = DisplayOptions()
        display_values = {}
        for attr, key in _DISPLAY_KEYS.items():
            value = data.get(key)
            expected = type(getattr(defaults, attr))
            if isinstance(value, expected):
                display_values[attr] = value

        lookup = data.get("taskIdLookup") or {}
        if not isinstance(lookup, dict):
            lookup = {}

        try:
            index = int(data.get("taskIdIndex", 0) or 0)
        except (TypeError, ValueError):
            index = 0

        list_sync = data.get("todoListSync") or {}

        return cls(
            task_id_lookup={str(k): str(v) for k, v in lookup.items()},
            task_id_index=index,
            default_list_name=list_sync.get("listName"),
            default_list_id=list_sync.get("listId"),
            create_list_if_missing=bool(data.get("todo_CreateToDoListIfMissing", False)),
            open_using_app_protocol=bool(data.get("todo_OpenUsingApplicationProtocol", True)),
            redirect_uri_base=data.get("microsoftToDoApplication_RedirectUriBase") or "",
            vault_name=data.get("vaultName") or "",
            display=DisplayOptions(**display_values),
        )

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------
    @classmethod
    def load_from_file(cls, config_path: str) -> SyncSettings:
        config_path = _normalize_path(config_path)
        if not os.path.exists(config_path):
            return cls()

        try:
            with open(config_path, "r", encoding="utf-8") as handle:
                data = json.load(handle)
        except json.JSONDecodeError:
            return cls()

        if not isinstance(data, dict):
            return cls()
        return cls.from_dict(data)
