"""
Wire schema for the remote to-do service.

Requests form a discriminated union on ``operation``; each variant knows
its REST route and body so a transport only has to send it. Responses are
validated into the models below before anything else sees them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.models import (
    APPLICATION_NAME,
    ChecklistItem,
    Importance,
    LinkedResource,
    TaskRecord,
    TaskStatus,
)
from ..utils.date import parse_date, parse_timestamp


RemoteStatus = Literal["notStarted", "inProgress", "completed", "waitingOnOthers", "deferred"]
RemoteImportance = Literal["low", "normal", "high"]

LISTS_PATH = "/me/todo/lists"


class WireModel(BaseModel):
    """Base for every payload: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


# ============================================================================
# Shared fragments
# ============================================================================


class ItemBody(WireModel):
    content: str = ""
    content_type: str = Field(default="text", alias="contentType")


class DateTimeTimeZone(WireModel):
    date_time: str = Field(alias="dateTime")
    time_zone: str = Field(default="UTC", alias="timeZone")


class ChecklistItemModel(WireModel):
    id: Optional[str] = None
    display_name: str = Field(default="", alias="displayName")
    is_checked: bool = Field(default=False, alias="isChecked")


class LinkedResourceModel(WireModel):
    id: Optional[str] = None
    web_url: Optional[str] = Field(default=None, alias="webUrl")
    application_name: Optional[str] = Field(default=None, alias="applicationName")
    external_id: Optional[str] = Field(default=None, alias="externalId")
    display_name: Optional[str] = Field(default=None, alias="displayName")

    @classmethod
    def from_resource(cls, resource: LinkedResource) -> LinkedResourceModel:
        return cls(
            web_url=resource.web_url,
            application_name=resource.application_name,
            external_id=resource.external_id,
            display_name=resource.display_name,
        )

    def to_resource(self) -> LinkedResource:
        return LinkedResource(
            web_url=self.web_url or "",
            external_id=self.external_id or "",
            application_name=self.application_name or APPLICATION_NAME,
            display_name=self.display_name,
            resource_id=self.id,
        )


# ============================================================================
# Responses
# ============================================================================


class TodoList(WireModel):
    id: str
    display_name: str = Field(default="", alias="displayName")
    wellknown_list_name: Optional[str] = Field(default=None, alias="wellknownListName")


class TodoListCollection(WireModel):
    value: List[TodoList] = Field(default_factory=list)


class RemoteTask(WireModel):
    """A task as the remote service reports it."""

    id: str
    title: str = ""
    status: RemoteStatus = "notStarted"
    importance: RemoteImportance = "normal"
    body: Optional[ItemBody] = None
    due_date_time: Optional[DateTimeTimeZone] = Field(default=None, alias="dueDateTime")
    completed_date_time: Optional[DateTimeTimeZone] = Field(default=None, alias="completedDateTime")
    created_date_time: Optional[datetime] = Field(default=None, alias="createdDateTime")
    last_modified_date_time: Optional[datetime] = Field(default=None, alias="lastModifiedDateTime")
    checklist_items: List[ChecklistItemModel] = Field(default_factory=list, alias="checklistItems")
    linked_resources: List[LinkedResourceModel] = Field(default_factory=list, alias="linkedResources")

    @field_validator("created_date_time", "last_modified_date_time", mode="before")
    @classmethod
    def _normalise_timestamp(cls, value: Any) -> Optional[datetime]:
        if value is None or value == "":
            return None
        parsed = parse_timestamp(value)
        if parsed is None:
            raise ValueError(f"invalid timestamp: {value!r}")
        return parsed

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    @property
    def completed_on(self) -> Optional[date]:
        if self.completed_date_time is None:
            return None
        return parse_date(self.completed_date_time.date_time)

    def to_record(self) -> TaskRecord:
        """Build a TaskRecord carrying this task's synced fields."""
        record = TaskRecord(
            title=self.title.strip(),
            status=TaskStatus.from_remote(self.status),
            importance=Importance.from_remote(self.importance),
            remote_id=self.id,
            created_date=self.created_date_time,
        )
        if self.due_date_time is not None:
            record.due_date = parse_date(self.due_date_time.date_time)
            record.due_timezone = self.due_date_time.time_zone
        if self.body is not None:
            record.set_body(self.body.content)
        for item in self.checklist_items:
            record.checklist_items.append(ChecklistItem(text=item.display_name, checked=item.is_checked))
        if self.linked_resources:
            record.linked_resource = self.linked_resources[0].to_resource()
        return record


class DeltaPage(WireModel):
    value: List[Dict[str, Any]] = Field(default_factory=list)
    next_link: Optional[str] = Field(default=None, alias="@odata.nextLink")
    delta_link: Optional[str] = Field(default=None, alias="@odata.deltaLink")


@dataclass
class TasksDelta:
    """Every page of one delta query, drained."""

    tasks: List[RemoteTask] = field(default_factory=list)
    removed_ids: List[str] = field(default_factory=list)
    continuation_token: str = ""


# ============================================================================
# Requests
# ============================================================================


class TaskPayload(WireModel):
    title: str
    status: RemoteStatus = "notStarted"
    importance: RemoteImportance = "normal"
    body: Optional[ItemBody] = None
    due_date_time: Optional[DateTimeTimeZone] = Field(default=None, alias="dueDateTime")
    checklist_items: Optional[List[ChecklistItemModel]] = Field(default=None, alias="checklistItems")

    @classmethod
    def from_record(cls, record: TaskRecord, with_checklist: bool = False) -> TaskPayload:
        payload = cls(
            title=record.title,
            status=record.status.value,
            importance=record.importance.value,
        )
        if record.body:
            payload.body = ItemBody(content=record.body)
        if record.due_date:
            payload.due_date_time = DateTimeTimeZone(
                date_time=datetime.combine(record.due_date, time()).isoformat(),
                time_zone=record.due_timezone,
            )
        if with_checklist and record.checklist_items:
            payload.checklist_items = [
                ChecklistItemModel(display_name=item.text, is_checked=item.checked)
                for item in record.checklist_items
            ]
        return payload

    def to_wire(self) -> Dict[str, Any]:
        data = super().to_wire()
        # A missing due date must clear the remote one.
        data.setdefault("dueDateTime", None)
        return data


class _Request(WireModel, ABC):
    http_method: ClassVar[str] = "GET"

    @abstractmethod
    def path(self) -> str:
        """Route relative to the service root."""

    def body(self) -> Optional[Dict[str, Any]]:
        return None


class ListListsRequest(_Request):
    operation: Literal["listLists"] = "listLists"
    name_filter: Optional[str] = None

    def path(self) -> str:
        if not self.name_filter:
            return LISTS_PATH
        escaped = self.name_filter.replace("'", "''")
        return f"{LISTS_PATH}?$filter=contains(displayName,'{escaped}')"


class CreateListRequest(_Request):
    http_method: ClassVar[str] = "POST"
    operation: Literal["createList"] = "createList"
    display_name: str

    def path(self) -> str:
        return LISTS_PATH

    def body(self) -> Dict[str, Any]:
        return {"displayName": self.display_name}


class DeltaPageRequest(_Request):
    """One page of a delta query; ``link`` is a next link or continuation token."""

    operation: Literal["getTasksDelta"] = "getTasksDelta"
    list_id: str
    link: str = ""

    def path(self) -> str:
        return self.link or f"{LISTS_PATH}/{self.list_id}/tasks/delta"


class CreateTaskRequest(_Request):
    http_method: ClassVar[str] = "POST"
    operation: Literal["createTask"] = "createTask"
    list_id: str
    task: TaskPayload

    def path(self) -> str:
        return f"{LISTS_PATH}/{self.list_id}/tasks"

    def body(self) -> Dict[str, Any]:
        return self.task.to_wire()


class UpdateTaskRequest(_Request):
    http_method: ClassVar[str] = "PATCH"
    operation: Literal["updateTask"] = "updateTask"
    list_id: str
    task_id: str
    task: TaskPayload

    def path(self) -> str:
        return f"{LISTS_PATH}/{self.list_id}/tasks/{self.task_id}"

    def body(self) -> Dict[str, Any]:
        return self.task.to_wire()


class GetTaskRequest(_Request):
    operation: Literal["getTask"] = "getTask"
    list_id: str
    task_id: str

    def path(self) -> str:
        return f"{LISTS_PATH}/{self.list_id}/tasks/{self.task_id}?$expand=linkedResources"


class CreateLinkedResourceRequest(_Request):
    http_method: ClassVar[str] = "POST"
    operation: Literal["createLinkedResource"] = "createLinkedResource"
    list_id: str
    task_id: str
    resource: LinkedResourceModel

    def path(self) -> str:
        return f"{LISTS_PATH}/{self.list_id}/tasks/{self.task_id}/linkedResources"

    def body(self) -> Dict[str, Any]:
        return self.resource.to_wire()


class UpdateLinkedResourceRequest(_Request):
    http_method: ClassVar[str] = "PATCH"
    operation: Literal["updateLinkedResource"] = "updateLinkedResource"
    list_id: str
    task_id: str
    resource_id: str
    resource: LinkedResourceModel

    def path(self) -> str:
        return f"{LISTS_PATH}/{self.list_id}/tasks/{self.task_id}/linkedResources/{self.resource_id}"

    def body(self) -> Dict[str, Any]:
        return self.resource.to_wire()


GatewayRequest = Annotated[
    Union[
        ListListsRequest,
        CreateListRequest,
        DeltaPageRequest,
        CreateTaskRequest,
        UpdateTaskRequest,
        GetTaskRequest,
        CreateLinkedResourceRequest,
        UpdateLinkedResourceRequest,
    ],
    Field(discriminator="operation"),
]
