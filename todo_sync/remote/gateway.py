"""Remote Task Gateway: async task/list CRUD and delta queries.

Concrete transports subclass TodoGateway and implement ``_execute``; the
base class builds the requests, drains delta pagination and validates
every response before it reaches the sync layer.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..core.exceptions import GatewayError
from .schema import (
    CreateLinkedResourceRequest,
    CreateListRequest,
    CreateTaskRequest,
    DeltaPage,
    DeltaPageRequest,
    GatewayRequest,
    GetTaskRequest,
    LinkedResourceModel,
    ListListsRequest,
    RemoteTask,
    TaskPayload,
    TasksDelta,
    TodoList,
    TodoListCollection,
    UpdateLinkedResourceRequest,
    UpdateTaskRequest,
)


ModelT = TypeVar("ModelT", bound=BaseModel)

DEFAULT_MAX_DELTA_PAGES = 500

WEB_TASK_URL = "https://to-do.live.com/tasks/id/{task_id}/details"
APP_TASK_URL = "ms-todo://tasks/id/{task_id}/details"


def task_url(task_id: str, use_app_protocol: bool = True) -> str:
    """Link that opens a remote task in the web or desktop client."""
    template = APP_TASK_URL if use_app_protocol else WEB_TASK_URL
    return template.format(task_id=task_id)


class TodoGateway(ABC):
    """Abstraction over the remote to-do service.

    Transport and authorization failures raised by ``_execute`` propagate
    unchanged; this layer does not retry or refresh credentials.
    """

    def __init__(self, logger: Optional[logging.Logger] = None,
                 max_delta_pages: int = DEFAULT_MAX_DELTA_PAGES):
        self.logger = logger or logging.getLogger(__name__)
        self.max_delta_pages = max_delta_pages

    @abstractmethod
    async def _execute(self, request: GatewayRequest) -> Any:
        """Send one request and return the decoded JSON response body.

        Raises:
            TransportError: the request could not be completed
            AuthorizationError: the service rejected our credentials
        """

    def _validate(self, model: Type[ModelT], data: Any, operation: str) -> ModelT:
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise GatewayError(f"Unexpected {operation} response: {exc}") from exc

    async def list_lists(self, name_filter: Optional[str] = None) -> List[TodoList]:
        data = await self._execute(ListListsRequest(name_filter=name_filter))
        return self._validate(TodoListCollection, data, "listLists").value

    async def create_list(self, name: str) -> TodoList:
        data = await self._execute(CreateListRequest(display_name=name))
        todo_list = self._validate(TodoList, data, "createList")
        self.logger.info("Created remote list %s", todo_list.display_name)
        return todo_list

    async def get_tasks_delta(self, list_id: str, continuation_token: str = "") -> TasksDelta:
        """Run a delta query to completion.

        Follows next links until the service hands out a final delta link;
        only that final link is a valid continuation token.
        """
        delta = TasksDelta()
        link = continuation_token
        for page_number in range(1, self.max_delta_pages + 1):
            data = await self._execute(DeltaPageRequest(list_id=list_id, link=link))
            page = self._validate(DeltaPage, data, "getTasksDelta")
            self._collect_page(page, delta)
            self.logger.debug("Delta page %d for list %s: %d entries", page_number, list_id, len(page.value))

            if page.next_link:
                link = page.next_link
                continue
            if not page.delta_link:
                raise GatewayError(f"Delta query for list {list_id} ended without a continuation token")
            delta.continuation_token = page.delta_link
            return delta

        raise GatewayError(f"Delta query for list {list_id} exceeded {self.max_delta_pages} pages")

    def _collect_page(self, page: DeltaPage, delta: TasksDelta) -> None:
        for entry in page.value:
            if "@removed" in entry:
                if entry.get("id"):
                    delta.removed_ids.append(entry["id"])
                continue
            try:
                delta.tasks.append(RemoteTask.model_validate(entry))
            except ValidationError as exc:
                self.logger.warning("Skipping malformed task in delta page: %s", exc)

    async def create_task(self, list_id: str, payload: TaskPayload) -> RemoteTask:
        data = await self._execute(CreateTaskRequest(list_id=list_id, task=payload))
        return self._validate(RemoteTask, data, "createTask")

    async def update_task(self, list_id: str, task_id: str, payload: TaskPayload) -> RemoteTask:
        data = await self._execute(UpdateTaskRequest(list_id=list_id, task_id=task_id, task=payload))
        return self._validate(RemoteTask, data, "updateTask")

    async def get_task(self, list_id: str, task_id: str) -> RemoteTask:
        data = await self._execute(GetTaskRequest(list_id=list_id, task_id=task_id))
        return self._validate(RemoteTask, data, "getTask")

    async def create_linked_resource(self, list_id: str, task_id: str,
                                     resource: LinkedResourceModel) -> LinkedResourceModel:
        data = await self._execute(
            CreateLinkedResourceRequest(list_id=list_id, task_id=task_id, resource=resource)
        )
        return self._validate(LinkedResourceModel, data, "createLinkedResource")

    async def update_linked_resource(self, list_id: str, task_id: str, resource_id: str,
                                     resource: LinkedResourceModel) -> LinkedResourceModel:
        data = await self._execute(
            UpdateLinkedResourceRequest(
                list_id=list_id, task_id=task_id, resource_id=resource_id, resource=resource
            )
        )
        return self._validate(LinkedResourceModel, data, "updateLinkedResource")
