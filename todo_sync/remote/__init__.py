"""
Remote to-do service boundary - wire schema and the abstract gateway.
"""

from .gateway import TodoGateway, task_url
from .schema import (
    RemoteTask,
    TodoList,
    TaskPayload,
    TasksDelta,
    LinkedResourceModel,
    GatewayRequest
)

__all__ = [
    'TodoGateway',
    'task_url',
    'RemoteTask',
    'TodoList',
    'TaskPayload',
    'TasksDelta',
    'LinkedResourceModel',
    'GatewayRequest'
]
