"""
Core module for todo-sync - contains domain models, configuration, and exceptions.
"""

from .models import (
    TaskRecord,
    TaskStatus,
    Importance,
    ChecklistItem,
    LinkedResource,
    DisplayOptions,
    SyncSettings,
    records_equal
)

from .exceptions import (
    TodoSyncError,
    ConfigurationError,
    DocumentError,
    RemoteError,
    TransportError,
    AuthorizationError,
    GatewayError,
    CacheError,
    SyncError
)

__all__ = [
    # Models
    'TaskRecord',
    'TaskStatus',
    'Importance',
    'ChecklistItem',
    'LinkedResource',
    'DisplayOptions',
    'SyncSettings',
    'records_equal',
    # Exceptions
    'TodoSyncError',
    'ConfigurationError',
    'DocumentError',
    'RemoteError',
    'TransportError',
    'AuthorizationError',
    'GatewayError',
    'CacheError',
    'SyncError'
]
