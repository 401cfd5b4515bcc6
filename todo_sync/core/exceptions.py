"""
Exception classes for todo-sync.
"""


class TodoSyncError(Exception):
    """Base exception for all todo-sync errors."""
    pass


class ConfigurationError(TodoSyncError):
    """Raised when configuration is invalid or missing."""
    pass


class DocumentError(TodoSyncError):
    """Raised when a document cannot be read or written."""
    pass


class RemoteError(TodoSyncError):
    """Base exception for remote to-do service errors."""
    pass


class TransportError(RemoteError):
    """Raised when a gateway call fails in transit."""
    pass


class AuthorizationError(RemoteError):
    """Raised when the remote service rejects our credentials."""
    pass


class GatewayError(RemoteError):
    """Raised when the remote service returns something we cannot use."""
    pass


class CacheError(TodoSyncError):
    """Raised when the delta cache cannot be persisted."""
    pass


class SyncError(TodoSyncError):
    """Raised when a reconciliation batch cannot proceed."""
    pass
