"""
Custom exceptions for livesync.

All components raise these exceptions so that the batcher and the
commit client can decide, per error class, whether to isolate a file,
fall back to a second transaction, or give up for the cycle.
"""


class LiveSyncError(Exception):
    """Base exception for all livesync errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class TransientIOError(LiveSyncError):
    """Raised when an upload or network call fails in a way that may succeed later."""

    def __init__(self, operation: str, target: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if target:
            details["target"] = target
        if cause:
            details["cause"] = str(cause)
        message = f"Transient I/O error during {operation}"
        if target:
            message += f": {target}"
        super().__init__(message, details)
        self.operation = operation
        self.target = target
        self.cause = cause


class ConflictError(LiveSyncError):
    """Raised when the peer rejects a transaction because of stale or unknown parents."""

    def __init__(
        self,
        state_uri: str,
        tx_id: str,
        parents: list[str] | None = None,
        reason: str | None = None,
    ):
        details: dict = {"state_uri": state_uri, "tx_id": tx_id}
        if parents is not None:
            details["parents"] = parents
        if reason:
            details["reason"] = reason
        message = f"Transaction {tx_id} rejected for {state_uri}"
        if reason:
            message += f": {reason}"
        super().__init__(message, details)
        self.state_uri = state_uri
        self.tx_id = tx_id
        self.parents = parents or []
        self.reason = reason


class ValidationError(LiveSyncError):
    """Raised when a patch, path or digest is malformed."""

    def __init__(self, field: str, reason: str, value: str | None = None):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Validation failed for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value


class NotFoundError(LiveSyncError):
    """Raised when a file vanished between the directory listing and the read."""

    def __init__(self, path: str):
        super().__init__(f"File not found: {path}", {"path": path})
        self.path = path


class StorageIOError(LiveSyncError):
    """Raised when local state persistence fails."""

    def __init__(self, operation: str, path: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Storage I/O error during {operation}"
        if path:
            message += f": {path}"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause


class AuthenticationError(LiveSyncError):
    """Raised when the peer refuses our identity."""

    def __init__(self, endpoint: str, reason: str | None = None):
        details = {"endpoint": endpoint}
        if reason:
            details["reason"] = reason
        super().__init__(f"Authentication failed for {endpoint}", details)
        self.endpoint = endpoint
        self.reason = reason


class ConfigurationError(LiveSyncError):
    """Raised when configuration values are missing or invalid."""

    def __init__(self, field: str, reason: str):
        super().__init__(f"Invalid configuration for {field}: {reason}", {"field": field})
        self.field = field
        self.reason = reason
