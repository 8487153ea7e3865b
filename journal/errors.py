"""Error taxonomy for sync and analytics."""

from typing import Any


class JournalError(Exception):
    """Base error for the journal service."""

    def __init__(self, message: str, details: Any | None = None):
        self.message = message
        self.details = details
        super().__init__(message)


class RemoteUnavailable(JournalError):
    """Fills API unreachable or answered with a non-success status."""


class NoConnection(JournalError):
    """Sync requested for a user with no registered exchange link."""


class StoreWriteFailed(JournalError):
    """Trade batch insert rejected; nothing from the batch was applied."""


class DataQuality(JournalError):
    """A fill carries values that cannot produce a sound trade."""


class SyncFailed(JournalError):
    """A single-user sync aborted; `cause` holds the underlying error."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message, details=str(cause) if cause else None)
        self.cause = cause
