"""Domain exceptions raised to synchronous callers.

The HTTP layer maps them to status codes; provider failures inside the bulk
sync are degraded to empty snapshots and never surface as ProviderError.
"""


class ChatSyncError(Exception):
    """Base class for engine errors."""


class ValidationError(ChatSyncError):
    """Malformed input (identifiers, empty text, unknown fields)."""


class PreconditionError(ValidationError):
    """Operation not allowed in the current state (e.g. inbox not connected)."""


class NotFoundError(ChatSyncError):
    """Referenced inbox, conversation or contact does not exist."""


class ProviderError(ChatSyncError):
    """A provider call the operation cannot proceed without has failed."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
