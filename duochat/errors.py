"""Error taxonomy for duochat.

Validation failures are raised before any store call. Store failures and
room state violations surface from the awaited coroutine that hit them.
"""

from typing import Any, Dict, List, Optional


class ChatError(Exception):
    """Base class for every error raised by duochat."""
    pass


class InitializeError(ChatError):
    """Invalid configuration passed to initialize()."""
    pass


class ValidationError(ChatError, ValueError):
    """Malformed input; the caller's fault."""
    pass


class NotFoundError(ChatError, LookupError):
    """A referenced room, user index record or message does not exist."""
    pass


class AlreadyRemovedError(ChatError):
    """The room was soft-removed; no further transitions are allowed."""
    pass


class PrivateRoomError(ChatError):
    """The room was already claimed by its second member."""
    pass


class StoreError(ChatError):
    """The underlying document store operation failed."""
    pass


class ConflictError(StoreError):
    """A conditioned update found values other than the expected ones."""

    def __init__(self, message: str, actual: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.actual = actual or {}


class PartialFailureError(ChatError):
    """A fan-out finished but some of its items failed.

    Attributes:
        completed: Results of the items that succeeded
        failures: Item id -> exception for the items that failed
    """

    def __init__(self, message: str, completed: List[Any], failures: Dict[str, BaseException]):
        super().__init__(message)
        self.completed = completed
        self.failures = failures
