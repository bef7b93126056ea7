"""Error taxonomy for the task engine.

Core functions raise these; the HTTP layer maps each ``kind`` to a status
code in one place (see ``api.main``).
"""
from typing import Optional


class TaskTrackError(Exception):
    """Base class for all domain and infrastructure errors."""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(TaskTrackError):
    """Entity is absent, or invisible to the actor. Callers cannot tell which."""

    kind = "not_found"


class ForbiddenError(TaskTrackError):
    """Actor lacks the role or relationship required for the operation."""

    kind = "forbidden"


class ValidationError(TaskTrackError):
    """A field is malformed or out of range."""

    kind = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ConflictError(TaskTrackError):
    """Unique constraint or referential conflict."""

    kind = "conflict"

    USERNAME_TAKEN = "username_taken"
    EMAIL_TAKEN = "email_taken"
    USER_REFERENCED = "user_referenced"

    def __init__(self, message: str, reason: str):
        super().__init__(message)
        self.reason = reason


class UnauthorizedError(TaskTrackError):
    """Credentials or token could not be verified."""

    kind = "unauthorized"


class InfrastructureError(TaskTrackError):
    """Store unavailable, timed out, or failed mid-transaction.

    Retryable by the caller with backoff. The core never retries on its own.
    """

    kind = "infrastructure_error"
    retryable = True


class HistoryWriteError(InfrastructureError):
    """Appending an audit record failed; the enclosing mutation was rolled back."""


class ConcurrentUpdateError(InfrastructureError):
    """Another transaction committed a change to the same task first."""
