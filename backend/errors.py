"""
Error taxonomy for Taskboard core operations.

Every core operation either returns its result or raises exactly one of the
errors below. The HTTP layer maps each kind to a status code and renders the
standard ``{"success": false, "message": ..., "error": ...}`` envelope.
"""

from fastapi import status


class TaskboardError(Exception):
    """Base class for errors raised by core operations."""

    kind = "InternalError"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TaskboardError):
    """A field constraint was violated (length, enum membership, missing field)."""

    kind = "ValidationError"
    status_code = status.HTTP_400_BAD_REQUEST


class AuthenticationError(TaskboardError):
    """Missing, invalid or expired session token, or a wrong credential."""

    kind = "AuthenticationError"
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(TaskboardError):
    """The resource exists but the requester's role does not permit the action."""

    kind = "AuthorizationError"
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(TaskboardError):
    """A referenced record or relationship does not exist."""

    kind = "NotFoundError"
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(TaskboardError):
    """A uniqueness rule would be broken."""

    kind = "ConflictError"
    status_code = status.HTTP_409_CONFLICT


class InternalError(TaskboardError):
    """Unexpected failure, including a cascade interrupted mid-sequence."""

    kind = "InternalError"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
