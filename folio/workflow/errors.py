"""Workflow error kinds.

The engine returns these inside a ``TransitionResult`` rather than raising
them; callers that prefer exceptions use ``TransitionResult.unwrap()``.
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for every workflow failure."""

    kind: str = "workflow_error"
    retryable: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"error": self.kind, "detail": self.message}


class NotFoundError(WorkflowError):
    kind = "not_found"


class PermissionDeniedError(WorkflowError):
    kind = "permission_denied"


class InvalidTransitionError(WorkflowError):
    kind = "invalid_transition"


class ValidationError(WorkflowError):
    kind = "validation_error"


class ConflictError(WorkflowError):
    """Another writer changed the item between read and write."""

    kind = "conflict"
    retryable = True


class PersistenceError(WorkflowError):
    """The underlying store failed or timed out; nothing was committed."""

    kind = "persistence_error"
    retryable = True
