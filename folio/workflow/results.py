"""Explicit success/failure values returned by the workflow engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from folio.workflow.errors import WorkflowError

if TYPE_CHECKING:
    from folio.db.models import ContentItem


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a workflow operation: either the committed item or an error."""

    content: ContentItem | None = None
    error: WorkflowError | None = None

    @classmethod
    def success(cls, content: ContentItem | None) -> TransitionResult:
        return cls(content=content)

    @classmethod
    def failure(cls, error: WorkflowError) -> TransitionResult:
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> ContentItem | None:
        """Return the committed item, raising the error if the operation failed."""
        if self.error is not None:
            raise self.error
        return self.content

    def __repr__(self) -> str:
        if self.ok:
            return f"TransitionResult.success({self.content!r})"
        return f"TransitionResult.failure({self.error!r})"
