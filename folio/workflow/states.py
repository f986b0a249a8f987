"""Content workflow states, actions and the transition table.

The table below is the complete workflow graph. Anything not listed is an
invalid transition; ``archived`` has no outbound edges.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ContentStatus(str, Enum):
    DRAFT = "draft"
    REVIEW = "review"
    CHANGES_REQUESTED = "changes_requested"
    APPROVED = "approved"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class WorkflowAction(str, Enum):
    UPDATE = "update"
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_CHANGES = "request_changes"
    PUBLISH = "publish"
    ARCHIVE = "archive"
    EXPIRE = "expire"


class HistoryAction(str, Enum):
    """Values written to the workflow history log."""

    CREATED = "created"
    UPDATED = "updated"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    PUBLISHED = "published"
    REJECTED = "rejected"
    REQUESTED_CHANGES = "requested_changes"
    ARCHIVED = "archived"


class GuardKind(str, Enum):
    """Who may invoke a transition."""

    OWNER_OR_PRIVILEGED = "owner_or_privileged"
    PRIVILEGED = "privileged"
    SCHEDULER = "scheduler"


@dataclass(frozen=True)
class Transition:
    """One edge set of the workflow graph."""

    action: WorkflowAction
    sources: frozenset[ContentStatus]
    target: ContentStatus
    guard: GuardKind
    history_action: HistoryAction
    requires_comment: bool = False
    default_comment: str | None = None


_EDITABLE = frozenset({ContentStatus.DRAFT, ContentStatus.CHANGES_REQUESTED})

TRANSITIONS: dict[WorkflowAction, Transition] = {
    WorkflowAction.UPDATE: Transition(
        action=WorkflowAction.UPDATE,
        sources=_EDITABLE,
        target=ContentStatus.DRAFT,
        guard=GuardKind.OWNER_OR_PRIVILEGED,
        history_action=HistoryAction.UPDATED,
        default_comment="Content updated",
    ),
    WorkflowAction.SUBMIT: Transition(
        action=WorkflowAction.SUBMIT,
        sources=_EDITABLE,
        target=ContentStatus.REVIEW,
        guard=GuardKind.OWNER_OR_PRIVILEGED,
        history_action=HistoryAction.SUBMITTED,
        default_comment="Submitted for review",
    ),
    # Target is PUBLISHED unless a future publish time is set; see resolve_target()
    WorkflowAction.APPROVE: Transition(
        action=WorkflowAction.APPROVE,
        sources=frozenset({ContentStatus.REVIEW}),
        target=ContentStatus.PUBLISHED,
        guard=GuardKind.PRIVILEGED,
        history_action=HistoryAction.PUBLISHED,
        default_comment="Published immediately",
    ),
    WorkflowAction.REJECT: Transition(
        action=WorkflowAction.REJECT,
        sources=frozenset({ContentStatus.REVIEW}),
        target=ContentStatus.DRAFT,
        guard=GuardKind.PRIVILEGED,
        history_action=HistoryAction.REJECTED,
        requires_comment=True,
    ),
    WorkflowAction.REQUEST_CHANGES: Transition(
        action=WorkflowAction.REQUEST_CHANGES,
        sources=frozenset({ContentStatus.REVIEW}),
        target=ContentStatus.CHANGES_REQUESTED,
        guard=GuardKind.PRIVILEGED,
        history_action=HistoryAction.REQUESTED_CHANGES,
        requires_comment=True,
    ),
    WorkflowAction.PUBLISH: Transition(
        action=WorkflowAction.PUBLISH,
        sources=frozenset({ContentStatus.APPROVED}),
        target=ContentStatus.PUBLISHED,
        guard=GuardKind.SCHEDULER,
        history_action=HistoryAction.PUBLISHED,
        default_comment="Published on schedule",
    ),
    WorkflowAction.ARCHIVE: Transition(
        action=WorkflowAction.ARCHIVE,
        sources=frozenset(
            {
                ContentStatus.DRAFT,
                ContentStatus.REVIEW,
                ContentStatus.CHANGES_REQUESTED,
                ContentStatus.APPROVED,
                ContentStatus.PUBLISHED,
            }
        ),
        target=ContentStatus.ARCHIVED,
        guard=GuardKind.OWNER_OR_PRIVILEGED,
        history_action=HistoryAction.ARCHIVED,
        default_comment="Manually archived",
    ),
    WorkflowAction.EXPIRE: Transition(
        action=WorkflowAction.EXPIRE,
        sources=frozenset({ContentStatus.PUBLISHED}),
        target=ContentStatus.ARCHIVED,
        guard=GuardKind.SCHEDULER,
        history_action=HistoryAction.ARCHIVED,
        default_comment="Expired",
    ),
}

TERMINAL_STATES = frozenset(
    status
    for status in ContentStatus
    if not any(status in t.sources for t in TRANSITIONS.values())
)


def get_transition(action: WorkflowAction) -> Transition:
    return TRANSITIONS[action]


def is_allowed(status: ContentStatus, action: WorkflowAction) -> bool:
    """Return True if ``action`` is an edge out of ``status``."""
    return status in TRANSITIONS[action].sources


def allowed_actions(status: ContentStatus) -> list[WorkflowAction]:
    """List the actions that may be taken from ``status``, in declaration order."""
    return [action for action, t in TRANSITIONS.items() if status in t.sources]


def resolve_target(
    transition: Transition,
    scheduled_publish_at: datetime | None,
    now: datetime,
) -> tuple[ContentStatus, HistoryAction, str | None]:
    """Resolve the destination of a transition for a concrete item.

    Approval parks content in ``approved`` when it carries a publish time in
    the future; the scheduler publishes it later. Every other edge has a
    fixed target.
    """
    if transition.action is WorkflowAction.APPROVE:
        if scheduled_publish_at is not None and scheduled_publish_at > now:
            return (
                ContentStatus.APPROVED,
                HistoryAction.APPROVED,
                "Approved for scheduled publishing",
            )
    return transition.target, transition.history_action, transition.default_comment
