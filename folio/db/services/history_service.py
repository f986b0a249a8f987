"""Workflow history log: append-only audit trail per content item."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from folio.db.models import User, WorkflowHistoryEntry
from folio.workflow.states import HistoryAction

SYSTEM_ACTOR_NAME = "Scheduler"


@dataclass(frozen=True)
class HistoryEntryView:
    """A history entry joined with the actor's display name at read time."""

    id: int
    content_id: UUID
    user_id: UUID | None
    actor_name: str
    action: str
    comments: str | None
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "content_id": str(self.content_id),
            "user_id": str(self.user_id) if self.user_id else None,
            "username": self.actor_name,
            "action": self.action,
            "comments": self.comments,
            "timestamp": self.timestamp.isoformat(),
        }


async def append(
    db_session: AsyncSession,
    content_id: UUID,
    user_id: UUID | None,
    action: HistoryAction,
    comments: str | None = None,
    at: datetime | None = None,
) -> WorkflowHistoryEntry:
    """Append one entry to the history of a content item.

    This is the only write operation on the log. It does not commit; the
    entry is part of the caller's transition transaction.
    """
    entry = WorkflowHistoryEntry(
        content_id=content_id,
        user_id=user_id,
        action=HistoryAction(action).value,
        comments=comments,
    )
    if at is not None:
        entry.created_at = at

    db_session.add(entry)
    await db_session.flush()
    return entry


async def list_by_content(
    db_session: AsyncSession,
    content_id: UUID,
) -> list[HistoryEntryView]:
    """List history entries for a content item, newest first, with actor names."""
    result = await db_session.execute(
        select(WorkflowHistoryEntry, User.display_name, User.username)
        .outerjoin(User, User.id == WorkflowHistoryEntry.user_id)
        .where(WorkflowHistoryEntry.content_id == content_id)
        .order_by(WorkflowHistoryEntry.created_at.desc(), WorkflowHistoryEntry.id.desc())
    )

    views = []
    for entry, display_name, username in result.all():
        if entry.user_id is None:
            actor_name = SYSTEM_ACTOR_NAME
        else:
            actor_name = display_name or username or "Unknown"
        views.append(
            HistoryEntryView(
                id=entry.id,
                content_id=entry.content_id,
                user_id=entry.user_id,
                actor_name=actor_name,
                action=entry.action,
                comments=entry.comments,
                timestamp=entry.created_at,
            )
        )
    return views


async def count_for_content(db_session: AsyncSession, content_id: UUID) -> int:
    """Number of history entries recorded for a content item."""
    result = await db_session.execute(
        select(func.count(WorkflowHistoryEntry.id)).where(WorkflowHistoryEntry.content_id == content_id)
    )
    return result.scalar() or 0
