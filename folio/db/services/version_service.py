"""Version service: immutable content body snapshots."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from folio.db.models import ContentVersion
from folio.workflow.errors import NotFoundError, PersistenceError
from folio.workflow.results import TransitionResult
from folio.workflow.states import WorkflowAction

if TYPE_CHECKING:
    from folio.workflow.engine import WorkflowEngine
    from folio.workflow.guards import Actor


async def next_version_number(db_session: AsyncSession, content_id: UUID) -> int:
    result = await db_session.execute(
        select(func.coalesce(func.max(ContentVersion.version), 0))
        .where(ContentVersion.content_id == content_id)
    )
    return (result.scalar() or 0) + 1


async def snapshot(
    db_session: AsyncSession,
    content_id: UUID,
    body: str,
    user_id: UUID | None = None,
    created_at: datetime | None = None,
) -> ContentVersion:
    """Store a new immutable snapshot of a content body.

    Allocates the next version number for the item. Does not commit: the
    snapshot belongs to the caller's transaction, and the unique constraint on
    (content_id, version) rejects a concurrent writer that allocated the same
    number.

    Args:
        db_session: Database session
        content_id: The content item being snapshotted
        body: Body text to store
        user_id: ID of the user making the change (optional)
        created_at: Timestamp to record (defaults to now)

    Returns:
        The new ContentVersion
    """
    version = ContentVersion(
        content_id=content_id,
        version=await next_version_number(db_session, content_id),
        content=body,
        created_by=user_id,
    )
    if created_at is not None:
        version.created_at = created_at

    db_session.add(version)
    await db_session.flush()
    return version


async def list_versions(
    db_session: AsyncSession,
    content_id: UUID,
    limit: int | None = None,
) -> list[ContentVersion]:
    """List versions for a content item, newest first."""
    query = (
        select(ContentVersion)
        .where(ContentVersion.content_id == content_id)
        .order_by(ContentVersion.version.desc())
    )
    if limit:
        query = query.limit(limit)

    result = await db_session.execute(query)
    return list(result.scalars().all())


async def get_version(
    db_session: AsyncSession,
    content_id: UUID,
    version: int,
) -> ContentVersion | None:
    """Get a specific version of a content item."""
    result = await db_session.execute(
        select(ContentVersion).where(
            ContentVersion.content_id == content_id,
            ContentVersion.version == version,
        )
    )
    return result.scalar_one_or_none()


async def restore_version(
    engine: WorkflowEngine,
    content_id: UUID,
    version: int,
    actor: Actor,
) -> TransitionResult:
    """Restore a historical body as a brand-new version.

    History is never rewritten: the old body is copied forward through the
    engine's update path, so the item returns to draft and its version
    advances by one. Only content in draft or changes_requested can be
    restored.
    """
    try:
        async with engine.session_maker() as db_session:
            past = await get_version(db_session, content_id, version)
    except SQLAlchemyError as exc:
        return TransitionResult.failure(PersistenceError(f"Could not load version {version}: {exc}"))

    if past is None:
        return TransitionResult.failure(
            NotFoundError(f"Version {version} of content {content_id} not found")
        )

    return await engine.transition(
        content_id,
        WorkflowAction.UPDATE,
        actor,
        {"body": past.content, "comments": f"Restored from version {version}"},
    )
