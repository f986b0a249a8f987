"""Content store: queries and atomic writes for content items."""

from collections.abc import Collection
from dataclasses import dataclass
from datetime import datetime
from math import ceil
from typing import Any, Literal
from uuid import UUID

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from folio.db.models import ContentItem, ContentVersion, WorkflowHistoryEntry
from folio.lib.hooks import CONTENT_LIST_QUERY, hooks
from folio.workflow.states import ContentStatus


SortBy = Literal["updated", "created", "title"]
SortOrder = Literal["asc", "desc"]

_SORT_COLUMNS = {
    "updated": ContentItem.updated_at,
    "created": ContentItem.created_at,
    "title": ContentItem.title,
}


@dataclass
class ContentPage:
    """One page of a content listing."""

    items: list[ContentItem]
    total_count: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return ceil(self.total_count / self.limit) if self.limit else 0


def _escape_like(text: str) -> str:
    """Escape LIKE wildcards so ``%`` and ``_`` in a search match literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


async def list_content(
    db_session: AsyncSession,
    page: int = 1,
    limit: int = 10,
    status: ContentStatus | None = None,
    search: str | None = None,
    owner_id: UUID | None = None,
    sort_by: SortBy = "updated",
    sort_order: SortOrder = "desc",
) -> ContentPage:
    """List content with filtering, sorting and pagination.

    Args:
        db_session: Database session
        page: 1-based page number
        limit: Page size
        status: Only return content in this status
        search: Case-insensitive substring match on the title
        owner_id: Only return content created by this user
        sort_by: "updated" (default), "created" or "title"
        sort_order: "asc" or "desc" (default)

    Returns:
        ContentPage with the items and the total matching count
    """
    filters = []
    if status is not None:
        filters.append(ContentItem.status == ContentStatus(status).value)
    if search:
        filters.append(ContentItem.title.ilike(f"%{_escape_like(search)}%", escape="\\"))
    if owner_id is not None:
        filters.append(ContentItem.created_by == owner_id)

    query = select(ContentItem)
    count_query = select(func.count(ContentItem.id))
    if filters:
        query = query.where(and_(*filters))
        count_query = count_query.where(and_(*filters))

    column = _SORT_COLUMNS.get(sort_by, ContentItem.updated_at)
    query = query.order_by(column.asc() if sort_order == "asc" else column.desc())

    page = max(page, 1)
    query = query.offset((page - 1) * limit).limit(limit)
    query = await hooks.apply_filters(CONTENT_LIST_QUERY, query)

    total = (await db_session.execute(count_query)).scalar() or 0
    result = await db_session.execute(query)
    return ContentPage(
        items=list(result.scalars().all()),
        total_count=total,
        page=page,
        limit=limit,
    )


async def get_content_by_id(
    db_session: AsyncSession,
    content_id: UUID,
) -> ContentItem | None:
    """Get a single content item by ID."""
    result = await db_session.execute(select(ContentItem).where(ContentItem.id == content_id))
    return result.scalar_one_or_none()


async def compare_and_set(
    db_session: AsyncSession,
    content_id: UUID,
    expected_status: ContentStatus,
    expected_version: int,
    values: dict[str, Any],
) -> bool:
    """Write ``values`` only if status and version still match what was read.

    Returns:
        True if exactly one row was updated, False if another writer got there first
    """
    result = await db_session.execute(
        update(ContentItem)
        .where(
            ContentItem.id == content_id,
            ContentItem.status == ContentStatus(expected_status).value,
            ContentItem.version == expected_version,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def delete_content(
    db_session: AsyncSession,
    content_id: UUID,
) -> bool:
    """Delete a content item together with its versions and history.

    Does not commit; the caller owns the transaction.

    Returns:
        True if deleted, False if not found
    """
    await db_session.execute(
        delete(WorkflowHistoryEntry).where(WorkflowHistoryEntry.content_id == content_id)
    )
    await db_session.execute(
        delete(ContentVersion).where(ContentVersion.content_id == content_id)
    )
    result = await db_session.execute(delete(ContentItem).where(ContentItem.id == content_id))
    return result.rowcount == 1


async def list_due_for_publish(
    db_session: AsyncSession,
    now: datetime,
    limit: int | None = None,
    exclude: Collection[UUID] = (),
) -> list[UUID]:
    """IDs of approved content whose publish time has arrived, oldest first.

    Ids in ``exclude`` are left out before ``limit`` applies.
    """
    query = (
        select(ContentItem.id)
        .where(
            ContentItem.status == ContentStatus.APPROVED.value,
            ContentItem.scheduled_publish_at.is_not(None),
            ContentItem.scheduled_publish_at <= now,
        )
        .order_by(ContentItem.scheduled_publish_at.asc())
    )
    if exclude:
        query = query.where(ContentItem.id.not_in(list(exclude)))
    if limit:
        query = query.limit(limit)
    result = await db_session.execute(query)
    return list(result.scalars().all())


async def list_due_for_expiry(
    db_session: AsyncSession,
    now: datetime,
    limit: int | None = None,
    exclude: Collection[UUID] = (),
) -> list[UUID]:
    """IDs of published content whose expiration date has arrived, oldest first."""
    query = (
        select(ContentItem.id)
        .where(
            ContentItem.status == ContentStatus.PUBLISHED.value,
            ContentItem.expiration_date.is_not(None),
            ContentItem.expiration_date <= now,
        )
        .order_by(ContentItem.expiration_date.asc())
    )
    if exclude:
        query = query.where(ContentItem.id.not_in(list(exclude)))
    if limit:
        query = query.limit(limit)
    result = await db_session.execute(query)
    return list(result.scalars().all())


async def list_upcoming(
    db_session: AsyncSession,
    now: datetime,
    until: datetime | None = None,
    owner_id: UUID | None = None,
) -> list[ContentItem]:
    """Approved content scheduled to publish after ``now`` (and before ``until``)."""
    query = select(ContentItem).where(
        ContentItem.status == ContentStatus.APPROVED.value,
        ContentItem.scheduled_publish_at > now,
    )
    if until is not None:
        query = query.where(ContentItem.scheduled_publish_at <= until)
    if owner_id is not None:
        query = query.where(ContentItem.created_by == owner_id)
    result = await db_session.execute(query.order_by(ContentItem.scheduled_publish_at.asc()))
    return list(result.scalars().all())


async def list_expiring(
    db_session: AsyncSession,
    now: datetime,
    until: datetime | None = None,
    owner_id: UUID | None = None,
) -> list[ContentItem]:
    """Published content that expires after ``now`` (and before ``until``)."""
    query = select(ContentItem).where(
        ContentItem.status == ContentStatus.PUBLISHED.value,
        ContentItem.expiration_date > now,
    )
    if until is not None:
        query = query.where(ContentItem.expiration_date <= until)
    if owner_id is not None:
        query = query.where(ContentItem.created_by == owner_id)
    result = await db_session.execute(query.order_by(ContentItem.expiration_date.asc()))
    return list(result.scalars().all())
