from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from advanced_alchemy.types import DateTimeUTC
from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from folio.db.base import Base
from folio.workflow.states import ContentStatus

if TYPE_CHECKING:
    from folio.db.models.content_version import ContentVersion
    from folio.db.models.user import User
    from folio.db.models.workflow_history import WorkflowHistoryEntry


class ContentItem(Base):
    """A piece of editorial content moving through the review workflow."""

    __tablename__ = "content_items"

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Workflow state; only ever written by the workflow engine
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=ContentStatus.DRAFT.value,
        server_default=ContentStatus.DRAFT.value,
        index=True,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")

    # Actors
    created_by: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    last_modified_by: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    author: Mapped["User | None"] = relationship(
        "User", back_populates="content_items", foreign_keys=[created_by]
    )

    # Scheduling
    scheduled_publish_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True, index=True)
    expiration_date: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True, index=True)

    # Lifecycle timestamps
    published_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)
    archived_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)
    archive_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    versions: Mapped[list["ContentVersion"]] = relationship(
        "ContentVersion",
        back_populates="content_item",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="desc(ContentVersion.version)",
    )
    history: Mapped[list["WorkflowHistoryEntry"]] = relationship(
        "WorkflowHistoryEntry",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def content_status(self) -> ContentStatus:
        return ContentStatus(self.status)
