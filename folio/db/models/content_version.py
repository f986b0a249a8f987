"""Content version model: immutable body snapshots."""

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from folio.db.base import Base

if TYPE_CHECKING:
    from folio.db.models.content_item import ContentItem


class ContentVersion(Base):
    """Snapshot of a content body at a specific version number."""

    __tablename__ = "content_versions"

    content_id: Mapped[UUID] = mapped_column(
        ForeignKey("content_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    content_item: Mapped["ContentItem"] = relationship("ContentItem", back_populates="versions")

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Who made the change
    created_by: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # A version number is never reused for the same content item
    __table_args__ = (UniqueConstraint("content_id", "version"),)
