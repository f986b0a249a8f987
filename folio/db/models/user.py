from typing import TYPE_CHECKING

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from folio.db.base import Base

if TYPE_CHECKING:
    from folio.db.models.content_item import ContentItem


class User(Base):
    """An editorial user. Authentication happens elsewhere; this row carries identity and role."""

    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(150), nullable=False, unique=True, index=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="author", server_default="author")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    content_items: Mapped[list["ContentItem"]] = relationship(
        "ContentItem",
        back_populates="author",
        foreign_keys="ContentItem.created_by",
    )

    @property
    def name(self) -> str:
        return self.display_name or self.username
