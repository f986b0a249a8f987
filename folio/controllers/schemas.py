"""Request models and response serializers for the content API."""

from datetime import datetime

from pydantic import BaseModel, Field

from folio.db.models import ContentItem, ContentVersion
from folio.workflow.states import allowed_actions


# --- Request models ---


class CreateContentRequest(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    content: str = Field(min_length=1)
    scheduled_publish_at: datetime | None = None
    expiration_date: datetime | None = None


class UpdateContentRequest(BaseModel):
    """Partial update; only the fields present in the request are changed."""

    title: str | None = Field(default=None, max_length=500)
    content: str | None = None
    scheduled_publish_at: datetime | None = None
    expiration_date: datetime | None = None
    comments: str | None = None

    def to_payload(self) -> dict:
        data = self.model_dump(exclude_unset=True)
        if "content" in data:
            data["body"] = data.pop("content")
        return data


class TransitionRequest(BaseModel):
    comments: str | None = None
    reason: str | None = None

    def to_payload(self) -> dict:
        return self.model_dump(exclude_none=True)


# --- Serializers ---


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def serialize_content(item: ContentItem) -> dict:
    return {
        "id": str(item.id),
        "title": item.title,
        "content": item.content,
        "status": item.status,
        "version": item.version,
        "created_by": str(item.created_by) if item.created_by else None,
        "last_modified_by": str(item.last_modified_by) if item.last_modified_by else None,
        "scheduled_publish_at": _iso(item.scheduled_publish_at),
        "expiration_date": _iso(item.expiration_date),
        "published_at": _iso(item.published_at),
        "archived_at": _iso(item.archived_at),
        "archive_reason": item.archive_reason,
        "created_at": _iso(item.created_at),
        "updated_at": _iso(item.updated_at),
        "allowed_actions": [action.value for action in allowed_actions(item.content_status)],
    }


def serialize_version(version: ContentVersion) -> dict:
    return {
        "content_id": str(version.content_id),
        "version": version.version,
        "content": version.content,
        "created_by": str(version.created_by) if version.created_by else None,
        "created_at": _iso(version.created_at),
    }
