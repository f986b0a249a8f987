"""Content workflow API: CRUD, review transitions, versions and history."""

from datetime import timedelta
from typing import Annotated, Literal
from uuid import UUID

from litestar import Controller, delete, get, post, put
from litestar.datastructures import State
from litestar.di import Provide
from litestar.params import Parameter
from sqlalchemy.ext.asyncio import AsyncSession

from folio.auth.dependencies import provide_actor
from folio.controllers.schemas import (
    CreateContentRequest,
    TransitionRequest,
    UpdateContentRequest,
    serialize_content,
    serialize_version,
)
from folio.db.models import ContentItem
from folio.db.services import content_service, history_service, version_service
from folio.workflow.engine import WorkflowEngine
from folio.workflow.errors import NotFoundError, PermissionDeniedError
from folio.workflow.guards import Actor
from folio.workflow.states import ContentStatus, WorkflowAction


async def _get_visible(
    db_session: AsyncSession, engine: WorkflowEngine, actor: Actor, content_id: UUID
) -> ContentItem:
    item = await content_service.get_content_by_id(db_session, content_id)
    if item is None:
        raise NotFoundError(f"Content {content_id} not found")
    if not engine.guard.can_view(actor, item):
        raise PermissionDeniedError("You do not have access to this content")
    return item


class ContentController(Controller):
    path = "/api/content"
    dependencies = {"actor": Provide(provide_actor)}

    @get("/")
    async def list_content(
        self,
        db_session: AsyncSession,
        actor: Actor,
        page: Annotated[int, Parameter(ge=1)] = 1,
        limit: Annotated[int, Parameter(ge=1, le=100)] = 10,
        status_filter: Annotated[ContentStatus | None, Parameter(query="status")] = None,
        search: str | None = None,
        owner: UUID | None = None,
        sort_by: Literal["updated", "created", "title"] = "updated",
        sort_order: Literal["asc", "desc"] = "desc",
    ) -> dict:
        """List content. Non-privileged users only ever see their own."""
        owner_id = owner if actor.is_privileged else actor.id
        result = await content_service.list_content(
            db_session,
            page=page,
            limit=limit,
            status=status_filter,
            search=search,
            owner_id=owner_id,
            sort_by=sort_by,
            sort_order=sort_order,
        )
        return {
            "items": [serialize_content(item) for item in result.items],
            "total": result.total_count,
            "page": result.page,
            "limit": result.limit,
            "total_pages": result.total_pages,
        }

    @post("/", status_code=201)
    async def create_content(
        self, engine: WorkflowEngine, actor: Actor, data: CreateContentRequest
    ) -> dict:
        result = await engine.create(
            actor,
            title=data.title,
            body=data.content,
            scheduled_publish_at=data.scheduled_publish_at,
            expiration_date=data.expiration_date,
        )
        return serialize_content(result.unwrap())

    @get("/upcoming")
    async def upcoming(
        self,
        db_session: AsyncSession,
        engine: WorkflowEngine,
        actor: Actor,
        state: State,
        days: Annotated[int | None, Parameter(ge=1, le=365)] = None,
    ) -> list[dict]:
        """Approved content waiting for its publish time."""
        now = engine.now()
        window = timedelta(days=days or state.settings.scheduler.lookahead_days)
        items = await content_service.list_upcoming(
            db_session,
            now,
            until=now + window,
            owner_id=None if actor.is_privileged else actor.id,
        )
        return [serialize_content(item) for item in items]

    @get("/expiring")
    async def expiring(
        self,
        db_session: AsyncSession,
        engine: WorkflowEngine,
        actor: Actor,
        state: State,
        days: Annotated[int | None, Parameter(ge=1, le=365)] = None,
    ) -> list[dict]:
        """Published content that will expire soon."""
        now = engine.now()
        window = timedelta(days=days or state.settings.scheduler.lookahead_days)
        items = await content_service.list_expiring(
            db_session,
            now,
            until=now + window,
            owner_id=None if actor.is_privileged else actor.id,
        )
        return [serialize_content(item) for item in items]

    @get("/{content_id:uuid}")
    async def get_content(
        self, db_session: AsyncSession, engine: WorkflowEngine, actor: Actor, content_id: UUID
    ) -> dict:
        item = await _get_visible(db_session, engine, actor, content_id)
        versions = await version_service.list_versions(db_session, content_id)
        history = await history_service.list_by_content(db_session, content_id)
        return {
            "content": serialize_content(item),
            "versions": [serialize_version(v) for v in versions],
            "history": [entry.to_dict() for entry in history],
        }

    @put("/{content_id:uuid}")
    async def update_content(
        self,
        engine: WorkflowEngine,
        actor: Actor,
        content_id: UUID,
        data: UpdateContentRequest,
    ) -> dict:
        result = await engine.transition(
            content_id, WorkflowAction.UPDATE, actor, data.to_payload()
        )
        return serialize_content(result.unwrap())

    @delete("/{content_id:uuid}", status_code=200)
    async def delete_content(
        self, engine: WorkflowEngine, actor: Actor, content_id: UUID
    ) -> dict:
        (await engine.delete(content_id, actor)).unwrap()
        return {"deleted": str(content_id)}

    async def _transition(
        self,
        engine: WorkflowEngine,
        actor: Actor,
        content_id: UUID,
        action: WorkflowAction,
        data: TransitionRequest | None,
    ) -> dict:
        payload = data.to_payload() if data else {}
        result = await engine.transition(content_id, action, actor, payload)
        return serialize_content(result.unwrap())

    @post("/{content_id:uuid}/submit", status_code=200)
    async def submit(
        self,
        engine: WorkflowEngine,
        actor: Actor,
        content_id: UUID,
        data: TransitionRequest | None = None,
    ) -> dict:
        return await self._transition(engine, actor, content_id, WorkflowAction.SUBMIT, data)

    @post("/{content_id:uuid}/approve", status_code=200)
    async def approve(
        self,
        engine: WorkflowEngine,
        actor: Actor,
        content_id: UUID,
        data: TransitionRequest | None = None,
    ) -> dict:
        return await self._transition(engine, actor, content_id, WorkflowAction.APPROVE, data)

    @post("/{content_id:uuid}/reject", status_code=200)
    async def reject(
        self,
        engine: WorkflowEngine,
        actor: Actor,
        content_id: UUID,
        data: TransitionRequest | None = None,
    ) -> dict:
        return await self._transition(engine, actor, content_id, WorkflowAction.REJECT, data)

    @post("/{content_id:uuid}/request-changes", status_code=200)
    async def request_changes(
        self,
        engine: WorkflowEngine,
        actor: Actor,
        content_id: UUID,
        data: TransitionRequest | None = None,
    ) -> dict:
        return await self._transition(
            engine, actor, content_id, WorkflowAction.REQUEST_CHANGES, data
        )

    @post("/{content_id:uuid}/archive", status_code=200)
    async def archive(
        self,
        engine: WorkflowEngine,
        actor: Actor,
        content_id: UUID,
        data: TransitionRequest | None = None,
    ) -> dict:
        return await self._transition(engine, actor, content_id, WorkflowAction.ARCHIVE, data)

    @get("/{content_id:uuid}/history")
    async def history(
        self, db_session: AsyncSession, engine: WorkflowEngine, actor: Actor, content_id: UUID
    ) -> list[dict]:
        """Review history, newest first, with actor names resolved."""
        await _get_visible(db_session, engine, actor, content_id)
        entries = await history_service.list_by_content(db_session, content_id)
        return [entry.to_dict() for entry in entries]

    @get("/{content_id:uuid}/versions")
    async def versions(
        self, db_session: AsyncSession, engine: WorkflowEngine, actor: Actor, content_id: UUID
    ) -> list[dict]:
        await _get_visible(db_session, engine, actor, content_id)
        versions = await version_service.list_versions(db_session, content_id)
        return [serialize_version(v) for v in versions]

    @post("/{content_id:uuid}/versions/{version:int}/restore", status_code=200)
    async def restore(
        self, engine: WorkflowEngine, actor: Actor, content_id: UUID, version: int
    ) -> dict:
        result = await version_service.restore_version(engine, content_id, version, actor)
        return serialize_content(result.unwrap())
