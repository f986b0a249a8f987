"""Workflow engine: validates and commits content transitions.

Every operation returns a ``TransitionResult`` instead of raising. A
transition reads the item, consults the access guard and the transition
table, and then writes the new status, the history entry and (for updates)
the version snapshot in a single transaction guarded by a compare-and-set on
``(id, status, version)``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from folio.db.models import ContentItem
from folio.db.services import content_service, history_service, version_service
from folio.lib import observability
from folio.lib.hooks import (
    AFTER_CONTENT_CREATE,
    AFTER_CONTENT_DELETE,
    AFTER_CONTENT_TRANSITION,
    hooks,
)
from folio.workflow.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    PersistenceError,
    ValidationError,
    WorkflowError,
)
from folio.workflow.guards import AccessGuard, Actor, RoleAccessGuard
from folio.workflow.results import TransitionResult
from folio.workflow.states import (
    ContentStatus,
    HistoryAction,
    Transition,
    WorkflowAction,
    get_transition,
    resolve_target,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_UPDATE_FIELDS = ("title", "body", "scheduled_publish_at", "expiration_date")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


async def notify(hook_name: str, *args: Any) -> None:
    """Fire an action hook for work that has already been committed.

    A raising callback is logged and reported; it never turns a committed
    write into a failure.
    """
    try:
        await hooks.do_action(hook_name, *args)
    except Exception:
        observability.record_exception(
            logger, "Hook {hook} failed", "%s callback failed", hook_name, hook=hook_name
        )


def _validate_schedule(publish_at: datetime | None, expires_at: datetime | None) -> None:
    if publish_at is not None and expires_at is not None and expires_at <= publish_at:
        raise ValidationError("Expiration date must be after the scheduled publish time")


class _ContentLocks:
    """One asyncio lock per content id, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._users: dict[UUID, int] = {}

    @asynccontextmanager
    async def hold(self, content_id: UUID):
        lock = self._locks.setdefault(content_id, asyncio.Lock())
        self._users[content_id] = self._users.get(content_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[content_id] -= 1
            if not self._users[content_id]:
                del self._users[content_id]
                del self._locks[content_id]

    def __len__(self) -> int:
        return len(self._locks)


class WorkflowEngine:
    """Owns the content state machine.

    Args:
        session_maker: Factory for async sessions; each attempt uses its own session
        guard: Access policy consulted before every write
        timeout: Seconds allowed for one attempt before it is rolled back
        max_retries: Extra attempts made after a compare-and-set conflict
        clock: Returns the current time as an aware datetime
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        guard: AccessGuard | None = None,
        *,
        timeout: float = 10.0,
        max_retries: int = 3,
        clock: Clock | None = None,
    ) -> None:
        self.session_maker = session_maker
        self.guard = guard or RoleAccessGuard()
        self.timeout = timeout
        self.max_retries = max_retries
        self._clock = clock or utcnow
        self._locks = _ContentLocks()

    def now(self) -> datetime:
        return as_utc(self._clock())

    async def create(
        self,
        actor: Actor,
        title: str,
        body: str,
        scheduled_publish_at: datetime | None = None,
        expiration_date: datetime | None = None,
    ) -> TransitionResult:
        """Create a draft at version 1 with its first snapshot and a ``created`` entry."""
        if not self.guard.can_create(actor):
            return TransitionResult.failure(
                PermissionDeniedError(f"{actor.name or actor.id} may not create content")
            )
        if not title or not title.strip():
            return TransitionResult.failure(ValidationError("Title is required"))
        if not body or not body.strip():
            return TransitionResult.failure(ValidationError("Content body is required"))

        publish_at = as_utc(scheduled_publish_at)
        expires_at = as_utc(expiration_date)
        try:
            _validate_schedule(publish_at, expires_at)
        except ValidationError as exc:
            return TransitionResult.failure(exc)

        async def work(session: AsyncSession) -> ContentItem:
            now = self.now()
            item = ContentItem(
                title=title.strip(),
                content=body,
                status=ContentStatus.DRAFT.value,
                version=1,
                created_by=actor.id,
                last_modified_by=actor.id,
                scheduled_publish_at=publish_at,
                expiration_date=expires_at,
            )
            item.created_at = now
            item.updated_at = now
            session.add(item)
            await session.flush()

            await version_service.snapshot(session, item.id, item.content, actor.id, created_at=now)
            await history_service.append(
                session, item.id, actor.id, HistoryAction.CREATED, "Initial creation", at=now
            )
            return item

        with observability.span("workflow.create", actor=str(actor.id)):
            result = await self._run(work, "create")

        if result.ok:
            logger.info("Content %s created by %s", result.content.id, actor.name or actor.id)
            await notify(AFTER_CONTENT_CREATE, result.content, actor)
        return result

    async def transition(
        self,
        content_id: UUID,
        action: WorkflowAction | str,
        actor: Actor,
        payload: Mapping[str, Any] | None = None,
    ) -> TransitionResult:
        """Apply one workflow action to a content item.

        Checks run in order: the item must exist, the guard must allow the
        actor, the action must be an edge out of the current status, and the
        payload must be valid. Nothing is written unless all of them pass.
        """
        try:
            action = WorkflowAction(action)
        except ValueError:
            return TransitionResult.failure(ValidationError(f"Unknown workflow action: {action}"))
        payload = dict(payload or {})

        async def work(session: AsyncSession) -> ContentItem:
            return await self._apply(session, content_id, action, actor, payload)

        with observability.span(
            "workflow.transition",
            content_id=str(content_id),
            action=action.value,
            actor=actor.name or str(actor.id),
        ):
            async with self._locks.hold(content_id):
                result = await self._run(work, action.value)

        if result.ok:
            logger.info(
                "Content %s: %s by %s -> %s",
                content_id,
                action.value,
                actor.name or actor.id,
                result.content.status,
            )
            await notify(AFTER_CONTENT_TRANSITION, result.content, action, actor)
        else:
            logger.debug("Content %s: %s rejected: %s", content_id, action.value, result.error)
        return result

    async def delete(self, content_id: UUID, actor: Actor) -> TransitionResult:
        """Delete a content item with its versions and history.

        The result carries the deleted item as it was last read.
        """

        async def work(session: AsyncSession) -> ContentItem:
            item = await content_service.get_content_by_id(session, content_id)
            if item is None:
                raise NotFoundError(f"Content {content_id} not found")
            if not self.guard.can_delete(actor, item):
                raise PermissionDeniedError(f"{actor.name or actor.id} may not delete this content")
            if not await content_service.delete_content(session, content_id):
                raise ConflictError(f"Content {content_id} changed while deleting")
            return item

        async with self._locks.hold(content_id):
            result = await self._run(work, "delete")

        if result.ok:
            logger.info("Content %s deleted by %s", content_id, actor.name or actor.id)
            await notify(AFTER_CONTENT_DELETE, content_id, actor)
        return result

    async def _run(
        self,
        work: Callable[[AsyncSession], Awaitable[ContentItem]],
        operation: str,
    ) -> TransitionResult:
        conflict: ConflictError | None = None

        for attempt in range(self.max_retries + 1):
            try:
                item = await asyncio.wait_for(self._attempt(work), timeout=self.timeout)
            except ConflictError as exc:
                conflict = exc
            except IntegrityError as exc:
                conflict = ConflictError(f"Concurrent write detected during {operation}: {exc.orig}")
            except WorkflowError as exc:
                return TransitionResult.failure(exc)
            except asyncio.TimeoutError:
                error = PersistenceError(f"{operation} timed out after {self.timeout}s and was rolled back")
                observability.workflow_failure(logger, operation, error)
                return TransitionResult.failure(error)
            except SQLAlchemyError as exc:
                error = PersistenceError(f"{operation} failed in the database: {exc}")
                observability.workflow_failure(logger, operation, error)
                return TransitionResult.failure(error)
            else:
                return TransitionResult.success(item)

            logger.debug("%s conflict on attempt %d: %s", operation, attempt + 1, conflict)

        return TransitionResult.failure(conflict)

    async def _attempt(self, work: Callable[[AsyncSession], Awaitable[ContentItem]]) -> ContentItem:
        async with self.session_maker() as session:
            async with session.begin():
                return await work(session)

    async def _apply(
        self,
        session: AsyncSession,
        content_id: UUID,
        action: WorkflowAction,
        actor: Actor,
        payload: dict[str, Any],
    ) -> ContentItem:
        item = await content_service.get_content_by_id(session, content_id)
        if item is None:
            raise NotFoundError(f"Content {content_id} not found")

        if not self.guard.can_transition(actor, item, action):
            raise PermissionDeniedError(
                f"{actor.name or actor.id} may not {action.value} this content"
            )

        transition = get_transition(action)
        status = item.content_status
        if status not in transition.sources:
            raise InvalidTransitionError(
                f"Cannot {action.value} content in status '{status.value}'"
            )

        now = self.now()
        self._check_due(item, action, now)
        target, history_action, default_comment = resolve_target(
            transition, item.scheduled_publish_at, now
        )
        comment = self._comment(transition, payload, default_comment)

        values: dict[str, Any] = {"status": target.value, "updated_at": now}
        if actor.id is not None:
            values["last_modified_by"] = actor.id

        if action is WorkflowAction.UPDATE:
            values.update(self._update_values(item, payload))
        if target is ContentStatus.PUBLISHED:
            values.update(published_at=now, archived_at=None, archive_reason=None)
        elif target is ContentStatus.ARCHIVED:
            values.update(archived_at=now, published_at=None, archive_reason=comment)

        if not await content_service.compare_and_set(
            session, item.id, status, item.version, values
        ):
            raise ConflictError(
                f"Content {content_id} changed while applying {action.value}; expected "
                f"status '{status.value}' at version {item.version}"
            )

        if action is WorkflowAction.UPDATE:
            await version_service.snapshot(
                session, item.id, values["content"], actor.id, created_at=now
            )
        await history_service.append(session, item.id, actor.id, history_action, comment, at=now)

        await session.refresh(item)
        return item

    @staticmethod
    def _check_due(item: ContentItem, action: WorkflowAction, now: datetime) -> None:
        if action is WorkflowAction.PUBLISH:
            due_at = item.scheduled_publish_at
        elif action is WorkflowAction.EXPIRE:
            due_at = item.expiration_date
        else:
            return
        if due_at is None or due_at > now:
            raise InvalidTransitionError(f"Content {item.id} is not due to {action.value}")

    @staticmethod
    def _comment(
        transition: Transition,
        payload: dict[str, Any],
        default: str | None,
    ) -> str | None:
        comments = (payload.get("comments") or "").strip()
        if transition.action is WorkflowAction.ARCHIVE:
            comments = (payload.get("reason") or "").strip() or comments
        if transition.requires_comment and not comments:
            raise ValidationError(f"Comments are required to {transition.action.value.replace('_', ' ')}")
        return comments or default

    @staticmethod
    def _update_values(item: ContentItem, payload: dict[str, Any]) -> dict[str, Any]:
        """Validate an update payload and build the new column values.

        Absent keys keep their current value; explicit ``None`` clears a date.
        Every update produces a new version, even when the body is unchanged.
        """
        if not any(key in payload for key in _UPDATE_FIELDS):
            raise ValidationError("Nothing to update")

        title = payload.get("title", item.title)
        body = payload.get("body", item.content)
        if title is None or not str(title).strip():
            raise ValidationError("Title cannot be empty")
        if body is None or not str(body).strip():
            raise ValidationError("Content body cannot be empty")

        publish_at = as_utc(payload.get("scheduled_publish_at", item.scheduled_publish_at))
        expires_at = as_utc(payload.get("expiration_date", item.expiration_date))
        _validate_schedule(publish_at, expires_at)

        return {
            "title": str(title).strip(),
            "content": str(body),
            "scheduled_publish_at": publish_at,
            "expiration_date": expires_at,
            "version": item.version + 1,
        }
