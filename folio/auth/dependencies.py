"""Request dependencies resolving the acting user."""

from uuid import UUID

from litestar import Request
from litestar.datastructures import State
from litestar.exceptions import NotAuthorizedException
from sqlalchemy.ext.asyncio import AsyncSession

from folio.auth.session_keys import SESSION_USER_ID
from folio.db.services.user_service import get_user_by_id
from folio.workflow.engine import WorkflowEngine
from folio.workflow.errors import PermissionDeniedError
from folio.workflow.guards import Actor
from folio.workflow.scheduler import ContentScheduler


async def provide_actor(request: Request, db_session: AsyncSession) -> Actor:
    """Resolve the session user into an Actor, or reject the request with 401."""
    raw_id = request.session.get(SESSION_USER_ID)
    if not raw_id:
        raise NotAuthorizedException("Authentication required")

    try:
        user_id = UUID(str(raw_id))
    except ValueError:
        raise NotAuthorizedException("Invalid session") from None

    user = await get_user_by_id(db_session, user_id)
    if user is None or not user.is_active:
        raise NotAuthorizedException("Unknown or inactive user")
    return Actor.from_user(user)


def provide_engine(state: State) -> WorkflowEngine:
    return state.engine


def provide_scheduler(state: State) -> ContentScheduler:
    return state.scheduler


def require_permission(actor: Actor, permission: str) -> None:
    """Raise PermissionDeniedError unless the actor holds ``permission``."""
    if not actor.has_permission(permission):
        raise PermissionDeniedError(f"Permission '{permission}' required")
