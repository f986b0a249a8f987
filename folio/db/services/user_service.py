"""User lookups used to resolve actors."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from folio.auth.roles import ROLE_DEFINITIONS
from folio.db.models import User


async def get_user_by_id(db_session: AsyncSession, user_id: UUID) -> User | None:
    result = await db_session.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def create_user(
    db_session: AsyncSession,
    username: str,
    role: str = "author",
    display_name: str | None = None,
) -> User:
    """Create a user with a known role.

    Raises:
        ValueError: If the role is not registered.
    """
    if role not in ROLE_DEFINITIONS:
        raise ValueError(f"Unknown role: {role}")

    user = User(username=username, role=role, display_name=display_name)
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user
