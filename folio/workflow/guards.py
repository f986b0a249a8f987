"""Access guards deciding who may invoke which workflow transition.

The engine only talks to the ``AccessGuard`` protocol. ``RoleAccessGuard`` is
the default policy; a deployment can point ``workflow.access_guard`` at any
other ``module:ClassName`` implementing the protocol.
"""

from __future__ import annotations

import importlib
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable
from uuid import UUID

from folio.auth.roles import CREATE_CONTENT, REVIEW_CONTENT, role_grants
from folio.workflow.states import GuardKind, WorkflowAction, get_transition

if TYPE_CHECKING:
    from folio.db.models import ContentItem, User


@dataclass(frozen=True)
class Actor:
    """The identity attempting a transition."""

    id: UUID | None
    role: str | None = None
    name: str = ""
    is_system: bool = False
    extra_permissions: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_user(cls, user: User) -> Actor:
        return cls(id=user.id, role=user.role, name=user.name)

    def has_permission(self, permission: str) -> bool:
        return permission in self.extra_permissions or role_grants(self.role, permission)

    @property
    def is_privileged(self) -> bool:
        return not self.is_system and self.has_permission(REVIEW_CONTENT)

    def owns(self, item: ContentItem) -> bool:
        return self.id is not None and item.created_by == self.id


SCHEDULER_ACTOR = Actor(id=None, role=None, name="Scheduler", is_system=True)


@runtime_checkable
class AccessGuard(Protocol):
    """Policy interface consulted before every transition."""

    def can_create(self, actor: Actor) -> bool: ...

    def can_transition(self, actor: Actor, item: ContentItem, action: WorkflowAction) -> bool: ...

    def can_delete(self, actor: Actor, item: ContentItem) -> bool: ...

    def can_view(self, actor: Actor, item: ContentItem) -> bool: ...


class RoleAccessGuard:
    """Owner-or-privileged policy backed by role definitions.

    - owners may update, submit, archive and delete their own content
    - privileged actors (``review-content``) may do every user action
    - the scheduler may publish and expire, and nothing else
    """

    def can_create(self, actor: Actor) -> bool:
        return not actor.is_system and actor.has_permission(CREATE_CONTENT)

    def can_transition(self, actor: Actor, item: ContentItem, action: WorkflowAction) -> bool:
        guard = get_transition(action).guard

        if guard is GuardKind.SCHEDULER:
            return actor.is_system
        if actor.is_system:
            return False
        if guard is GuardKind.PRIVILEGED:
            return actor.is_privileged
        return actor.is_privileged or actor.owns(item)

    def can_delete(self, actor: Actor, item: ContentItem) -> bool:
        if actor.is_system:
            return False
        return actor.is_privileged or actor.owns(item)

    def can_view(self, actor: Actor, item: ContentItem) -> bool:
        return actor.is_system or actor.is_privileged or actor.owns(item)


def load_guard(spec: str) -> AccessGuard:
    """Instantiate an access guard from a 'module:ClassName' string."""
    if ":" not in spec:
        raise ValueError(
            f"Invalid guard spec '{spec}': must be in format 'module:ClassName'"
        )
    parts = spec.split(":")
    if len(parts) != 2:
        raise ValueError(
            f"Invalid guard spec '{spec}': must contain exactly one colon"
        )
    module_path, class_name = parts
    module = importlib.import_module(module_path)
    guard = getattr(module, class_name)()
    if not isinstance(guard, AccessGuard):
        raise TypeError(f"{spec} does not implement the AccessGuard protocol")
    return guard
