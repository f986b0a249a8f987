"""Role definitions for the editorial workflow."""

from __future__ import annotations

from dataclasses import dataclass, field

# The "administrator" permission is special - it satisfies every permission check
ADMINISTRATOR_PERMISSION = "administrator"
REVIEW_CONTENT = "review-content"
CREATE_CONTENT = "create-content"
RUN_SCHEDULER = "run-scheduler"


@dataclass
class RoleDefinition:
    """Definition of a role with its permissions."""

    name: str
    permissions: set[str] = field(default_factory=set)
    display_name: str | None = None
    description: str | None = None

    def grants(self, permission: str) -> bool:
        return ADMINISTRATOR_PERMISSION in self.permissions or permission in self.permissions


def create_role(
    name: str,
    *permissions: str,
    display_name: str | None = None,
    description: str | None = None,
) -> RoleDefinition:
    """Create a role definition with the given permissions.

    Args:
        name: The unique identifier for the role
        *permissions: Permission strings granted by this role
        display_name: Human-readable name for the role
        description: Description of the role's purpose

    Returns:
        A RoleDefinition instance
    """
    return RoleDefinition(
        name=name,
        permissions=set(permissions),
        display_name=display_name or name.title(),
        description=description,
    )


ADMIN = create_role(
    "admin",
    ADMINISTRATOR_PERMISSION,
    REVIEW_CONTENT,
    CREATE_CONTENT,
    RUN_SCHEDULER,
    display_name="Administrator",
    description="Full access including the scheduler",
)

EDITOR = create_role(
    "editor",
    REVIEW_CONTENT,
    CREATE_CONTENT,
    display_name="Editor",
    description="Can review, approve and manage all content",
)

AUTHOR = create_role(
    "author",
    CREATE_CONTENT,
    display_name="Author",
    description="Can write and submit own content",
)

# Registry of all role definitions
ROLE_DEFINITIONS: dict[str, RoleDefinition] = {
    role.name: role for role in [ADMIN, EDITOR, AUTHOR]
}


def get_role_definition(name: str) -> RoleDefinition | None:
    """Get a role definition by name."""
    return ROLE_DEFINITIONS.get(name)


def role_grants(role_name: str | None, permission: str) -> bool:
    """Check whether the named role grants a permission. Unknown roles grant nothing."""
    role = get_role_definition(role_name) if role_name else None
    return role is not None and role.grants(permission)


def register_role(
    name: str,
    *permissions: str,
    display_name: str | None = None,
    description: str | None = None,
) -> RoleDefinition:
    """Register a custom role definition.

    Call this during application startup, before any user with the role
    attempts a transition.

    Example:
        from folio.auth.roles import register_role, REVIEW_CONTENT

        register_role(
            "copy-chief",
            REVIEW_CONTENT,
            display_name="Copy Chief",
            description="Reviews content without managing the scheduler",
        )
    """
    role = create_role(
        name,
        *permissions,
        display_name=display_name,
        description=description,
    )
    ROLE_DEFINITIONS[role.name] = role
    return role
