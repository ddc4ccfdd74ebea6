"""Authorization gate for catalog mutations.

Ownership rule: an entity may be modified by its creator or by a global
admin. Resources without per-row creators (job roles) are gated by the
role-capability table instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from coursepath.errors import ForbiddenError


class Role(str, Enum):
    """Admin roles."""

    GLOBAL_ADMIN = "global_admin"
    ADMIN = "admin"


# resource -> role required to mutate it at all
CAPABILITIES: dict[str, Role] = {
    "job_role": Role.GLOBAL_ADMIN,
}


@dataclass(frozen=True)
class Actor:
    """The authenticated user performing an operation.

    Attributes:
        username: Login name, recorded in created_by and audit rows.
        role: Admin role of the user.
    """

    username: str
    role: Role = Role.ADMIN

    @property
    def is_global_admin(self) -> bool:
        return self.role == Role.GLOBAL_ADMIN


def can_modify(username: str, created_by: str, role: Role | str) -> bool:
    """Return True iff the user is a global admin or created the entity."""
    if Role(role) == Role.GLOBAL_ADMIN:
        return True
    return username == created_by


def assert_can_modify(actor: Actor, created_by: str, entity_type: str, entity_name: str) -> None:
    """Raise ForbiddenError unless the actor may modify the entity.

    Args:
        actor: The acting user.
        created_by: Creator recorded on the entity.
        entity_type: Human-readable entity kind, e.g. "course".
        entity_name: Display name of the entity.

    Raises:
        ForbiddenError: If the actor is neither creator nor global admin.
    """
    if not can_modify(actor.username, created_by, actor.role):
        raise ForbiddenError(
            f"You do not have permission to modify this {entity_type}. Only the creator "
            f'({created_by}) or global admins can modify "{entity_name}".'
        )


def require_capability(actor: Actor, resource: str) -> None:
    """Raise ForbiddenError unless the actor holds the role a resource requires.

    Resources missing from CAPABILITIES are open to every admin.
    """
    required = CAPABILITIES.get(resource)
    if required is None:
        return
    if actor.role != required:
        raise ForbiddenError(
            f"Only {required.value} users can manage {resource.replace('_', ' ')}s"
        )
