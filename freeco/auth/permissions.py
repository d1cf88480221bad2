"""Role-based access control (RBAC) logic.

Role hierarchy: admin > moderator > user
"""

from __future__ import annotations

from freeco.auth.models import Actor, Role
from freeco.moderation.errors import Unauthorized


def has_permission(actor: Actor, required_role: Role) -> bool:
    """Check if an actor's role meets or exceeds the required role level.

    Parameters
    ----------
    actor:
        The authenticated actor to check.
    required_role:
        The minimum role required.

    Returns
    -------
    bool
        True if actor's role level >= required role level.
    """
    actor_role = actor.role if isinstance(actor.role, Role) else Role(actor.role)
    return actor_role.level >= required_role.level


def require_role(actor: Actor, role: Role) -> None:
    """Validate that an actor has at least the given role.

    Raises ``Unauthorized`` if the actor lacks the required role.
    """
    if not has_permission(actor, role):
        raise Unauthorized(f"Requires role '{role.value}' or higher")
