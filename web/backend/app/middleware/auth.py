"""Auth middleware -- FastAPI dependencies for extracting the current actor.

Authentication happens upstream. The gateway forwards the verified identity
in two headers:

1. ``X-Actor-Id: <user id>``
2. ``X-Actor-Role: user | moderator | admin`` (defaults to ``user``)
"""

from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException, status

from freeco.auth.models import Actor, Role
from freeco.services import Services, build_services

# Shared services instance
_services: Optional[Services] = None


def get_services() -> Services:
    """Return the singleton Services instance."""
    global _services
    if _services is None:
        _services = build_services()
    return _services


def set_services(services: Optional[Services]) -> None:
    """Replace the singleton, e.g. with services rooted at a temp directory."""
    global _services
    _services = services


def actor_from_headers(actor_id: Optional[str], actor_role: Optional[str]) -> Optional[Actor]:
    """Build an Actor from raw header values, or None if they are unusable."""
    if not actor_id or not actor_id.strip():
        return None
    try:
        role = Role((actor_role or Role.user.value).strip().lower())
    except ValueError:
        return None
    return Actor(id=actor_id.strip(), role=role)


async def get_current_actor(
    x_actor_id: Optional[str] = Header(None, alias="X-Actor-Id"),
    x_actor_role: Optional[str] = Header(None, alias="X-Actor-Role"),
) -> Actor:
    """FastAPI dependency that returns the caller's identity.

    Raises ``401 Unauthorized`` if the identity headers are missing or carry
    an unknown role.
    """
    actor = actor_from_headers(x_actor_id, x_actor_role)
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return actor
