"""Auth domain models for the authenticated principal."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Role hierarchy: admin > moderator > user."""

    admin = "admin"
    moderator = "moderator"
    user = "user"

    @property
    def level(self) -> int:
        """Return numeric level for comparison (higher = more privileges)."""
        return {
            Role.admin: 30,
            Role.moderator: 20,
            Role.user: 10,
        }[self]


@dataclass(frozen=True)
class Actor:
    """The principal performing an action.

    Supplied by the identity provider for every request and trusted as given;
    the core never mutates it.
    """

    id: str
    role: Role = Role.user

    def __post_init__(self) -> None:
        if isinstance(self.role, str) and not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role(self.role))

    @property
    def is_privileged(self) -> bool:
        return self.role.level >= Role.moderator.level
