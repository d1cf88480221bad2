"""Read-only moderation views over the entity store.

Every view requires a moderator or admin, the same rule the moderation
engine applies to transitions. Users read their own notifications through
:class:`NotificationInbox`.
"""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass, field
from typing import Any, Optional

from freeco.auth.models import Actor, Role
from freeco.auth.permissions import require_role
from freeco.entities.models import (
    Entity,
    EntityFamily,
    ListingType,
    parse_family,
    parse_listing_type,
)
from freeco.entities.store import EntityStore
from freeco.moderation.errors import NotFound, ValidationError
from freeco.notifications.dispatcher import Notification, NotificationStore


@dataclass
class Page:
    """One page of a filtered listing."""

    items: list[Any] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 10

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


class ModerationQueries:
    """Filtered, paginated moderation queues and dashboard counts."""

    def __init__(self, store: EntityStore) -> None:
        self._store = store

    async def list_entities(
        self,
        actor: Actor,
        family: EntityFamily | str,
        status: Optional[str] = "pending",
        listing_type: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
        role: Optional[str] = None,
    ) -> Page:
        """Return one page of *family*, newest first.

        ``status="all"`` (or None) disables the status filter; likewise
        ``listing_type="all"`` and ``role="all"``. ``role`` only applies to
        users.
        """
        require_role(actor, Role.moderator)
        family = family if isinstance(family, EntityFamily) else parse_family(family)

        flt: dict[str, Any] = {}
        if status and status != "all":
            flt["status"] = family.parse_status(status)
        if listing_type and listing_type != "all":
            if family is not EntityFamily.listing:
                raise ValidationError("listing_type only applies to listings")
            flt["listing_type"] = parse_listing_type(listing_type)
        if role and role != "all":
            if family is not EntityFamily.user:
                raise ValidationError("role only applies to users")
            try:
                flt["role"] = Role(role)
            except ValueError:
                raise ValidationError(f"Invalid role: {role}")

        total, items = await asyncio.gather(
            self._store.count(family, flt),
            self._store.find_many(family, flt, page=page, limit=limit),
        )
        return Page(items=items, total=total, page=page, limit=limit)

    async def get_entity(self, actor: Actor, family: EntityFamily | str, entity_id: str) -> Entity:
        require_role(actor, Role.moderator)
        family = family if isinstance(family, EntityFamily) else parse_family(family)
        entity = await self._store.find_by_id(family, entity_id)
        if entity is None:
            raise NotFound(f"{family.label} not found")
        return entity

    async def dashboard(self, actor: Actor) -> dict[str, dict[str, int]]:
        """Counts per family per status, plus listings per listing type."""
        require_role(actor, Role.moderator)

        status_keys = [
            (family, status.value) for family in EntityFamily for status in family.status_enum
        ]
        type_keys = [t.value for t in ListingType]
        counts = await asyncio.gather(
            *(self._store.count(f, {"status": s}) for f, s in status_keys),
            *(self._store.count(EntityFamily.listing, {"listing_type": t}) for t in type_keys),
        )

        result: dict[str, dict[str, int]] = {f"{f.value}s": {} for f in EntityFamily}
        for (family, status), n in zip(status_keys, counts):
            result[f"{family.value}s"][status] = n
        for family in EntityFamily:
            result[f"{family.value}s"]["total"] = sum(result[f"{family.value}s"].values())
        result["listing_types"] = dict(zip(type_keys, counts[len(status_keys):]))
        return result


class NotificationInbox:
    """A user's view of their own notifications."""

    def __init__(self, notifications: NotificationStore) -> None:
        self._notifications = notifications

    async def list_for(self, actor: Actor, unread_only: bool = False) -> list[Notification]:
        return await self._notifications.list_for(actor.id, unread_only=unread_only)

    async def mark_read(self, actor: Actor, notification_id: str) -> Notification:
        notification = await self._notifications.mark_read(actor.id, notification_id)
        if notification is None:
            raise NotFound("Notification not found")
        return notification
