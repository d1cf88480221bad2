"""Moderation engine -- applies status-machine plans to stored entities.

Three contracts:

- ``moderate``: one transition on one entity by a moderator or admin.
- ``self_update`` / ``self_deactivate``: owner-only edits of their own
  listing or interest. No audit stamp, no notifications.
- ``bulk_moderate``: one action over a set of ids, applied as a single
  batched store write. The observable outcome equals calling ``moderate``
  once per existing id.

Status, ``moderated_by``, ``moderated_at`` and ``rejection_reason`` are
always committed by a single store write. Notifications are dispatched after
that write and are best-effort: a failed dispatch is logged and never undoes
the transition.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Iterable, Optional, TypeVar

from freeco import settings
from freeco.auth.models import Actor, Role
from freeco.config.system_config import SystemConfigStore
from freeco.entities.models import (
    Entity,
    EntityFamily,
    Interest,
    Listing,
    ListingStatus,
    details_from_dict,
    parse_family,
)
from freeco.entities.store import EntityStore
from freeco.moderation.errors import (
    Forbidden,
    InvalidAction,
    ModerationTimeout,
    NotFound,
    ValidationError,
)
from freeco.moderation.status_machine import (
    Action,
    NotificationEvent,
    TransitionPlan,
    authorize,
    evaluate,
    fan_out,
)
from freeco.notifications.dispatcher import NotificationDispatcher
from freeco.security.audit_log import AuditLogger

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,63}$")

_PAST_TENSE = {
    Action.approve: "approved",
    Action.reject: "rejected",
    Action.activate: "activated",
    Action.deactivate: "deactivated",
    Action.suspend: "suspended",
    Action.delete: "deleted",
    Action.set_role: "role updated",
}

# Field naming the owner of each family. A user owns their own record.
_OWNER_FIELD = {
    EntityFamily.user: "id",
    EntityFamily.listing: "user",
    EntityFamily.interest: "sender",
}

_SELF_SERVICE = frozenset({EntityFamily.listing, EntityFamily.interest})

# Stripped from every self-submitted update.
_RESERVED_FIELDS = frozenset({
    "id", "user", "created_at", "updated_at", "status", "listing_type",
    "sender", "receiver", "listing", "moderated_by", "moderated_at",
    "rejection_reason", "expires_at",
})

_STR_FIELDS = frozenset({"title", "description", "message"})


@dataclass
class ModerationResult:
    """Outcome of a single-item operation."""

    success: bool
    message: str
    entity: Optional[Entity] = None
    notifications_sent: int = 0


@dataclass
class BulkResult:
    """Outcome of a bulk operation.

    ``matched_count`` is the number of entities actually changed or deleted,
    never the size of the request.
    """

    success: bool
    message: str
    matched_count: int = 0
    requested_count: int = 0
    notifications_sent: int = 0


def validate_ids(entity_ids: Iterable[str]) -> list[str]:
    """Return the distinct ids in request order.

    Raises ``ValidationError`` for an empty collection or any value that is
    not a syntactically valid id.
    """
    if entity_ids is None or isinstance(entity_ids, (str, bytes)):
        raise ValidationError("Entity ids must be a collection of identifiers")
    ids: list[str] = []
    invalid: list[Any] = []
    for value in entity_ids:
        if isinstance(value, str) and _ID_PATTERN.match(value):
            if value not in ids:
                ids.append(value)
        else:
            invalid.append(value)
    if invalid:
        raise ValidationError("Some IDs are invalid", details={"invalid": [str(v) for v in invalid]})
    if not ids:
        raise ValidationError("At least one entity id is required")
    return ids


class ModerationEngine:
    """Single writer of moderation state for all three entity families."""

    def __init__(
        self,
        store: EntityStore,
        dispatcher: NotificationDispatcher,
        audit: Optional[AuditLogger] = None,
        timeout: Optional[float] = None,
        config: Optional[SystemConfigStore] = None,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._audit = audit
        self._config = config
        self._timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT

    @property
    def store(self) -> EntityStore:
        return self._store

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _bounded(self, coro: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(coro, timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.error("Moderation request exceeded %.1fs deadline", self._timeout)
            raise ModerationTimeout("Request timed out, please retry")

    async def _notify_one(self, event: NotificationEvent) -> bool:
        try:
            await self._dispatcher.notify(
                event.recipient_id, event.event_type, event.message, event.related
            )
            return True
        except Exception:
            logger.warning(
                "Failed to dispatch %s to %s for %s %s",
                event.event_type, event.recipient_id,
                event.related.family.value, event.related.id,
                exc_info=True,
            )
            return False

    async def _dispatch(self, events: list[NotificationEvent]) -> int:
        """Dispatch *events* concurrently. Returns how many were recorded."""
        if not events:
            return 0
        try:
            results = await asyncio.wait_for(
                asyncio.gather(*(self._notify_one(e) for e in events)),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Notification dispatch timed out for %d events", len(events))
            return 0
        return sum(results)

    async def _record(
        self,
        actor: Actor,
        plan: TransitionPlan,
        entity_ids: list[str],
        matched: int,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        if self._audit is None:
            return
        payload = dict(details or {})
        if plan.new_status is not None:
            payload["to_status"] = plan.new_status.value
        if plan.rejection_reason is not None:
            payload["reason"] = plan.rejection_reason
        if plan.role is not None:
            payload["role"] = plan.role.value
        try:
            await asyncio.to_thread(
                self._audit.log_event,
                actor.id, actor.role.value, plan.action.value, plan.family.value,
                entity_ids, matched, payload,
            )
        except OSError:
            logger.error("Failed to write audit entry for %s", plan.action.value, exc_info=True)

    @staticmethod
    def _family(family: EntityFamily | str) -> EntityFamily:
        return family if isinstance(family, EntityFamily) else parse_family(family)

    async def _load(self, family: EntityFamily, entity_id: str) -> Entity:
        entity = await self._store.find_by_id(family, entity_id)
        if entity is None:
            raise NotFound(f"{family.label} not found")
        return entity

    @staticmethod
    def _check_not_owner(family: EntityFamily, entity: Entity, actor: Actor) -> None:
        if getattr(entity, _OWNER_FIELD[family]) == actor.id:
            raise Forbidden(f"You cannot moderate your own {family.value}")

    async def _owned_ids(self, family: EntityFamily, ids: list[str], actor: Actor) -> set[str]:
        if family is EntityFamily.user:
            return {actor.id} & set(ids)
        owned = await self._store.find_all(family, {_OWNER_FIELD[family]: actor.id})
        return {entity.id for entity in owned} & set(ids)

    # ------------------------------------------------------------------
    # Single-item moderation
    # ------------------------------------------------------------------

    async def moderate(
        self,
        family: EntityFamily | str,
        entity_id: str,
        action: Action | str,
        actor: Actor,
        reason: Optional[str] = None,
        role: Optional[Role | str] = None,
    ) -> ModerationResult:
        """Apply one moderation action to one entity."""
        family = self._family(family)
        action = authorize(family, action, actor)
        plan, entity, previous = await self._bounded(
            self._apply_one(family, entity_id, action, actor, reason, role)
        )
        sent = await self._dispatch(plan.notifications)
        await self._record(actor, plan, [entity_id], 1, {"from_status": previous})
        logger.info(
            "%s %s %s by %s (%s)", family.label, entity_id, _PAST_TENSE[action], actor.id, actor.role.value
        )
        return ModerationResult(
            success=True,
            message=f"{family.label} {_PAST_TENSE[action]}",
            entity=entity,
            notifications_sent=sent,
        )

    async def _apply_one(
        self,
        family: EntityFamily,
        entity_id: str,
        action: Action,
        actor: Actor,
        reason: Optional[str],
        role: Optional[Role | str],
    ) -> tuple[TransitionPlan, Entity, str]:
        current = await self._load(family, entity_id)
        self._check_not_owner(family, current, actor)
        previous = current.status.value
        plan = evaluate(
            family, action, actor,
            current_status=previous, reason=reason, role=role,
        )

        if plan.is_delete:
            deleted = await self._store.delete_many(family, [entity_id])
            if not deleted:
                raise NotFound(f"{family.label} not found")
            return plan, current, previous

        updated = await self._store.update_one(family, entity_id, plan.patch())
        if updated is None:
            raise NotFound(f"{family.label} not found")
        plan.notifications = fan_out(plan, updated)
        return plan, updated, previous

    # ------------------------------------------------------------------
    # Owner self-service
    # ------------------------------------------------------------------

    async def _load_owned(self, family: EntityFamily, entity_id: str, actor: Actor) -> Entity:
        if family not in _SELF_SERVICE:
            raise InvalidAction(f"{family.label}s cannot be self-serviced")
        entity = await self._load(family, entity_id)
        if getattr(entity, _OWNER_FIELD[family]) != actor.id:
            raise Forbidden(f"You are not authorized to modify this {family.value}")
        return entity

    async def _max_images(self) -> Optional[int]:
        if self._config is None:
            return None
        return (await self._config.get()).max_images_per_ad

    def _clean_changes(
        self, entity: Entity, changes: dict[str, Any], max_images: Optional[int] = None
    ) -> dict[str, Any]:
        if not isinstance(changes, dict):
            raise ValidationError("Update payload must be an object")
        clean = {k: v for k, v in changes.items() if k not in _RESERVED_FIELDS}
        for key in _STR_FIELDS & set(clean):
            if not isinstance(clean[key], str):
                raise ValidationError(f"Field '{key}' must be a string")
        if "title" in clean:
            if not clean["title"].strip():
                raise ValidationError("Title is required")
            clean["title"] = clean["title"].strip()
        if "images" in clean:
            images = clean["images"]
            if not isinstance(images, list) or not all(isinstance(i, str) for i in images):
                raise ValidationError("Field 'images' must be a list of URLs")
            if max_images is not None and len(images) > max_images:
                raise ValidationError(f"A listing may have at most {max_images} images")
        if "details" in clean:
            if not isinstance(entity, Listing) or not isinstance(clean["details"], dict):
                raise ValidationError("Field 'details' must be an object")
            merged = {**asdict(entity.details), **clean["details"]}
            clean["details"] = asdict(details_from_dict(entity.listing_type, merged))
        return clean

    async def self_update(
        self,
        family: EntityFamily | str,
        entity_id: str,
        actor: Actor,
        changes: dict[str, Any],
    ) -> ModerationResult:
        """Edit mutable fields of the actor's own listing or interest."""
        family = self._family(family)

        async def apply() -> Entity:
            entity = await self._load_owned(family, entity_id, actor)
            clean = self._clean_changes(entity, changes, await self._max_images())
            if not clean:
                raise ValidationError("No updatable fields supplied")
            updated = await self._store.update_one(family, entity_id, clean)
            if updated is None:
                raise NotFound(f"{family.label} not found")
            return updated

        updated = await self._bounded(apply())
        logger.info("%s %s updated by owner %s", family.label, entity_id, actor.id)
        return ModerationResult(success=True, message=f"{family.label} updated", entity=updated)

    async def self_deactivate(
        self,
        family: EntityFamily | str,
        entity_id: str,
        actor: Actor,
    ) -> ModerationResult:
        """Soft-delete the actor's own listing by marking it inactive."""
        family = self._family(family)
        if family is not EntityFamily.listing:
            raise InvalidAction(f"{family.label}s have no inactive status")

        async def apply() -> Entity:
            await self._load_owned(family, entity_id, actor)
            updated = await self._store.update_one(
                family, entity_id, {"status": ListingStatus.inactive}
            )
            if updated is None:
                raise NotFound(f"{family.label} not found")
            return updated

        updated = await self._bounded(apply())
        logger.info("%s %s deactivated by owner %s", family.label, entity_id, actor.id)
        return ModerationResult(
            success=True,
            message=f"{family.label} successfully marked as inactive",
            entity=updated,
        )

    # ------------------------------------------------------------------
    # Bulk moderation
    # ------------------------------------------------------------------

    async def bulk_moderate(
        self,
        family: EntityFamily | str,
        entity_ids: Iterable[str],
        action: Action | str,
        actor: Actor,
        reason: Optional[str] = None,
        role: Optional[Role | str] = None,
    ) -> BulkResult:
        """Apply one action to a set of ids in a single batched write.

        Unknown ids are skipped silently, as are ids the actor owns.
        Structural problems (bad ids, illegal action, insufficient role)
        reject the whole request before the store is touched.
        """
        family = self._family(family)
        ids = validate_ids(entity_ids)
        action = authorize(family, action, actor)
        plan = evaluate(family, action, actor, reason=reason, role=role)

        async def apply() -> tuple[int, list[Entity]]:
            owned = await self._owned_ids(family, ids, actor)
            if owned:
                logger.warning(
                    "Skipping %d %ss owned by %s in bulk %s", len(owned), family.value, actor.id, action.value
                )
            targets = [i for i in ids if i not in owned]
            if not targets:
                return 0, []
            if plan.is_delete:
                return await self._store.delete_many(family, targets), []
            updated = await self._store.update_many(family, targets, plan.patch())
            return len(updated), updated

        matched, updated = await self._bounded(apply())

        events = [event for entity in updated for event in fan_out(plan, entity)]
        sent = await self._dispatch(events)
        await self._record(actor, plan, ids, matched)
        logger.info(
            "Bulk %s on %d/%d %ss by %s", action.value, matched, len(ids), family.value, actor.id
        )
        return BulkResult(
            success=True,
            message=f"{matched} {family.value}s {_PAST_TENSE[action]}",
            matched_count=matched,
            requested_count=len(ids),
            notifications_sent=sent,
        )
