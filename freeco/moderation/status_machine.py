"""Status machine -- legal transitions and their obligations per entity family.

Pure logic: given a family, an action and the acting role, decide whether the
transition is legal, which audit fields to stamp, and which notifications the
transition owes. Nothing here touches the store.

Transitions are valid from *any* current status into the target status. A
previously rejected listing can be approved straight to ``active``;
re-moderation depends on this.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from freeco.auth.models import Actor, Role
from freeco.auth.permissions import has_permission
from freeco.entities.models import (
    Entity,
    EntityFamily,
    Interest,
    InterestStatus,
    Listing,
    ListingStatus,
    User,
    UserStatus,
)
from freeco.moderation.errors import InvalidAction, Unauthorized, ValidationError
from freeco.notifications.dispatcher import RelatedEntity

DEFAULT_REJECTION_REASON = "Did not meet community guidelines"


class Action(str, Enum):
    """Moderation vocabulary. Each family accepts a subset."""

    approve = "approve"
    reject = "reject"
    activate = "activate"
    deactivate = "deactivate"
    suspend = "suspend"
    delete = "delete"
    set_role = "set_role"


# Target status per (family, action). ``None`` means the action does not
# change status (delete removes the entity, set_role changes the role).
_TRANSITIONS: dict[EntityFamily, dict[Action, Optional[Enum]]] = {
    EntityFamily.user: {
        Action.approve: UserStatus.active,
        Action.reject: UserStatus.rejected,
        Action.activate: UserStatus.active,
        Action.deactivate: UserStatus.inactive,
        Action.suspend: UserStatus.suspended,
        Action.delete: None,
        Action.set_role: None,
    },
    EntityFamily.listing: {
        Action.approve: ListingStatus.active,
        Action.reject: ListingStatus.rejected,
        Action.activate: ListingStatus.active,
        Action.deactivate: ListingStatus.inactive,
        Action.delete: None,
    },
    EntityFamily.interest: {
        Action.approve: InterestStatus.accepted,
        Action.reject: InterestStatus.rejected,
        Action.delete: None,
    },
}

# Minimum role per action; anything not listed needs a moderator.
_REQUIRED_ROLE: dict[Action, Role] = {
    Action.set_role: Role.admin,
}


@dataclass(frozen=True)
class AuditStamp:
    """The ``(moderated_by, moderated_at)`` pair written by every transition."""

    moderated_by: str
    moderated_at: str


@dataclass(frozen=True)
class NotificationEvent:
    """A notification owed to one recipient by a transition."""

    recipient_id: str
    event_type: str
    message: str
    related: RelatedEntity


@dataclass
class TransitionPlan:
    """Computed outcome of evaluating one transition."""

    family: EntityFamily
    action: Action
    stamp: AuditStamp
    new_status: Optional[Enum] = None
    rejection_reason: Optional[str] = None
    role: Optional[Role] = None
    notifications: list[NotificationEvent] = field(default_factory=list)

    @property
    def is_delete(self) -> bool:
        return self.action is Action.delete

    def patch(self) -> dict[str, Any]:
        """Fields to write together in one atomic store update."""
        patch: dict[str, Any] = {
            "moderated_by": self.stamp.moderated_by,
            "moderated_at": self.stamp.moderated_at,
        }
        if self.new_status is not None:
            patch["status"] = self.new_status
        if self.rejection_reason is not None:
            patch["rejection_reason"] = self.rejection_reason
        if self.role is not None:
            patch["role"] = self.role
        return patch


def parse_action(value: str | Action) -> Action:
    try:
        return Action(value)
    except ValueError:
        raise InvalidAction(
            f"Invalid action: {value}. Valid actions: {[a.value for a in Action]}"
        )


def legal_actions(family: EntityFamily) -> frozenset[Action]:
    """Actions defined for *family*."""
    return frozenset(_TRANSITIONS[family])


def authorize(family: EntityFamily, action: str | Action, actor: Actor) -> Action:
    """Check that *action* exists for *family* and *actor* may perform it.

    Raises ``InvalidAction`` or ``Unauthorized``; returns the parsed action.
    """
    action = parse_action(action)
    if action not in _TRANSITIONS[family]:
        raise InvalidAction(f"Action '{action.value}' is not defined for {family.value}s")
    required = _REQUIRED_ROLE.get(action, Role.moderator)
    if not has_permission(actor, required):
        raise Unauthorized(
            f"Action '{action.value}' on {family.value}s requires role '{required.value}' or higher"
        )
    return action


def evaluate(
    family: EntityFamily,
    action: str | Action,
    actor: Actor,
    current_status: Optional[str] = None,
    reason: Optional[str] = None,
    role: Optional[str | Role] = None,
    entity: Optional[Entity] = None,
    now: Optional[datetime] = None,
) -> TransitionPlan:
    """Evaluate one transition and return its plan.

    ``current_status`` is validated against the family's domain when given
    but never restricts the transition. When *entity* is given, the plan's
    notification events are filled in for it.
    """
    action = authorize(family, action, actor)
    if current_status is not None:
        family.parse_status(current_status)

    new_role: Optional[Role] = None
    if action is Action.set_role:
        if role is None:
            raise ValidationError("set_role requires a role value")
        try:
            new_role = Role(role)
        except ValueError:
            raise ValidationError(
                f"Invalid role: {role}. Valid roles: {[r.value for r in Role]}"
            )

    rejection_reason = None
    if action is Action.reject:
        rejection_reason = (reason or "").strip() or DEFAULT_REJECTION_REASON

    moment = now or datetime.now(timezone.utc)
    plan = TransitionPlan(
        family=family,
        action=action,
        stamp=AuditStamp(moderated_by=actor.id, moderated_at=moment.isoformat()),
        new_status=_TRANSITIONS[family][action],
        rejection_reason=rejection_reason,
        role=new_role,
    )
    if entity is not None:
        plan.notifications = fan_out(plan, entity)
    return plan


def fan_out(plan: TransitionPlan, entity: Entity) -> list[NotificationEvent]:
    """Notification events *plan* owes for *entity*."""
    related = RelatedEntity(id=entity.id, family=plan.family)
    reason = plan.rejection_reason

    if isinstance(entity, Listing):
        title = entity.display_title
        if plan.action is Action.approve:
            return [
                NotificationEvent(
                    entity.user, "listing_approved",
                    f'Your listing "{title}" has been approved', related,
                )
            ]
        if plan.action is Action.reject:
            return [
                NotificationEvent(
                    entity.user, "listing_rejected",
                    f'Your listing "{title}" has been rejected: {reason}', related,
                )
            ]

    elif isinstance(entity, Interest):
        if plan.action is Action.approve:
            return [
                NotificationEvent(
                    entity.sender, "interest_accepted",
                    "Your interest has been approved by a moderator", related,
                ),
                NotificationEvent(
                    entity.receiver, "interest_received",
                    "You have received a new approved interest", related,
                ),
            ]
        if plan.action is Action.reject:
            return [
                NotificationEvent(
                    entity.sender, "interest_rejected",
                    f"Your interest has been rejected: {reason}", related,
                )
            ]

    elif isinstance(entity, User):
        if plan.action is Action.approve:
            return [
                NotificationEvent(
                    entity.id, "account_approved", "Your account has been approved", related,
                )
            ]
        if plan.action is Action.reject:
            return [
                NotificationEvent(
                    entity.id, "account_rejected",
                    f"Your account has been rejected: {reason}", related,
                )
            ]

    return []
