"""Tests for single-item moderation in the moderation engine."""

import asyncio
import tempfile
from pathlib import Path

import pytest

from freeco.auth.models import Actor, Role
from freeco.entities.models import (
    EntityFamily,
    Interest,
    InterestStatus,
    Listing,
    ListingStatus,
    User,
    UserStatus,
)
from freeco.entities.store import EntityStore
from freeco.moderation.engine import ModerationEngine
from freeco.moderation.errors import (
    DispatchFailure,
    Forbidden,
    InvalidAction,
    ModerationTimeout,
    NotFound,
    Unauthorized,
    ValidationError,
)
from freeco.moderation.status_machine import DEFAULT_REJECTION_REASON
from freeco.notifications.dispatcher import NotificationDispatcher, NotificationStore
from freeco.security.audit_log import AuditLogger

M1 = Actor(id="M1", role=Role.moderator)
ADMIN = Actor(id="A1", role=Role.admin)


class FailingDispatcher(NotificationDispatcher):
    """Dispatcher whose every delivery fails."""

    def __init__(self):
        self.attempts = 0

    async def notify(self, recipient_id, event_type, message, related=None):
        self.attempts += 1
        raise DispatchFailure("mail server down")


class SlowStore(EntityStore):
    """Store whose writes never finish within a short deadline."""

    async def update_one(self, family, entity_id, patch):
        await asyncio.sleep(5)
        return await super().update_one(family, entity_id, patch)


def _engine(tmpdir: str, dispatcher=None, store=None, timeout=None):
    store = store or EntityStore(Path(tmpdir) / "entities")
    dispatcher = dispatcher or NotificationStore(Path(tmpdir) / "notifications")
    audit = AuditLogger(Path(tmpdir) / "audit")
    return ModerationEngine(store, dispatcher, audit=audit, timeout=timeout), store, dispatcher, audit


def _seed(store: EntityStore, *entities) -> None:
    async def run():
        for entity in entities:
            await store.insert(entity)

    asyncio.run(run())


def _listing(listing_id: str = "L1", **overrides) -> Listing:
    data = dict(id=listing_id, listing_type="product", title="Red bike", user="U1")
    data.update(overrides)
    return Listing(**data)


def test_approve_listing():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, store, notifications, _ = _engine(tmpdir)
        _seed(store, _listing())

        result = asyncio.run(engine.moderate("listings", "L1", "approve", M1))

        assert result.success
        assert result.message == "Listing approved"
        assert result.notifications_sent == 1
        listing = asyncio.run(store.find_by_id(EntityFamily.listing, "L1"))
        assert listing.status is ListingStatus.active
        assert listing.moderated_by == "M1"
        assert listing.moderated_at

        inbox = asyncio.run(notifications.list_for("U1"))
        assert [n.type for n in inbox] == ["listing_approved"]
        assert inbox[0].related_id == "L1"
        assert inbox[0].related_family == "listing"


def test_reject_interest_notifies_sender_only():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, store, notifications, _ = _engine(tmpdir)
        _seed(store, Interest(id="I1", sender="U1", receiver="U2", listing="L1"))

        asyncio.run(engine.moderate("interest", "I1", "reject", ADMIN, reason="spam"))

        interest = asyncio.run(store.find_by_id(EntityFamily.interest, "I1"))
        assert interest.status is InterestStatus.rejected
        assert interest.rejection_reason == "spam"
        assert interest.moderated_by == "A1"

        sender_inbox = asyncio.run(notifications.list_for("U1"))
        assert len(sender_inbox) == 1
        assert sender_inbox[0].message == "Your interest has been rejected: spam"
        assert sender_inbox[0].title == "Your interest has been rejected"
        assert asyncio.run(notifications.list_for("U2")) == []


def test_approve_interest_notifies_both_parties():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, store, notifications, _ = _engine(tmpdir)
        _seed(store, Interest(id="I1", sender="U1", receiver="U2", listing="L1"))

        result = asyncio.run(engine.moderate("interest", "I1", "approve", M1))

        assert result.entity.status is InterestStatus.accepted
        assert result.notifications_sent == 2
        assert [n.type for n in asyncio.run(notifications.list_for("U1"))] == ["interest_accepted"]
        assert [n.type for n in asyncio.run(notifications.list_for("U2"))] == ["interest_received"]


def test_rejection_reason_is_sticky_until_next_reject():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, store, _, _ = _engine(tmpdir)
        _seed(store, _listing())

        asyncio.run(engine.moderate("listing", "L1", "reject", M1))
        listing = asyncio.run(store.find_by_id(EntityFamily.listing, "L1"))
        assert listing.rejection_reason == DEFAULT_REJECTION_REASON

        asyncio.run(engine.moderate("listing", "L1", "approve", M1))
        listing = asyncio.run(store.find_by_id(EntityFamily.listing, "L1"))
        assert listing.status is ListingStatus.active
        assert listing.rejection_reason == DEFAULT_REJECTION_REASON

        asyncio.run(engine.moderate("listing", "L1", "reject", M1, reason="Duplicate ad"))
        listing = asyncio.run(store.find_by_id(EntityFamily.listing, "L1"))
        assert listing.rejection_reason == "Duplicate ad"


def test_suspend_and_set_role_on_user():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, store, notifications, _ = _engine(tmpdir)
        _seed(store, User(id="U7", first_name="Sam", last_name="Lee", email="sam@example.com"))

        asyncio.run(engine.moderate("users", "U7", "suspend", M1))
        user = asyncio.run(store.find_by_id(EntityFamily.user, "U7"))
        assert user.status is UserStatus.suspended

        result = asyncio.run(engine.moderate("users", "U7", "set_role", ADMIN, role="moderator"))
        assert result.entity.role is Role.moderator
        assert result.entity.status is UserStatus.suspended
        assert result.entity.moderated_by == "A1"
        assert asyncio.run(notifications.list_for("U7")) == []


def test_set_role_by_moderator_is_unauthorized():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, store, _, _ = _engine(tmpdir)
        _seed(store, User(id="U7", first_name="Sam", last_name="Lee", email="sam@example.com"))

        with pytest.raises(Unauthorized):
            asyncio.run(engine.moderate("users", "U7", "set_role", M1, role="admin"))
        user = asyncio.run(store.find_by_id(EntityFamily.user, "U7"))
        assert user.role is Role.user
        assert user.moderated_by is None


def test_plain_user_cannot_moderate():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, store, _, _ = _engine(tmpdir)
        _seed(store, _listing())

        with pytest.raises(Unauthorized):
            asyncio.run(engine.moderate("listing", "L1", "approve", Actor(id="U1")))
        listing = asyncio.run(store.find_by_id(EntityFamily.listing, "L1"))
        assert listing.status is ListingStatus.pending


def test_invalid_action_leaves_store_untouched():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, store, _, _ = _engine(tmpdir)
        _seed(store, _listing())

        with pytest.raises(InvalidAction):
            asyncio.run(engine.moderate("listing", "L1", "suspend", M1))
        listing = asyncio.run(store.find_by_id(EntityFamily.listing, "L1"))
        assert listing.status is ListingStatus.pending
        assert listing.moderated_by is None


def test_unknown_family_is_a_validation_error():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, _, _, _ = _engine(tmpdir)
        with pytest.raises(ValidationError):
            asyncio.run(engine.moderate("vehicles", "V1", "approve", M1))


def test_missing_entity_is_not_found():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, _, _, _ = _engine(tmpdir)
        with pytest.raises(NotFound):
            asyncio.run(engine.moderate("listing", "nope", "approve", M1))
        with pytest.raises(NotFound):
            asyncio.run(engine.moderate("listing", "nope", "delete", M1))


def test_delete_removes_entity():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, store, notifications, _ = _engine(tmpdir)
        _seed(store, _listing())

        result = asyncio.run(engine.moderate("listing", "L1", "delete", M1))
        assert result.message == "Listing deleted"
        assert result.notifications_sent == 0
        assert asyncio.run(store.find_by_id(EntityFamily.listing, "L1")) is None
        assert asyncio.run(notifications.list_for("U1")) == []


def test_dispatch_failure_does_not_roll_back():
    with tempfile.TemporaryDirectory() as tmpdir:
        dispatcher = FailingDispatcher()
        engine, store, _, _ = _engine(tmpdir, dispatcher=dispatcher)
        _seed(store, _listing())

        result = asyncio.run(engine.moderate("listing", "L1", "approve", M1))

        assert result.success
        assert result.notifications_sent == 0
        assert dispatcher.attempts == 1
        listing = asyncio.run(store.find_by_id(EntityFamily.listing, "L1"))
        assert listing.status is ListingStatus.active


def test_timeout_raises_and_leaves_entity_unchanged():
    with tempfile.TemporaryDirectory() as tmpdir:
        slow = SlowStore(Path(tmpdir) / "entities")
        engine, store, _, _ = _engine(tmpdir, store=slow, timeout=0.05)
        _seed(store, _listing())

        with pytest.raises(ModerationTimeout):
            asyncio.run(engine.moderate("listing", "L1", "approve", M1))
        listing = asyncio.run(store.find_by_id(EntityFamily.listing, "L1"))
        assert listing.status is ListingStatus.pending


def test_transitions_are_audited():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, store, _, audit = _engine(tmpdir)
        _seed(store, _listing())

        asyncio.run(engine.moderate("listing", "L1", "reject", M1, reason="Blurry"))

        events = audit.get_events(entity_id="L1")
        assert len(events) == 1
        event = events[0]
        assert event.actor == "M1"
        assert event.actor_role == "moderator"
        assert event.action == "reject"
        assert event.family == "listing"
        assert event.matched_count == 1
        assert event.details["from_status"] == "pending"
        assert event.details["to_status"] == "rejected"
        assert event.details["reason"] == "Blurry"


def test_moderator_cannot_moderate_own_entities():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, store, _, _ = _engine(tmpdir)
        _seed(
            store,
            Listing(id="L1", listing_type="job", title="Cook", user="M1"),
            Interest(id="I1", sender="M1", receiver="U2", listing="L9"),
            User(id="M1", first_name="Mo", last_name="Derator", email="m1@example.com"),
        )

        with pytest.raises(Forbidden):
            asyncio.run(engine.moderate("listing", "L1", "approve", M1))
        with pytest.raises(Forbidden):
            asyncio.run(engine.moderate("interest", "I1", "approve", M1))
        with pytest.raises(Forbidden):
            asyncio.run(engine.moderate("user", "M1", "suspend", M1))

        listing = asyncio.run(store.find_by_id(EntityFamily.listing, "L1"))
        assert listing.status is ListingStatus.pending
        assert listing.moderated_by is None
        user = asyncio.run(store.find_by_id(EntityFamily.user, "M1"))
        assert user.status is UserStatus.active


def test_admin_cannot_change_own_role():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, store, _, _ = _engine(tmpdir)
        _seed(store, User(id="A1", first_name="Ad", last_name="Min", email="a1@example.com", role="admin"))

        with pytest.raises(Forbidden):
            asyncio.run(engine.moderate("user", "A1", "set_role", ADMIN, role="user"))
        user = asyncio.run(store.find_by_id(EntityFamily.user, "A1"))
        assert user.role is Role.admin
