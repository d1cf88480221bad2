"""Tests for owner self-service edits of listings and interests."""

import asyncio
import tempfile
from pathlib import Path

import pytest

from freeco.auth.models import Actor
from freeco.entities.models import EntityFamily, Interest, JobDetails, Listing, ListingStatus
from freeco.entities.store import EntityStore
from freeco.moderation.engine import ModerationEngine
from freeco.moderation.errors import Forbidden, InvalidAction, NotFound, ValidationError
from freeco.notifications.dispatcher import NotificationStore
from freeco.services import build_services

OWNER = Actor(id="U1")
STRANGER = Actor(id="U2")


def _engine(tmpdir: str):
    store = EntityStore(Path(tmpdir) / "entities")
    notifications = NotificationStore(Path(tmpdir) / "notifications")
    return ModerationEngine(store, notifications), store, notifications


def _seed(store: EntityStore, *entities) -> None:
    async def run():
        for entity in entities:
            await store.insert(entity)

    asyncio.run(run())


def _job() -> Listing:
    return Listing(
        id="L1",
        listing_type="job",
        title="Baker wanted",
        user="U1",
        details={"job_title": "Baker", "company": "Crumbs", "salary": "20k"},
        status="rejected",
        rejection_reason="Missing salary",
        moderated_by="M1",
    )


def test_owner_can_update_listing_fields():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, store, _ = _engine(tmpdir)
        _seed(store, _job())

        result = asyncio.run(
            engine.self_update(
                "listing", "L1", OWNER,
                {"title": "Head baker wanted", "details": {"salary": "25k"}},
            )
        )

        assert result.message == "Listing updated"
        listing = asyncio.run(store.find_by_id(EntityFamily.listing, "L1"))
        assert listing.title == "Head baker wanted"
        assert isinstance(listing.details, JobDetails)
        assert listing.details.salary == "25k"
        assert listing.details.company == "Crumbs"


def test_reserved_fields_are_ignored():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, store, _ = _engine(tmpdir)
        _seed(store, _job())

        asyncio.run(
            engine.self_update(
                "listing", "L1", OWNER,
                {
                    "description": "Early shifts",
                    "status": "active",
                    "moderated_by": "U1",
                    "rejection_reason": None,
                    "user": "U9",
                },
            )
        )

        listing = asyncio.run(store.find_by_id(EntityFamily.listing, "L1"))
        assert listing.description == "Early shifts"
        assert listing.status is ListingStatus.rejected
        assert listing.moderated_by == "M1"
        assert listing.rejection_reason == "Missing salary"
        assert listing.user == "U1"


def test_only_reserved_fields_is_a_validation_error():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, store, _ = _engine(tmpdir)
        _seed(store, _job())
        with pytest.raises(ValidationError):
            asyncio.run(engine.self_update("listing", "L1", OWNER, {"status": "active"}))


def test_bad_field_types_are_rejected():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, store, _ = _engine(tmpdir)
        _seed(store, _job())
        with pytest.raises(ValidationError):
            asyncio.run(engine.self_update("listing", "L1", OWNER, {"title": 5}))
        with pytest.raises(ValidationError):
            asyncio.run(engine.self_update("listing", "L1", OWNER, {"images": "a.png"}))
        with pytest.raises(ValidationError):
            asyncio.run(engine.self_update("listing", "L1", OWNER, {"details": {"age": 30}}))


def test_non_owner_is_forbidden():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, store, _ = _engine(tmpdir)
        _seed(store, _job())

        with pytest.raises(Forbidden):
            asyncio.run(engine.self_update("listing", "L1", STRANGER, {"title": "Mine now"}))
        with pytest.raises(Forbidden):
            asyncio.run(engine.self_deactivate("listing", "L1", STRANGER))

        listing = asyncio.run(store.find_by_id(EntityFamily.listing, "L1"))
        assert listing.title == "Baker wanted"
        assert listing.status is ListingStatus.rejected


def test_missing_listing_is_not_found():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, _, _ = _engine(tmpdir)
        with pytest.raises(NotFound):
            asyncio.run(engine.self_deactivate("listing", "nope", OWNER))


def test_soft_delete_marks_listing_inactive():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, store, notifications = _engine(tmpdir)
        _seed(store, _job())

        result = asyncio.run(engine.self_deactivate("listing", "L1", OWNER))

        assert result.message == "Listing successfully marked as inactive"
        listing = asyncio.run(store.find_by_id(EntityFamily.listing, "L1"))
        assert listing.status is ListingStatus.inactive
        assert listing.moderated_by == "M1"
        assert asyncio.run(notifications.list_for("U1")) == []


def test_interest_sender_can_edit_message():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, store, _ = _engine(tmpdir)
        _seed(store, Interest(id="I1", sender="U1", receiver="U2", listing="L1", message="Hi"))

        asyncio.run(engine.self_update("interest", "I1", OWNER, {"message": "Still available?"}))
        interest = asyncio.run(store.find_by_id(EntityFamily.interest, "I1"))
        assert interest.message == "Still available?"

        with pytest.raises(Forbidden):
            asyncio.run(engine.self_update("interest", "I1", STRANGER, {"message": "x"}))


def test_interests_and_users_have_no_soft_delete():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, store, _ = _engine(tmpdir)
        _seed(store, Interest(id="I1", sender="U1", receiver="U2", listing="L1"))

        with pytest.raises(InvalidAction):
            asyncio.run(engine.self_deactivate("interest", "I1", OWNER))
        with pytest.raises(InvalidAction):
            asyncio.run(engine.self_update("user", "U1", OWNER, {"first_name": "X"}))


def test_owner_edits_respect_listing_limits():
    with tempfile.TemporaryDirectory() as tmpdir:
        services = build_services(tmpdir)
        asyncio.run(services.config.update({"max_images_per_ad": 2}))
        _seed(services.store, _job())
        engine = services.engine

        with pytest.raises(ValidationError):
            asyncio.run(engine.self_update("listing", "L1", OWNER, {"images": ["a", "b", "c"]}))
        with pytest.raises(ValidationError):
            asyncio.run(engine.self_update("listing", "L1", OWNER, {"title": "   "}))

        listing = asyncio.run(services.store.find_by_id(EntityFamily.listing, "L1"))
        assert listing.images == []
        assert listing.title == "Baker wanted"

        asyncio.run(engine.self_update("listing", "L1", OWNER, {"images": ["a", "b"], "title": " Baker "}))
        listing = asyncio.run(services.store.find_by_id(EntityFamily.listing, "L1"))
        assert listing.images == ["a", "b"]
        assert listing.title == "Baker"
