"""Tests for the file-based notification store."""

import asyncio
import json
import tempfile
from pathlib import Path

import pytest

from freeco.auth.models import Actor, Role
from freeco.entities.models import EntityFamily, Listing, ListingStatus
from freeco.moderation.errors import DispatchFailure, StoreFailure
from freeco.notifications.dispatcher import NotificationStore, RelatedEntity
from freeco.services import build_services


def test_notify_persists_records():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = NotificationStore(tmpdir)
        related = RelatedEntity(id="L1", family=EntityFamily.listing)
        note = asyncio.run(store.notify("U1", "listing_approved", "Listing Approved: Bike is live", related))

        assert note.title == "Listing Approved"
        data = json.loads((Path(tmpdir) / "notifications.json").read_text())
        assert [d["id"] for d in data] == [note.id]
        assert data[0]["related_family"] == "listing"
        assert list(Path(tmpdir).glob("*.tmp")) == []


def test_corrupt_file_is_never_overwritten():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = NotificationStore(tmpdir)
        for i in range(3):
            asyncio.run(store.notify("U1", "listing_approved", f"Approved: {i}"))

        path = Path(tmpdir) / "notifications.json"
        truncated = path.read_text()[:-5]
        path.write_text(truncated)

        with pytest.raises(DispatchFailure):
            asyncio.run(store.notify("U1", "listing_rejected", "after"))
        with pytest.raises(StoreFailure):
            asyncio.run(store.list_for("U1"))
        assert path.read_text() == truncated


def test_moderation_survives_corrupt_notification_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        services = build_services(tmpdir)

        async def seed():
            await services.store.insert(Listing(id="L1", listing_type="job", title="Cook", user="U1"))

        asyncio.run(seed())
        path = Path(tmpdir) / "notifications" / "notifications.json"
        path.write_text("[{\"id\": ")

        result = asyncio.run(
            services.engine.moderate("listing", "L1", "approve", Actor(id="M1", role=Role.moderator))
        )
        assert result.notifications_sent == 0
        assert result.entity.status is ListingStatus.active
        assert path.read_text() == "[{\"id\": "
