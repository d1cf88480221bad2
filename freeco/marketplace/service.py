"""Creation paths that bring entities into the store in their initial status.

Users start ``active`` (they arrive already verified by the identity
provider); listings and interests start ``pending`` and only leave that state
through the moderation engine.
"""

from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from freeco.auth.models import Actor, Role
from freeco.config.system_config import SystemConfigStore
from freeco.entities.models import (
    EntityFamily,
    Interest,
    Listing,
    ListingType,
    User,
    details_from_dict,
    parse_listing_type,
)
from freeco.entities.store import EntityStore
from freeco.moderation.errors import Forbidden, NotFound, ValidationError

logger = logging.getLogger(__name__)

_EMAIL_PATTERN = re.compile(r"^[\w.+-]+@[\w-]+(\.[\w-]+)*\.\w{2,}$")


class MarketplaceService:
    """Registers users and creates listings and interests."""

    def __init__(self, store: EntityStore, config_store: SystemConfigStore) -> None:
        self._store = store
        self._config = config_store

    async def register_user(
        self,
        first_name: str,
        last_name: str,
        email: str,
        phone_number: str = "",
        role: Role | str = Role.user,
    ) -> User:
        """Persist a user the identity provider has already verified."""
        config = await self._config.get()
        if not config.allow_user_registration:
            raise Forbidden("User registration is currently disabled")
        if not first_name or not last_name:
            raise ValidationError("First name and last name are required")
        email = (email or "").strip().lower()
        if not _EMAIL_PATTERN.match(email):
            raise ValidationError("Please provide a valid email address")
        if await self._store.count(EntityFamily.user, {"email": email}):
            raise ValidationError("Email is already registered")
        try:
            role = Role(role)
        except ValueError:
            raise ValidationError(f"Invalid role: {role}")

        user = User(
            id=uuid.uuid4().hex,
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            email=email,
            phone_number=phone_number,
            role=role,
        )
        await self._store.insert(user)
        logger.info("Registered user %s", user.id)
        return user

    async def create_listing(
        self,
        actor: Actor,
        listing_type: ListingType | str,
        title: str,
        description: str = "",
        details: Optional[dict[str, Any]] = None,
        images: Optional[list[str]] = None,
    ) -> Listing:
        """Create a pending listing owned by *actor*.

        *images* are URLs already produced by the media store.
        """
        listing_type = parse_listing_type(listing_type)
        if not isinstance(title, str) or not title.strip():
            raise ValidationError("Title is required")
        images = list(images or [])
        if not all(isinstance(i, str) for i in images):
            raise ValidationError("Images must be a list of URLs")

        config = await self._config.get()
        if len(images) > config.max_images_per_ad:
            raise ValidationError(
                f"A listing may have at most {config.max_images_per_ad} images"
            )
        now = datetime.now(timezone.utc)
        listing = Listing(
            id=uuid.uuid4().hex,
            listing_type=listing_type,
            title=title.strip(),
            user=actor.id,
            description=description,
            images=images,
            details=details_from_dict(listing_type, details),
            expires_at=(now + timedelta(days=config.max_ad_duration_days)).isoformat(),
            created_at=now.isoformat(),
        )
        await self._store.insert(listing)
        logger.info("Created %s listing %s for %s", listing_type.value, listing.id, actor.id)
        return listing

    async def create_interest(self, actor: Actor, listing_id: str, message: str = "") -> Interest:
        """Record *actor*'s interest in someone else's listing."""
        listing = await self._store.find_by_id(EntityFamily.listing, listing_id)
        if listing is None:
            raise NotFound("Listing not found")
        if listing.user == actor.id:
            raise Forbidden("You cannot express interest in your own listing")
        existing = await self._store.count(
            EntityFamily.interest, {"sender": actor.id, "listing": listing_id}
        )
        if existing:
            raise ValidationError("You have already expressed interest in this listing")

        interest = Interest(
            id=uuid.uuid4().hex,
            sender=actor.id,
            receiver=listing.user,
            listing=listing_id,
            message=message,
        )
        await self._store.insert(interest)
        logger.info("Interest %s from %s on listing %s", interest.id, actor.id, listing_id)
        return interest

    async def my_listings(self, actor: Actor) -> dict[str, list[Listing]]:
        """Return the actor's own listings grouped by listing type."""
        listings = await self._store.find_all(EntityFamily.listing, {"user": actor.id})
        grouped: dict[str, list[Listing]] = {t.value: [] for t in ListingType}
        for listing in listings:
            grouped[listing.listing_type.value].append(listing)
        return grouped

    async def received_interests(self, actor: Actor) -> list[Interest]:
        """Interests other users expressed in the actor's listings, newest first."""
        return await self._interests({"receiver": actor.id})

    async def sent_interests(self, actor: Actor) -> list[Interest]:
        """Interests the actor expressed, newest first."""
        return await self._interests({"sender": actor.id})

    async def _interests(self, flt: dict[str, Any]) -> list[Interest]:
        interests = await self._store.find_all(EntityFamily.interest, flt)
        interests.sort(key=lambda i: (i.created_at, i.id), reverse=True)
        return interests
