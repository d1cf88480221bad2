"""Listings router -- create, edit and withdraw the caller's own listings."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, status

from freeco.auth.models import Actor
from freeco.entities.models import EntityFamily
from web.backend.app.middleware.auth import get_current_actor, get_services
from web.backend.app.models.api import (
    CreateListingRequest,
    ListingResponse,
    ModerationResponse,
    MyListingsResponse,
)
from web.backend.app.routers.moderation import entity_response, moderation_response

router = APIRouter(prefix="/api/listings", tags=["listings"])


@router.post(
    "",
    response_model=ListingResponse,
    summary="Create a listing pending moderation",
    status_code=status.HTTP_201_CREATED,
)
async def create_listing(body: CreateListingRequest, actor: Actor = Depends(get_current_actor)):
    listing = await get_services().marketplace.create_listing(
        actor,
        body.listing_type,
        body.title,
        description=body.description,
        details=body.details,
        images=body.images,
    )
    return entity_response(listing)


@router.get("/mine", response_model=MyListingsResponse, summary="List my listings by type")
async def my_listings(actor: Actor = Depends(get_current_actor)):
    grouped = await get_services().marketplace.my_listings(actor)
    return MyListingsResponse(
        data={t: [entity_response(l) for l in items] for t, items in grouped.items()}
    )


@router.put("/{listing_id}", response_model=ModerationResponse, summary="Edit my listing")
async def update_listing(
    listing_id: str,
    changes: dict[str, Any] = Body(...),
    actor: Actor = Depends(get_current_actor),
):
    """Update mutable fields. Status and moderation fields are ignored."""
    result = await get_services().engine.self_update(
        EntityFamily.listing, listing_id, actor, changes
    )
    return moderation_response(result)


@router.delete("/{listing_id}", response_model=ModerationResponse, summary="Withdraw my listing")
async def delete_listing(listing_id: str, actor: Actor = Depends(get_current_actor)):
    """Soft delete: the listing is marked inactive, never removed."""
    result = await get_services().engine.self_deactivate(EntityFamily.listing, listing_id, actor)
    return moderation_response(result)
