"""Interests router -- express, edit and review interest in listings."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, status

from freeco.auth.models import Actor
from freeco.entities.models import EntityFamily
from web.backend.app.middleware.auth import get_current_actor, get_services
from web.backend.app.models.api import (
    CreateInterestRequest,
    InterestResponse,
    ModerationResponse,
)
from web.backend.app.routers.moderation import entity_response, moderation_response

router = APIRouter(prefix="/api/interests", tags=["interests"])


@router.post(
    "",
    response_model=InterestResponse,
    summary="Express interest in a listing",
    status_code=status.HTTP_201_CREATED,
)
async def create_interest(body: CreateInterestRequest, actor: Actor = Depends(get_current_actor)):
    interest = await get_services().marketplace.create_interest(
        actor, body.listing_id, message=body.message
    )
    return entity_response(interest)


@router.get("/received", response_model=list[InterestResponse], summary="Interests in my listings")
async def received_interests(actor: Actor = Depends(get_current_actor)):
    interests = await get_services().marketplace.received_interests(actor)
    return [entity_response(i) for i in interests]


@router.get("/sent", response_model=list[InterestResponse], summary="Interests I expressed")
async def sent_interests(actor: Actor = Depends(get_current_actor)):
    interests = await get_services().marketplace.sent_interests(actor)
    return [entity_response(i) for i in interests]


@router.put("/{interest_id}", response_model=ModerationResponse, summary="Edit my interest")
async def update_interest(
    interest_id: str,
    changes: dict[str, Any] = Body(...),
    actor: Actor = Depends(get_current_actor),
):
    result = await get_services().engine.self_update(
        EntityFamily.interest, interest_id, actor, changes
    )
    return moderation_response(result)
