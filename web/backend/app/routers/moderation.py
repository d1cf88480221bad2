"""Moderation router -- queues, dashboard, single and bulk actions.

The same routes are mounted twice: under ``/api/mod`` for moderators and
under ``/api/admin`` for admins. Both mounts drive the same engine; the
console type decides who may open them.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends, Query

from freeco.auth.models import Actor
from freeco.entities.models import Entity, Interest, Listing, User
from freeco.entities.store import entity_to_dict
from freeco.moderation.consoles import AdminConsole, ModeratorConsole
from freeco.moderation.engine import BulkResult, ModerationResult
from web.backend.app.middleware.auth import get_current_actor, get_services
from web.backend.app.models.api import (
    BulkActionRequest,
    BulkActionResponse,
    DashboardResponse,
    EntityDetailResponse,
    EntityPageResponse,
    EntityResponse,
    InterestResponse,
    ListingResponse,
    ModerationActionRequest,
    ModerationResponse,
    PaginationResponse,
    UserResponse,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def entity_response(entity: Entity) -> EntityResponse:
    """Convert a domain entity to its response model."""
    data = entity_to_dict(entity)
    if isinstance(entity, User):
        return UserResponse(**data)
    if isinstance(entity, Listing):
        return ListingResponse(**data)
    if isinstance(entity, Interest):
        return InterestResponse(**data)
    raise TypeError(f"Unsupported entity: {type(entity).__name__}")


def moderation_response(result: ModerationResult) -> ModerationResponse:
    return ModerationResponse(
        success=result.success,
        message=result.message,
        data=entity_response(result.entity) if result.entity is not None else None,
        notifications_sent=result.notifications_sent,
    )


def bulk_response(result: BulkResult) -> BulkActionResponse:
    return BulkActionResponse(
        success=result.success,
        message=result.message,
        matched_count=result.matched_count,
        requested_count=result.requested_count,
        notifications_sent=result.notifications_sent,
    )


# ---------------------------------------------------------------------------
# Router factory
# ---------------------------------------------------------------------------


def build_router(prefix: str, tag: str, console_cls: type[ModeratorConsole]) -> APIRouter:
    """Create the moderation routes under *prefix* for *console_cls*."""
    router = APIRouter(prefix=prefix, tags=[tag])

    def open_console(actor: Actor = Depends(get_current_actor)) -> ModeratorConsole:
        services = get_services()
        if console_cls is AdminConsole:
            return AdminConsole(services.engine, actor, config_store=services.config)
        return console_cls(services.engine, actor)

    @router.get(
        "/dashboard",
        response_model=DashboardResponse,
        summary="Counts per status for every entity family",
    )
    async def dashboard(console: ModeratorConsole = Depends(open_console)):
        counts = await get_services().queries.dashboard(console.actor)
        return DashboardResponse(**counts)

    @router.get(
        "/{family}",
        response_model=EntityPageResponse,
        summary="List entities of a family, newest first",
    )
    async def list_entities(
        family: str,
        status: Optional[str] = Query("pending", description="Status filter or 'all'"),
        type: Optional[str] = Query(None, description="Listing type filter or 'all'"),
        role: Optional[str] = Query(None, description="User role filter or 'all'"),
        page: int = Query(1),
        limit: int = Query(10),
        console: ModeratorConsole = Depends(open_console),
    ):
        result = await get_services().queries.list_entities(
            console.actor, family, status=status, listing_type=type, page=page, limit=limit, role=role
        )
        return EntityPageResponse(
            data=[entity_response(e) for e in result.items],
            pagination=PaginationResponse(
                total=result.total, page=result.page, limit=result.limit, pages=result.pages
            ),
        )

    @router.get(
        "/{family}/{entity_id}",
        response_model=EntityDetailResponse,
        summary="Get one entity",
    )
    async def get_entity(
        family: str,
        entity_id: str,
        console: ModeratorConsole = Depends(open_console),
    ):
        entity = await get_services().queries.get_entity(console.actor, family, entity_id)
        return EntityDetailResponse(data=entity_response(entity))

    @router.post(
        "/{family}/bulk-action",
        response_model=BulkActionResponse,
        summary="Apply one action to many entities",
    )
    async def bulk_action(
        family: str,
        body: BulkActionRequest,
        console: ModeratorConsole = Depends(open_console),
    ):
        result = await console.bulk(family, body.ids, body.action, reason=body.reason, role=body.role)
        return bulk_response(result)

    @router.post(
        "/{family}/{entity_id}/{action}",
        response_model=ModerationResponse,
        summary="Apply one moderation action to one entity",
    )
    async def moderate(
        family: str,
        entity_id: str,
        action: str,
        body: Optional[ModerationActionRequest] = Body(None),
        console: ModeratorConsole = Depends(open_console),
    ):
        body = body or ModerationActionRequest()
        result = await console.moderate(
            family, entity_id, action, reason=body.reason, role=body.role
        )
        return moderation_response(result)

    return router


router = build_router("/api/mod", "moderation", ModeratorConsole)
