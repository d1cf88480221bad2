"""Notifications router -- the caller's inbox."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query

from freeco.auth.models import Actor
from web.backend.app.middleware.auth import get_current_actor, get_services
from web.backend.app.models.api import NotificationResponse

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationResponse])
async def list_notifications(
    unread_only: bool = Query(False),
    actor: Actor = Depends(get_current_actor),
):
    """Return the caller's notifications, newest first."""
    notifications = await get_services().inbox.list_for(actor, unread_only=unread_only)
    return [NotificationResponse(**asdict(n)) for n in notifications]


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(notification_id: str, actor: Actor = Depends(get_current_actor)):
    notification = await get_services().inbox.mark_read(actor, notification_id)
    return NotificationResponse(**asdict(notification))
