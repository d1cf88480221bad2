"""Admin router -- role assignment, system configuration and the audit trail.

``extras_router`` must be included before ``router`` so that
``/api/admin/system-config`` and ``/api/admin/audit`` are not captured by the
generic ``/api/admin/{family}`` listing route.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query

from freeco.auth.models import Actor, Role
from freeco.auth.permissions import require_role
from freeco.entities.models import parse_family
from freeco.moderation.consoles import AdminConsole
from web.backend.app.middleware.auth import get_current_actor, get_services
from web.backend.app.models.api import (
    AuditEntryResponse,
    AuditExportResponse,
    ModerationResponse,
    SetRoleRequest,
    SystemConfigResponse,
)
from web.backend.app.routers.moderation import build_router, moderation_response

extras_router = APIRouter(prefix="/api/admin", tags=["admin"])

router = build_router("/api/admin", "admin", AdminConsole)


def _admin_console(actor: Actor = Depends(get_current_actor)) -> AdminConsole:
    services = get_services()
    return AdminConsole(services.engine, actor, config_store=services.config)


def _audit_filters(
    actor: Optional[str],
    action: Optional[str],
    family: Optional[str],
    entity_id: Optional[str],
) -> dict[str, Any]:
    return {
        "actor": actor,
        "action": action,
        "family": parse_family(family).value if family else None,
        "entity_id": entity_id,
    }


# ---------------------------------------------------------------------------
# Role assignment
# ---------------------------------------------------------------------------


@extras_router.post(
    "/users/{user_id}/role",
    response_model=ModerationResponse,
    summary="Change a user's role",
)
async def set_user_role(
    user_id: str,
    body: SetRoleRequest,
    console: AdminConsole = Depends(_admin_console),
):
    result = await console.set_role(user_id, body.role)
    return moderation_response(result)


# ---------------------------------------------------------------------------
# System configuration
# ---------------------------------------------------------------------------


@extras_router.get("/system-config", response_model=SystemConfigResponse)
async def get_system_config(console: AdminConsole = Depends(_admin_console)):
    """Return the current system configuration."""
    config = await console.get_config()
    return SystemConfigResponse(**config.model_dump())


@extras_router.put("/system-config", response_model=SystemConfigResponse)
async def update_system_config(
    changes: dict[str, Any] = Body(...),
    console: AdminConsole = Depends(_admin_console),
):
    """Merge *changes* into the configuration. Unknown keys are rejected."""
    config = await console.update_config(changes)
    return SystemConfigResponse(**config.model_dump())


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------


@extras_router.get("/audit", response_model=list[AuditEntryResponse])
async def list_audit_events(
    actor: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    family: Optional[str] = Query(None),
    entity_id: Optional[str] = Query(None),
    limit: int = Query(200, ge=1, le=10000),
    caller: Actor = Depends(get_current_actor),
):
    """List moderation audit events, newest first."""
    require_role(caller, Role.admin)
    audit = get_services().audit
    events = await asyncio.to_thread(
        audit.get_events, **_audit_filters(actor, action, family, entity_id), limit=limit
    )
    return [AuditEntryResponse(**asdict(e)) for e in events]


@extras_router.get("/audit/export", response_model=AuditExportResponse)
async def export_audit_log(
    format: str = Query("json", pattern="^(json|csv)$"),
    actor: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    family: Optional[str] = Query(None),
    entity_id: Optional[str] = Query(None),
    caller: Actor = Depends(get_current_actor),
):
    """Export the audit log in JSON or CSV format."""
    require_role(caller, Role.admin)
    audit = get_services().audit
    filters = _audit_filters(actor, action, family, entity_id)
    content = await asyncio.to_thread(audit.export_events, format, **filters)
    events = await asyncio.to_thread(audit.get_events, **filters)
    return AuditExportResponse(format=format, content=content, record_count=len(events))
