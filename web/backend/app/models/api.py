"""Pydantic models for API request/response serialization.

These models mirror the freeco dataclasses and provide proper JSON
serialization for the FastAPI endpoints.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Entity models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Mirrors freeco.entities.models.User."""

    id: str
    first_name: str
    last_name: str
    email: str
    phone_number: str = ""
    role: str = "user"
    status: str = "active"
    moderated_by: Optional[str] = None
    moderated_at: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""


class ListingResponse(BaseModel):
    """Mirrors freeco.entities.models.Listing."""

    id: str
    listing_type: str
    title: str
    user: str
    description: str = ""
    images: list[str] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)
    status: str = "pending"
    moderated_by: Optional[str] = None
    moderated_at: Optional[str] = None
    rejection_reason: Optional[str] = None
    expires_at: str = ""
    created_at: str = ""
    updated_at: str = ""


class InterestResponse(BaseModel):
    """Mirrors freeco.entities.models.Interest."""

    id: str
    sender: str
    receiver: str
    listing: str
    message: str = ""
    status: str = "pending"
    moderated_by: Optional[str] = None
    moderated_at: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""


EntityResponse = Union[UserResponse, ListingResponse, InterestResponse]


# ---------------------------------------------------------------------------
# Moderation models
# ---------------------------------------------------------------------------


class ModerationActionRequest(BaseModel):
    """Optional body of ``POST /{family}/{id}/{action}``."""

    reason: Optional[str] = None
    role: Optional[str] = None


class BulkActionRequest(BaseModel):
    ids: list[Any] = Field(default_factory=list)
    action: str
    reason: Optional[str] = None
    role: Optional[str] = None


class SetRoleRequest(BaseModel):
    role: str


class ModerationResponse(BaseModel):
    """Mirrors freeco.moderation.engine.ModerationResult."""

    success: bool = True
    message: str = ""
    data: Optional[EntityResponse] = None
    notifications_sent: int = 0


class BulkActionResponse(BaseModel):
    """Mirrors freeco.moderation.engine.BulkResult."""

    success: bool = True
    message: str = ""
    matched_count: int = 0
    requested_count: int = 0
    notifications_sent: int = 0


class PaginationResponse(BaseModel):
    total: int = 0
    page: int = 1
    limit: int = 10
    pages: int = 0


class EntityPageResponse(BaseModel):
    success: bool = True
    data: list[EntityResponse] = Field(default_factory=list)
    pagination: PaginationResponse = Field(default_factory=PaginationResponse)


class EntityDetailResponse(BaseModel):
    success: bool = True
    data: EntityResponse


class DashboardResponse(BaseModel):
    """Counts per status for every family, plus listings per type."""

    success: bool = True
    users: dict[str, int] = Field(default_factory=dict)
    listings: dict[str, int] = Field(default_factory=dict)
    interests: dict[str, int] = Field(default_factory=dict)
    listing_types: dict[str, int] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Body of every failed request."""

    success: bool = False
    message: str
    error: str
    details: Optional[dict[str, Any]] = None


# ---------------------------------------------------------------------------
# Marketplace models
# ---------------------------------------------------------------------------


class RegisterUserRequest(BaseModel):
    first_name: str
    last_name: str
    email: str
    phone_number: str = ""


class CreateListingRequest(BaseModel):
    listing_type: str
    title: str
    description: str = ""
    details: dict[str, Any] = Field(default_factory=dict)
    images: list[str] = Field(default_factory=list)


class CreateInterestRequest(BaseModel):
    listing_id: str
    message: str = ""


class MyListingsResponse(BaseModel):
    """The caller's listings grouped by listing type."""

    success: bool = True
    data: dict[str, list[ListingResponse]] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Notification models
# ---------------------------------------------------------------------------


class NotificationResponse(BaseModel):
    """Mirrors freeco.notifications.dispatcher.Notification."""

    id: str
    recipient: str
    type: str
    title: str
    message: str
    related_family: str = ""
    related_id: str = ""
    read: bool = False
    created_at: str = ""


# ---------------------------------------------------------------------------
# Admin models
# ---------------------------------------------------------------------------


class SystemConfigResponse(BaseModel):
    """Mirrors freeco.config.system_config.SystemConfig."""

    site_name: str
    site_description: str
    contact_email: str
    contact_phone: str
    max_images_per_ad: int
    max_ad_duration_days: int
    allow_user_registration: bool
    maintenance_mode: bool
    disclaimer_text: str = ""
    terms_of_service: str = ""


class AuditEntryResponse(BaseModel):
    """Mirrors freeco.security.audit_log.AuditEntry."""

    id: str
    timestamp: str
    actor: str
    actor_role: str
    action: str
    family: str
    entity_ids: list[str] = Field(default_factory=list)
    matched_count: int = 0
    details: dict[str, Any] = Field(default_factory=dict)
    success: bool = True


class AuditExportResponse(BaseModel):
    """Exported audit log content."""

    format: str
    content: str
    record_count: int = 0
