"""Users router -- registration of identities verified upstream."""

from __future__ import annotations

from fastapi import APIRouter, status

from web.backend.app.middleware.auth import get_services
from web.backend.app.models.api import RegisterUserRequest, UserResponse
from web.backend.app.routers.moderation import entity_response

router = APIRouter(prefix="/api/users", tags=["users"])


@router.post(
    "/register",
    response_model=UserResponse,
    summary="Register a new user",
    status_code=status.HTTP_201_CREATED,
)
async def register_user(body: RegisterUserRequest):
    """Create an active user with the ``user`` role.

    Elevated roles are only granted afterwards through the admin role route.
    """
    user = await get_services().marketplace.register_user(
        body.first_name,
        body.last_name,
        body.email,
        phone_number=body.phone_number,
    )
    return entity_response(user)
