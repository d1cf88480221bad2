"""FastAPI application for the freeco classifieds backend.

Provides REST API endpoints wrapping the freeco Python package for:
- Moderation queues and actions for moderators (``/api/mod``)
- The same plus role assignment, system config and audit for admins (``/api/admin``)
- Listing and interest creation and owner self-service
- User registration and notification inboxes
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

# Ensure the freeco package is importable by adding the project root to sys.path.
_project_root = str(Path(__file__).resolve().parents[3])
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from freeco import __version__, settings
from freeco.auth.models import Role
from freeco.moderation.errors import ModerationError
from freeco.settings import configure_logging
from web.backend.app.middleware.auth import actor_from_headers, get_services
from web.backend.app.routers import admin, interests, listings, moderation, notifications, users

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="freeco API",
    description=(
        "REST API for the freeco classifieds marketplace. "
        "Provides endpoints for moderation, administration, listings, "
        "interests and notifications."
    ),
    version=__version__,
)

# ---------------------------------------------------------------------------
# CORS middleware (allow all origins for development)
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

STATUS_BY_CATEGORY = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "invalid_action": status.HTTP_400_BAD_REQUEST,
    "unauthorized": status.HTTP_401_UNAUTHORIZED,
    "forbidden": status.HTTP_403_FORBIDDEN,
    "validation_error": status.HTTP_400_BAD_REQUEST,
    "dispatch_failure": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "store_failure": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "failed": status.HTTP_503_SERVICE_UNAVAILABLE,
}


@app.exception_handler(ModerationError)
async def moderation_error_handler(request: Request, exc: ModerationError):
    code = STATUS_BY_CATEGORY.get(exc.category, status.HTTP_500_INTERNAL_SERVER_ERROR)
    if code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=code, content=exc.to_dict())


# ---------------------------------------------------------------------------
# Maintenance mode
# ---------------------------------------------------------------------------

_READ_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


@app.middleware("http")
async def maintenance_guard(request: Request, call_next):
    """Refuse writes from non-admins while maintenance mode is on."""
    if request.method in _READ_METHODS or not request.url.path.startswith("/api/"):
        return await call_next(request)
    actor = actor_from_headers(
        request.headers.get("X-Actor-Id"), request.headers.get("X-Actor-Role")
    )
    if actor is not None and actor.role is Role.admin:
        return await call_next(request)
    try:
        config = await get_services().config.get()
    except ModerationError as exc:
        return JSONResponse(status_code=STATUS_BY_CATEGORY[exc.category], content=exc.to_dict())
    if config.maintenance_mode:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "success": False,
                "message": f"{config.site_name} is under maintenance, please try again later",
                "error": "failed",
            },
        )
    return await call_next(request)


# ---------------------------------------------------------------------------
# Include routers
# ---------------------------------------------------------------------------
app.include_router(moderation.router)
app.include_router(admin.extras_router)
app.include_router(admin.router)
app.include_router(listings.router)
app.include_router(interests.router)
app.include_router(notifications.router)
app.include_router(users.router)


# ---------------------------------------------------------------------------
# Root and health-check endpoints
# ---------------------------------------------------------------------------


@app.get("/", tags=["meta"])
async def root():
    """Return basic API information."""
    return {
        "name": "freeco API",
        "version": __version__,
        "description": "Classifieds marketplace moderation REST API",
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


@app.get("/health", tags=["meta"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("web.backend.app.main:app", host=settings.HOST, port=settings.PORT)
