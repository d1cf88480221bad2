"""Exception hierarchy for moderation and marketplace operations.

Every error carries a ``category`` string that the HTTP adapter and CLI
render alongside a human-readable message.
"""

from __future__ import annotations

from typing import Any, Optional


class ModerationError(Exception):
    """Base class for all domain errors raised by the core."""

    category = "failed"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert the error to the structured failure result shape."""
        result: dict[str, Any] = {
            "success": False,
            "message": self.message,
            "error": self.category,
        }
        if self.details:
            result["details"] = self.details
        return result


class NotFound(ModerationError):
    """Target id is absent from the store."""

    category = "not_found"


class InvalidAction(ModerationError):
    """Action is not defined for the entity family."""

    category = "invalid_action"


class Unauthorized(ModerationError):
    """Actor's role is too low for the requested action."""

    category = "unauthorized"


class Forbidden(ModerationError):
    """Ownership check failed."""

    category = "forbidden"


class ValidationError(ModerationError):
    """Malformed input: empty id set, non-id values, bad literals."""

    category = "validation_error"


class DispatchFailure(ModerationError):
    """Notification delivery failed. Never propagated past the engine."""

    category = "dispatch_failure"


class StoreFailure(ModerationError):
    """Underlying persistence error. The caller may retry the request."""

    category = "store_failure"

    def __init__(self, message: str = "Server error", details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message, details)


class ModerationTimeout(ModerationError):
    """The request exceeded its deadline. Retryable."""

    category = "failed"
