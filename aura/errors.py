"""
Typed service errors.

Each error carries a stable ``code`` surfaced verbatim to callers and the
HTTP status it maps to.  Policy and validation errors are never retried.
"""

from __future__ import annotations

from typing import Any, Dict


class AuraError(Exception):
    """Base class for errors surfaced to API callers."""

    code = "error"
    status_code = 500
    default_message = "Request failed."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": False, "code": self.code, "message": self.message}


class Unauthenticated(AuraError):
    code = "UNAUTHENTICATED"
    status_code = 401
    default_message = "Authentication required."


class UserNotFound(AuraError):
    code = "NOT_FOUND_USER"
    status_code = 404
    default_message = "User not found."


class ArtifactNotFound(AuraError):
    code = "NOT_FOUND_AVATAR"
    status_code = 404
    default_message = "Avatar not found."


class NoCredits(AuraError):
    code = "NO_CREDITS"
    status_code = 403
    default_message = "No credits remaining. Upgrade to premium for unlimited avatars!"


class SizeRequiresPremium(AuraError):
    code = "SIZE_REQUIRES_PREMIUM"
    status_code = 403
    default_message = "HD sizes require premium. Upgrade now!"


class Forbidden(AuraError):
    code = "FORBIDDEN"
    status_code = 403
    default_message = "Forbidden."


class InvalidRequest(AuraError):
    code = "INVALID_REQUEST"
    status_code = 400
    default_message = "Invalid request."


class GenerationUnavailable(AuraError):
    """No image-capable provider could serve a photo-based request."""

    code = "GENERATION_UNAVAILABLE"
    status_code = 503
    default_message = (
        "Photo transformation is temporarily unavailable. "
        "Please try the Custom Avatar mode instead."
    )
