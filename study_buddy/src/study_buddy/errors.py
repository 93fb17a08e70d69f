"""
Error taxonomy shared by the auth gate and the tutor pipeline.

Every error carries the HTTP status it maps to and a short, non-specific
message that is safe to return to the caller. Anything more detailed belongs
in the server-side log.
"""

from typing import Any, Dict, Optional


class StudyBuddyError(Exception):
    """Base class for errors that translate directly into an HTTP response."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message}


class BadRequestError(StudyBuddyError):
    """Missing or unknown action, user type, or required field."""

    status_code = 400
    default_message = "Invalid request"


class AuthError(StudyBuddyError):
    """Bad credentials, suspended account, or missing/invalid session (401/403)."""

    status_code = 401
    default_message = "Invalid credentials"


class RateLimitError(StudyBuddyError):
    """Caller is temporarily blocked by a local rate limiter."""

    status_code = 429
    default_message = "Too many requests"

    def __init__(self, message: Optional[str] = None, wait_seconds: Optional[int] = None):
        super().__init__(message)
        self.wait_seconds = wait_seconds

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        if self.wait_seconds is not None:
            body["rateLimited"] = True
            body["waitSeconds"] = self.wait_seconds
        return body


class UpstreamRateLimitError(StudyBuddyError):
    """AI gateway answered 429."""

    status_code = 429
    default_message = "Rate limit exceeded. Please try again in a moment."


class UpstreamQuotaError(StudyBuddyError):
    """AI gateway answered 402 (credits exhausted)."""

    status_code = 402
    default_message = "AI credits exhausted. Please add credits to continue."


class UpstreamError(StudyBuddyError):
    """Any other non-OK or empty answer from the AI gateway."""

    status_code = 500
    default_message = "AI service error"


class InternalError(StudyBuddyError):
    status_code = 500
    default_message = "Internal server error"
