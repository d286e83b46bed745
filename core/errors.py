"""Domain errors for the check-in flow.

Every error carries the HTTP status it maps to and a short ``reason`` code so
the Flask error handler can turn it into a JSON rejection without knowing the
concrete type.
"""

from __future__ import annotations

from typing import Optional


class AttendanceError(Exception):
    """Base class for all expected, user-facing failures."""

    http_status: int = 400
    reason: str = "error"

    def __init__(self, message: str, *, reason: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if reason:
            self.reason = reason

    def to_dict(self):
        return {"success": False, "error": self.message, "reason": self.reason}


class ValidationError(AttendanceError):
    """Missing or malformed request fields."""

    reason = "invalid request"


class NotFoundError(AttendanceError):
    http_status = 404
    reason = "not found"


class PolicyError(AttendanceError):
    """Expected rejection the user can recover from (enrollment, duplicates...)."""


class VerificationError(AttendanceError):
    """Identity could not be verified (oracle failure or low similarity)."""

    reason = "verification failed"


class DuplicateAttendanceError(PolicyError):
    """Ledger uniqueness violation: a record already exists for the day."""

    reason = "already marked today"


class UpstreamServiceError(AttendanceError):
    """A configured external API could not serve the request."""

    http_status = 502
    reason = "upstream unavailable"


class AuthError(AttendanceError):
    http_status = 401
    reason = "unauthorized"


__all__ = [
    "AttendanceError",
    "ValidationError",
    "NotFoundError",
    "PolicyError",
    "VerificationError",
    "DuplicateAttendanceError",
    "UpstreamServiceError",
    "AuthError",
]
