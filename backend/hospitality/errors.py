"""
Error taxonomy for the hospitality backend.

Every error carries the HTTP status the API layer renders it with, so
services raise domain errors and routers never build status codes by hand.
"""

from typing import Any, Optional


class HospitalityError(Exception):
    """Base class for all expected, user-facing errors."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(HospitalityError):
    """Malformed input (bad payload shape, non-UUID id, unknown status)."""

    status_code = 400
    default_message = "Validation error"


class AuthError(HospitalityError):
    """Missing or invalid bearer token, unknown user."""

    status_code = 401
    default_message = "Missing or invalid authorization header"


class AuthorizationError(HospitalityError):
    """Authenticated, but not allowed to do this."""

    status_code = 403
    default_message = "Insufficient permissions"


class NotFoundError(HospitalityError):
    status_code = 404
    default_message = "Not found"


class ConflictError(HospitalityError):
    """Request conflicts with current state (e.g. role still assigned)."""

    status_code = 400
    default_message = "Conflict"


class InvalidTransition(HospitalityError):
    """Requested status is not reachable from the record's current status."""

    status_code = 409
    default_message = "Invalid status transition"

    def __init__(self, current: Optional[str] = None, target: Optional[str] = None, message: Optional[str] = None):
        self.current = current
        self.target = target
        if message is None and current is not None:
            message = f"Cannot move from '{current}' to '{target}'"
        super().__init__(message, {"current": current, "target": target})


class UpstreamError(HospitalityError):
    """Persistence or network failure."""

    status_code = 502
    default_message = "Upstream failure"


def validation_details(errors) -> list:
    """Reduce pydantic error dicts to JSON-safe {loc, msg, type} entries."""
    return [
        {
            "loc": [str(part) for part in err.get("loc", ())],
            "msg": str(err.get("msg", "")),
            "type": str(err.get("type", "")),
        }
        for err in errors
    ]
