"""{ data, error } envelope used by every endpoint."""

from typing import Any

from pydantic import BaseModel

# Error codes carried in error.code
UNAUTHORIZED = "UNAUTHORIZED"
ACCESS_DENIED = "ACCESS_DENIED"
NOT_FOUND = "NOT_FOUND"
VALIDATION_ERROR = "VALIDATION_ERROR"
BACKEND_MISCONFIGURED = "BACKEND_MISCONFIGURED"
RATE_LIMITED = "RATE_LIMITED"
PAYMENT_REQUIRED = "PAYMENT_REQUIRED"
AI_SERVICE_ERROR = "AI_SERVICE_ERROR"
DATABASE_UNAVAILABLE = "DATABASE_UNAVAILABLE"


def success_response(data: Any) -> dict[str, Any]:
    """Wrap a payload in the success envelope.

    Pydantic models are dumped in JSON mode with unset optionals dropped,
    so callers can hand over response models directly.
    """
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json", exclude_none=True)
    return {"data": data, "error": None}


def error_response(code: str, message: str) -> dict[str, Any]:
    """Create an error response envelope."""
    return {"data": None, "error": {"code": code, "message": message}}
