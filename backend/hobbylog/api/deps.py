"""Shared API dependencies and error mapping."""

from __future__ import annotations

from fastapi import Header, HTTPException

from hobbylog.services.exceptions import HobbyLogError

# Service error code -> HTTP status
ERROR_STATUS = {
    "VALIDATION_ERROR": 400,
    "SELF_REFERENCE": 400,
    "PERMISSION_DENIED": 403,
    "TAG_NOT_FOUND": 404,
    "LOG_NOT_FOUND": 404,
    "TAG_CONFLICT": 409,
    "STORAGE_ERROR": 503,
}


async def get_current_user_id(
    x_user_id: str | None = Header(None, description="Authenticated user id"),
) -> str:
    """Return the acting user's id.

    Session handling lives in front of this service; it forwards the
    authenticated user in the ``X-User-Id`` header.
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return x_user_id


async def get_optional_user_id(
    x_user_id: str | None = Header(None, description="Authenticated user id"),
) -> str | None:
    """Return the acting user's id if the request is authenticated."""
    return x_user_id or None


def http_error(error: HobbyLogError) -> HTTPException:
    """Convert a service error into an HTTPException."""
    return HTTPException(
        status_code=ERROR_STATUS.get(error.code, 500),
        detail=error.message,
    )
