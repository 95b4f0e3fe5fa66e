"""Shared API error types and helpers."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from fastapi import HTTPException
from fastapi.responses import JSONResponse

from drone_analytics.auth.errors import (
    AuthError,
    Conflict,
    Forbidden,
    InvalidCredentials,
    NotFound,
    RateLimited,
    Unauthenticated,
    ValidationError,
)


class ApiErrorCode(StrEnum):
    """Machine-readable API error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_CONFLICT = "AUTH_CONFLICT"
    AUTH_INVALID_CREDENTIALS = "AUTH_INVALID_CREDENTIALS"
    AUTH_MISSING_TOKEN = "AUTH_MISSING_TOKEN"
    AUTH_TOKEN_INVALID = "AUTH_TOKEN_INVALID"
    AUTH_TOKEN_EXPIRED = "AUTH_TOKEN_EXPIRED"
    AUTH_FORBIDDEN = "AUTH_FORBIDDEN"
    AUTH_RATE_LIMITED = "AUTH_RATE_LIMITED"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    REQUEST_TOO_LARGE = "REQUEST_TOO_LARGE"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class ApiError(HTTPException):
    """HTTP exception carrying stable API error envelope."""

    def __init__(
        self,
        *,
        status_code: int,
        error_code: ApiErrorCode,
        message: str,
        headers: dict[str, str] | None = None,
    ) -> None:
        """Build an HTTP exception with standard detail structure."""
        super().__init__(
            status_code=status_code,
            detail={"error_code": str(error_code), "message": message},
            headers=headers,
        )


# One entry per AuthError subclass; tests assert the table stays complete.
AUTH_ERROR_STATUS: dict[type[AuthError], tuple[int, ApiErrorCode]] = {
    ValidationError: (422, ApiErrorCode.VALIDATION_ERROR),
    Conflict: (409, ApiErrorCode.AUTH_CONFLICT),
    InvalidCredentials: (401, ApiErrorCode.AUTH_INVALID_CREDENTIALS),
    Unauthenticated: (401, ApiErrorCode.AUTH_TOKEN_INVALID),
    Forbidden: (403, ApiErrorCode.AUTH_FORBIDDEN),
    RateLimited: (429, ApiErrorCode.AUTH_RATE_LIMITED),
    NotFound: (404, ApiErrorCode.USER_NOT_FOUND),
}

_UNAUTHENTICATED_CODES = {
    "missing_token": ApiErrorCode.AUTH_MISSING_TOKEN,
    "token_expired": ApiErrorCode.AUTH_TOKEN_EXPIRED,
}


def to_api_error(exc: AuthError) -> ApiError:
    """Map an auth failure to its HTTP status and error code."""
    try:
        status_code, error_code = AUTH_ERROR_STATUS[type(exc)]
    except KeyError as missing:
        raise TypeError(f"Unmapped auth error: {type(exc).__name__}") from missing

    headers: dict[str, str] | None = None
    if isinstance(exc, Unauthenticated):
        error_code = _UNAUTHENTICATED_CODES.get(exc.reason, error_code)
        headers = {"WWW-Authenticate": "Bearer"}
    elif isinstance(exc, RateLimited):
        headers = {"Retry-After": str(exc.retry_after)}

    return ApiError(
        status_code=status_code,
        error_code=error_code,
        message=exc.message,
        headers=headers,
    )


def to_error_payload(detail: Any, status_code: int) -> dict[str, str]:
    """Normalize HTTP exception detail into stable error payload."""
    if isinstance(detail, dict):
        error_code = str(detail.get("error_code") or f"HTTP_{status_code}")
        message = str(detail.get("message") or detail.get("detail") or "HTTP error")
        return {"error_code": error_code, "message": message}
    return {
        "error_code": f"HTTP_{status_code}",
        "message": str(detail or "HTTP error"),
    }


def auth_error_response(exc: AuthError) -> JSONResponse:
    """Render an auth failure as a JSON error response."""
    api_error = to_api_error(exc)
    return JSONResponse(
        status_code=api_error.status_code,
        content=to_error_payload(api_error.detail, api_error.status_code),
        headers=api_error.headers,
    )
