"""Public API response contracts."""

from drone_analytics.api.contracts.models import (
    ApiErrorResponse,
    AuthSessionResponse,
    HealthResponse,
    LogoutResponse,
    MessageResponse,
    UserResponse,
    UsersListResponse,
    UserStatsResponse,
)

__all__ = [
    "ApiErrorResponse",
    "AuthSessionResponse",
    "HealthResponse",
    "LogoutResponse",
    "MessageResponse",
    "UserResponse",
    "UsersListResponse",
    "UserStatsResponse",
]
