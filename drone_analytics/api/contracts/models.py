"""Pydantic API response models used in OpenAPI contracts."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from drone_analytics.auth.models import UserPublic, UserStats


class ApiErrorResponse(BaseModel):
    """Stable error envelope for API responses."""

    error_code: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error message")


class HealthResponse(BaseModel):
    """Health check response payload."""

    status: Literal["ok"]


class AuthSessionResponse(BaseModel):
    """Authentication session response payload."""

    access_token: str
    refresh_token: str
    token_type: str
    expires_in: int
    user: UserPublic


class UserResponse(BaseModel):
    """Single user payload."""

    user: UserPublic


class UsersListResponse(BaseModel):
    """Paginated user listing."""

    users: list[UserPublic] = Field(default_factory=list)
    total: int
    limit: int
    offset: int


class UserStatsResponse(BaseModel):
    """Admin user statistics payload."""

    stats: UserStats


class LogoutResponse(BaseModel):
    """Logout response payload."""

    status: Literal["ok"]
    revoked_sessions: int = 0


class MessageResponse(BaseModel):
    """Plain acknowledgement payload."""

    message: str
