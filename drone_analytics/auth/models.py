"""Pydantic models for authentication domain."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Role(StrEnum):
    """Roles recognised by role-based access checks."""

    USER = "user"
    ADMIN = "admin"


class User(BaseModel):
    """Persisted user identity record. Never returned to clients as-is."""

    user_id: str
    username: str
    email: str
    password_hash: str = Field(repr=False)
    role: Role = Role.USER
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def to_public(self) -> "UserPublic":
        return UserPublic(
            user_id=self.user_id,
            username=self.username,
            email=self.email,
            role=self.role,
            is_active=self.is_active,
            created_at=self.created_at,
        )


class UserPublic(BaseModel):
    """Outward view of a user without credential material."""

    user_id: str
    username: str
    email: str
    role: Role
    is_active: bool
    created_at: datetime


class AuthIdentity(BaseModel):
    """Identity resolved from a verified access token."""

    user_id: str
    role: Role
    expires_at: int


class RefreshTokenRecord(BaseModel):
    """Refresh token persistence record."""

    jti: str
    user_id: str
    token_hash: str
    expires_at: int
    revoked: bool = False


class AuthSession(BaseModel):
    """Token pair returned by login and refresh."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserPublic


class UserStats(BaseModel):
    """Aggregate user counters for the admin dashboard."""

    total_users: int
    active_users: int
    admin_users: int


class RegisterRequest(BaseModel):
    """Registration request payload."""

    username: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=1024)
    role: Role | None = None


class LoginRequest(BaseModel):
    """Login request payload."""

    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=1024)


class RefreshRequest(BaseModel):
    """Refresh request payload."""

    refresh_token: str = Field(min_length=1)


class ChangePasswordRequest(BaseModel):
    """Password change request payload."""

    old_password: str = Field(min_length=1, max_length=1024)
    new_password: str = Field(min_length=1, max_length=1024)


class UpdateProfileRequest(BaseModel):
    """Profile update payload; omitted fields are left unchanged."""

    username: str | None = Field(default=None, max_length=255)
    email: str | None = Field(default=None, max_length=255)
