"""Authentication API router."""

from __future__ import annotations

from typing import Callable

from fastapi import APIRouter, Depends, Request

from drone_analytics.api.contracts import (
    ApiErrorResponse,
    AuthSessionResponse,
    LogoutResponse,
    MessageResponse,
    UserResponse,
)
from drone_analytics.auth.middleware import get_current_identity
from drone_analytics.auth.models import (
    AuthIdentity,
    ChangePasswordRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    UpdateProfileRequest,
)
from drone_analytics.auth.rate_limiter import RateLimiter
from drone_analytics.auth.service import AuthService

_ERRORS = {
    401: {"model": ApiErrorResponse},
    422: {"model": ApiErrorResponse},
}
_RATE_LIMITED = {429: {"model": ApiErrorResponse}}


def client_key(request: Request, endpoint: str) -> str:
    """Build the rate-limit key for a request: client address plus endpoint."""
    client_ip = (request.client.host if request.client else "") or "unknown"
    return f"{client_ip}:{endpoint}"


def create_auth_router(service: AuthService, rate_limiter: RateLimiter) -> APIRouter:
    """Build authentication router for the credential and session endpoints."""
    router = APIRouter(prefix="/api/auth", tags=["auth"])

    def rate_limited(endpoint: str) -> Callable[[Request], None]:
        def dependency(request: Request) -> None:
            rate_limiter.hit(client_key(request, endpoint))

        return dependency

    @router.post(
        "/register",
        status_code=201,
        response_model=UserResponse,
        responses={
            **_ERRORS,
            **_RATE_LIMITED,
            403: {"model": ApiErrorResponse},
            409: {"model": ApiErrorResponse},
        },
        dependencies=[Depends(rate_limited("register"))],
    )
    def register(req: RegisterRequest) -> UserResponse:
        """Create a new account with the default role."""
        user = service.register(req.username, req.email, req.password, role=req.role)
        return UserResponse(user=user)

    @router.post(
        "/login",
        response_model=AuthSessionResponse,
        responses={**_ERRORS, **_RATE_LIMITED},
        dependencies=[Depends(rate_limited("login"))],
    )
    def login(req: LoginRequest) -> AuthSessionResponse:
        """Authenticate user and return token pair."""
        session = service.login(req.email, req.password)
        return AuthSessionResponse(**session.model_dump())

    @router.post(
        "/refresh-token",
        response_model=AuthSessionResponse,
        responses={**_ERRORS, **_RATE_LIMITED},
        dependencies=[Depends(rate_limited("refresh"))],
    )
    def refresh(req: RefreshRequest) -> AuthSessionResponse:
        """Rotate refresh token and issue new session tokens."""
        session = service.refresh(req.refresh_token)
        return AuthSessionResponse(**session.model_dump())

    @router.get("/profile", response_model=UserResponse, responses=_ERRORS)
    def get_profile(
        identity: AuthIdentity = Depends(get_current_identity),
    ) -> UserResponse:
        """Return the current user's profile."""
        return UserResponse(user=service.get_profile(identity.user_id))

    @router.put(
        "/profile",
        response_model=UserResponse,
        responses={**_ERRORS, 409: {"model": ApiErrorResponse}},
    )
    def update_profile(
        req: UpdateProfileRequest,
        identity: AuthIdentity = Depends(get_current_identity),
    ) -> UserResponse:
        """Change username and/or email of the current user."""
        user = service.update_profile(
            identity.user_id, username=req.username, email=req.email
        )
        return UserResponse(user=user)

    @router.put("/change-password", response_model=MessageResponse, responses=_ERRORS)
    def change_password(
        req: ChangePasswordRequest,
        identity: AuthIdentity = Depends(get_current_identity),
    ) -> MessageResponse:
        """Replace the current user's password and end other sessions."""
        service.change_password(identity.user_id, req.old_password, req.new_password)
        return MessageResponse(message="Password changed successfully")

    @router.post("/logout", response_model=LogoutResponse, responses=_ERRORS)
    def logout(identity: AuthIdentity = Depends(get_current_identity)) -> LogoutResponse:
        """Revoke all refresh tokens of the current user."""
        revoked = service.logout(identity.user_id)
        return LogoutResponse(status="ok", revoked_sessions=revoked)

    return router
