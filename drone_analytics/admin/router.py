"""Admin API router for user management."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from drone_analytics.api.contracts import (
    ApiErrorResponse,
    MessageResponse,
    UserResponse,
    UsersListResponse,
    UserStatsResponse,
)
from drone_analytics.auth.middleware import require_roles
from drone_analytics.auth.models import AuthIdentity, RegisterRequest, Role
from drone_analytics.auth.service import AuthService

_ERRORS = {
    401: {"model": ApiErrorResponse},
    403: {"model": ApiErrorResponse},
}


def create_admin_router(service: AuthService) -> APIRouter:
    """Build admin router; every route requires an admin access token."""
    require_admin = require_roles(Role.ADMIN)
    router = APIRouter(
        prefix="/api/admin",
        tags=["admin"],
        dependencies=[Depends(require_admin)],
        responses=_ERRORS,
    )

    @router.get("/users", response_model=UsersListResponse)
    def list_users(
        limit: int = Query(default=50, ge=1, le=200),
        offset: int = Query(default=0, ge=0),
    ) -> UsersListResponse:
        users = service.list_users(limit=limit, offset=offset)
        return UsersListResponse(users=users, total=len(users), limit=limit, offset=offset)

    @router.get(
        "/users/{user_id}",
        response_model=UserResponse,
        responses={404: {"model": ApiErrorResponse}},
    )
    def get_user(user_id: str) -> UserResponse:
        return UserResponse(user=service.get_user(user_id))

    @router.post(
        "/users",
        status_code=201,
        response_model=UserResponse,
        responses={409: {"model": ApiErrorResponse}, 422: {"model": ApiErrorResponse}},
    )
    def create_user(
        req: RegisterRequest, actor: AuthIdentity = Depends(require_admin)
    ) -> UserResponse:
        """Create a user, optionally with the admin role."""
        user = service.register(
            req.username, req.email, req.password, role=req.role, actor=actor
        )
        return UserResponse(user=user)

    @router.delete(
        "/users/{user_id}",
        response_model=MessageResponse,
        responses={404: {"model": ApiErrorResponse}, 422: {"model": ApiErrorResponse}},
    )
    def deactivate_user(
        user_id: str, actor: AuthIdentity = Depends(require_admin)
    ) -> MessageResponse:
        service.deactivate_user(actor, user_id)
        return MessageResponse(message="User deactivated successfully")

    @router.get("/stats", response_model=UserStatsResponse)
    def stats() -> UserStatsResponse:
        return UserStatsResponse(stats=service.user_stats())

    return router
