"""Per-request auth chain: bearer extraction, token verification, role checks."""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from fastapi import Request
from fastapi.responses import JSONResponse

from drone_analytics.api.errors import auth_error_response
from drone_analytics.auth.errors import AuthError, Forbidden, Unauthenticated
from drone_analytics.auth.models import AuthIdentity, Role
from drone_analytics.auth.service import AuthService

LOGGER = logging.getLogger(__name__)

PUBLIC_PATHS = frozenset(
    {
        "/api/health",
        "/api/auth/register",
        "/api/auth/login",
        "/api/auth/refresh-token",
    }
)


def extract_bearer_token(authorization: str | None) -> str:
    """Extract bearer token from authorization header value."""
    parts = (authorization or "").strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return ""
    return parts[1].strip()


def authenticate_request(service: AuthService, authorization: str | None) -> AuthIdentity:
    """Resolve the caller identity from an ``Authorization`` header value."""
    token = extract_bearer_token(authorization)
    if not token:
        raise Unauthenticated("Missing bearer token", reason="missing_token")
    return service.verify_access_token(token)


def authorize_role(identity: AuthIdentity, allowed_roles: Iterable[Role | str]) -> None:
    """Raise ``Forbidden`` unless the identity's role is in ``allowed_roles``."""
    allowed = {Role(role) for role in allowed_roles}
    if identity.role not in allowed:
        LOGGER.info(
            "role_denied", extra={"user_id": identity.user_id, "reason": str(identity.role)}
        )
        raise Forbidden()


def create_auth_middleware(
    service: AuthService, public_paths: Iterable[str] = PUBLIC_PATHS
) -> Callable:
    """Create middleware function that validates access tokens on API routes."""
    open_paths = frozenset(public_paths)

    async def auth_middleware(request: Request, call_next: Callable):
        """Validate auth for protected API paths and attach identity to request state."""
        path = request.url.path
        if not path.startswith("/api/") or (path.rstrip("/") or "/") in open_paths:
            return await call_next(request)

        try:
            identity = authenticate_request(service, request.headers.get("authorization"))
        except AuthError as exc:
            return auth_error_response(exc)

        request.state.identity = identity
        return await call_next(request)

    return auth_middleware


def get_current_identity(request: Request) -> AuthIdentity:
    """FastAPI dependency returning the identity attached by the middleware."""
    identity = getattr(request.state, "identity", None)
    if not isinstance(identity, AuthIdentity):
        raise Unauthenticated("Missing bearer token", reason="missing_token")
    return identity


def require_roles(*roles: Role | str) -> Callable[[Request], AuthIdentity]:
    """Build a dependency that enforces role membership for a route."""
    allowed = tuple(Role(role) for role in roles)

    def dependency(request: Request) -> AuthIdentity:
        identity = get_current_identity(request)
        authorize_role(identity, allowed)
        return identity

    return dependency
