"""FastAPI application assembly for the drone analytics auth core."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from drone_analytics.admin.router import create_admin_router
from drone_analytics.api.contracts import HealthResponse
from drone_analytics.api.http_setup import (
    register_exception_handlers,
    register_http_middleware,
)
from drone_analytics.auth.middleware import create_auth_middleware
from drone_analytics.auth.rate_limiter import RateLimiter
from drone_analytics.auth.repository import CredentialStore, create_auth_repository
from drone_analytics.auth.router import create_auth_router
from drone_analytics.auth.service import AuthService
from drone_analytics.auth.tokens import TokenIssuer
from drone_analytics.core.config import AppConfig

LOGGER = logging.getLogger(__name__)


def create_app(
    config: AppConfig,
    *,
    app_root: Path,
    repo: CredentialStore | None = None,
    clock: Callable[[], float] | None = None,
) -> FastAPI:
    """Wire configuration, auth components and routers into an app.

    ``clock`` replaces both the token clock and the rate-limit clock, which
    lets tests move time forward deterministically.
    """
    credential_store = repo or create_auth_repository(config.storage, app_root)
    tokens = TokenIssuer.from_config(config.auth, clock=clock or time.time)
    rate_limiter = RateLimiter(
        max_attempts=config.security.auth_rate_limit_max_attempts,
        window_seconds=config.security.auth_rate_limit_window_seconds,
        clock=clock or time.monotonic,
    )
    service = AuthService(repo=credential_store, config=config.auth, tokens=tokens)
    service.bootstrap_admin_user()

    app = FastAPI(title="Drone Analytics API", version="1.0.0")
    app.state.auth_service = service
    app.state.rate_limiter = rate_limiter

    # Added first so it runs innermost, after correlation ids are set.
    app.middleware("http")(create_auth_middleware(service))
    register_http_middleware(app, config=config, logger=LOGGER)
    register_exception_handlers(app, logger=LOGGER)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("shutdown")
    def close_credential_store() -> None:
        if repo is None:
            credential_store.close()
        LOGGER.info("app_shutdown")

    @app.get("/api/health", response_model=HealthResponse, tags=["health"])
    def health() -> HealthResponse:
        return HealthResponse(status="ok")

    app.include_router(create_auth_router(service, rate_limiter))
    app.include_router(create_admin_router(service))
    return app
