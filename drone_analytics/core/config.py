"""Application configuration loaded from environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping

LOGGER = logging.getLogger(__name__)

INSECURE_DEFAULT_SECRET = "dev-insecure-secret-change-me"


def _env_str(env: Mapping[str, str], name: str, default: str = "") -> str:
    return env.get(name, "").strip() or default


def _env_int(env: Mapping[str, str], name: str, default: int, *, minimum: int = 1) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_list(env: Mapping[str, str], name: str, default: str) -> list[str]:
    raw = env.get(name)
    if raw is None:
        raw = default
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass(frozen=True)
class AuthConfig:
    """Token signing, password hashing and bootstrap admin settings."""

    secret_key: str
    access_token_ttl_seconds: int
    refresh_token_ttl_seconds: int
    issuer: str
    password_hash_iterations: int
    admin_username: str
    admin_email: str
    admin_password: str

    @property
    def bootstrap_admin_enabled(self) -> bool:
        return bool(self.admin_email and self.admin_password)


@dataclass(frozen=True)
class StorageConfig:
    """Credential store backend; MongoDB wins when a URI is configured."""

    sqlite_path: str
    mongodb_uri: str
    mongodb_db: str


@dataclass(frozen=True)
class LoggingConfig:
    level: str


@dataclass(frozen=True)
class SecurityConfig:
    """API perimeter settings: CORS, body size and auth rate limiting."""

    cors_allowed_origins: list[str]
    request_max_bytes: int
    auth_rate_limit_max_attempts: int
    auth_rate_limit_window_seconds: int


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    auth: AuthConfig
    storage: StorageConfig
    logging: LoggingConfig
    security: SecurityConfig

    @staticmethod
    def from_env(env: Mapping[str, str] | None = None) -> "AppConfig":
        """Build app config from ``env`` (the process environment by default).

        Raises ``ValueError`` for malformed or out-of-range numeric settings.
        """
        env = os.environ if env is None else env

        secret_key = _env_str(env, "AUTH_SECRET_KEY", INSECURE_DEFAULT_SECRET)
        if secret_key == INSECURE_DEFAULT_SECRET:
            LOGGER.warning("auth_secret_key_not_configured")

        auth = AuthConfig(
            secret_key=secret_key,
            access_token_ttl_seconds=_env_int(env, "AUTH_ACCESS_TOKEN_TTL_SECONDS", 900),
            refresh_token_ttl_seconds=_env_int(
                env, "AUTH_REFRESH_TOKEN_TTL_SECONDS", 7 * 24 * 3600
            ),
            issuer=_env_str(env, "AUTH_ISSUER", "drone-analytics"),
            password_hash_iterations=_env_int(
                env, "AUTH_PASSWORD_HASH_ITERATIONS", 120_000
            ),
            admin_username=_env_str(env, "AUTH_ADMIN_USERNAME", "admin"),
            admin_email=_env_str(env, "AUTH_ADMIN_EMAIL").lower(),
            admin_password=_env_str(env, "AUTH_ADMIN_PASSWORD"),
        )
        storage = StorageConfig(
            sqlite_path=_env_str(env, "AUTH_SQLITE_PATH", "runtime/auth.db"),
            mongodb_uri=_env_str(env, "MONGODB_URI"),
            mongodb_db=_env_str(env, "MONGODB_DB", "drone_analytics"),
        )
        security = SecurityConfig(
            cors_allowed_origins=_env_list(
                env, "CORS_ALLOWED_ORIGINS", "http://localhost:3000"
            ),
            request_max_bytes=_env_int(env, "REQUEST_MAX_BYTES", 10 * 1024 * 1024),
            auth_rate_limit_max_attempts=_env_int(env, "AUTH_RATE_LIMIT_MAX_ATTEMPTS", 5),
            auth_rate_limit_window_seconds=_env_int(
                env, "AUTH_RATE_LIMIT_WINDOW_SECONDS", 900
            ),
        )
        return AppConfig(
            auth=auth,
            storage=storage,
            logging=LoggingConfig(level=_env_str(env, "LOG_LEVEL", "INFO")),
            security=security,
        )
