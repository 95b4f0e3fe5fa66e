from __future__ import annotations

import pytest

from drone_analytics.core.config import INSECURE_DEFAULT_SECRET, AppConfig


def test_app_config_defaults() -> None:
    config = AppConfig.from_env({})

    assert config.auth.secret_key == INSECURE_DEFAULT_SECRET
    assert config.auth.access_token_ttl_seconds == 900
    assert config.auth.refresh_token_ttl_seconds == 604800
    assert config.auth.bootstrap_admin_enabled is False
    assert config.storage.sqlite_path == "runtime/auth.db"
    assert config.storage.mongodb_uri == ""
    assert config.security.cors_allowed_origins == ["http://localhost:3000"]
    assert config.security.auth_rate_limit_max_attempts == 5
    assert config.security.auth_rate_limit_window_seconds == 900


def test_app_config_reads_environment() -> None:
    config = AppConfig.from_env(
        {
            "AUTH_SECRET_KEY": "  s3cret  ",
            "AUTH_ACCESS_TOKEN_TTL_SECONDS": "60",
            "AUTH_ADMIN_EMAIL": "Root@Example.COM",
            "AUTH_ADMIN_PASSWORD": "Root1234",
            "CORS_ALLOWED_ORIGINS": "https://a.example, ,https://b.example",
            "AUTH_RATE_LIMIT_MAX_ATTEMPTS": "3",
        }
    )

    assert config.auth.secret_key == "s3cret"
    assert config.auth.access_token_ttl_seconds == 60
    assert config.auth.admin_email == "root@example.com"
    assert config.auth.bootstrap_admin_enabled is True
    assert config.security.cors_allowed_origins == ["https://a.example", "https://b.example"]
    assert config.security.auth_rate_limit_max_attempts == 3


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("AUTH_ACCESS_TOKEN_TTL_SECONDS", "fifteen"),
        ("AUTH_RATE_LIMIT_WINDOW_SECONDS", "0"),
        ("REQUEST_MAX_BYTES", "-1"),
    ],
)
def test_app_config_rejects_bad_numbers(name: str, value: str) -> None:
    with pytest.raises(ValueError, match=name):
        AppConfig.from_env({name: value})
