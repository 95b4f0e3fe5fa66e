"""Versioned MongoDB index migrations for credential store collections."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from pymongo.errors import DuplicateKeyError

from drone_analytics.core.logging import CORRELATION_ID_CTX

LOGGER = logging.getLogger(__name__)

MigrationFn = Callable[[Any], None]


def _migration_0001_auth_user_indexes(db: Any) -> None:
    db["auth_users"].create_index("user_id", unique=True)
    db["auth_users"].create_index("email", unique=True)
    db["auth_users"].create_index("username_key", unique=True)
    db["auth_users"].create_index("created_at")


def _migration_0002_refresh_token_indexes(db: Any) -> None:
    db["auth_refresh_tokens"].create_index("jti", unique=True)
    db["auth_refresh_tokens"].create_index([("user_id", 1), ("revoked", 1)])
    db["auth_refresh_tokens"].create_index(
        "expires_at_dt",
        expireAfterSeconds=0,
        name="idx_auth_refresh_tokens_expires_at_ttl",
    )


MIGRATIONS: list[tuple[str, MigrationFn]] = [
    ("0001_auth_user_indexes", _migration_0001_auth_user_indexes),
    ("0002_refresh_token_indexes", _migration_0002_refresh_token_indexes),
]


def apply_mongo_migrations(db: Any) -> list[str]:
    """Apply pending MongoDB migrations to ``db`` and return their ids."""
    migration_collection = db["schema_migrations"]
    migration_collection.create_index("migration_id", unique=True)

    applied: list[str] = []
    for migration_id, migration_fn in MIGRATIONS:
        if migration_collection.find_one({"migration_id": migration_id}):
            continue
        migration_fn(db)
        try:
            migration_collection.insert_one(
                {
                    "migration_id": migration_id,
                    "applied_at": datetime.now(timezone.utc),
                    "correlation_id": CORRELATION_ID_CTX.get(),
                }
            )
        except DuplicateKeyError:
            # Another process recorded it first.
            continue
        applied.append(migration_id)

    if applied:
        LOGGER.info("mongo_migrations_applied: %s", ", ".join(applied))
    return applied
