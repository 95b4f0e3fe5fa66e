from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from drone_analytics.core.migrations import apply_migrations


def test_apply_migrations_creates_credential_tables(tmp_path: Path) -> None:
    db_path = tmp_path / "nested" / "auth.db"

    applied = apply_migrations(db_path)

    assert applied == ["0001_auth_users.sql", "0002_auth_refresh_tokens.sql"]
    connection = sqlite3.connect(str(db_path))
    try:
        cursor = connection.cursor()
        tables = {
            row[0]
            for row in cursor.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            ).fetchall()
        }

        assert {"schema_migrations", "auth_users", "auth_refresh_tokens"} <= tables
    finally:
        connection.close()


def test_apply_migrations_is_idempotent(tmp_path: Path) -> None:
    db_path = tmp_path / "auth.db"

    apply_migrations(db_path)

    assert apply_migrations(db_path) == []


def test_auth_users_enforces_case_insensitive_uniqueness(tmp_path: Path) -> None:
    db_path = tmp_path / "auth.db"
    apply_migrations(db_path)

    connection = sqlite3.connect(str(db_path))
    try:
        insert = (
            "INSERT INTO auth_users(user_id, username, email, password_hash, role, "
            "is_active, created_at, updated_at) VALUES (?, ?, ?, 'h', 'user', 1, 'now', 'now')"
        )
        connection.execute(insert, ("u1", "alice", "alice@x.com"))
        with pytest.raises(sqlite3.IntegrityError):
            connection.execute(insert, ("u2", "ALICE", "other@x.com"))
        with pytest.raises(sqlite3.IntegrityError):
            connection.execute(
                insert.replace("'user'", "'root'"), ("u3", "carol", "carol@x.com")
            )
    finally:
        connection.close()
