"""Credential store for users and refresh token records.

Two backends share the ``CredentialStore`` protocol: SQLite (default) and
MongoDB (selected when ``MONGODB_URI`` is configured). Uniqueness of email and
username is enforced by the backend itself (unique constraint / unique index)
and reported as ``DuplicateUserError``.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Protocol

from pymongo import MongoClient
from pymongo.errors import DuplicateKeyError

from drone_analytics.auth.errors import DuplicateUserError
from drone_analytics.auth.models import RefreshTokenRecord, Role, User, UserStats, utc_now
from drone_analytics.core.config import StorageConfig
from drone_analytics.core.migrations import apply_migrations
from drone_analytics.core.mongo_migrations import apply_mongo_migrations

LOGGER = logging.getLogger(__name__)


class CredentialStore(Protocol):
    def find_by_email(self, email: str) -> User | None: ...

    def find_by_id(self, user_id: str) -> User | None: ...

    def create(self, user: User) -> User: ...

    def update_profile(
        self, user_id: str, *, username: str | None = None, email: str | None = None
    ) -> User | None: ...

    def deactivate(self, user_id: str) -> bool: ...

    def update_password(self, user_id: str, password_hash: str) -> bool: ...

    def list_users(self, limit: int, offset: int) -> list[User]: ...

    def user_stats(self) -> UserStats: ...

    def save_refresh_token(self, record: RefreshTokenRecord) -> None: ...

    def get_refresh_token(self, jti: str) -> RefreshTokenRecord | None: ...

    def revoke_refresh_token(self, jti: str) -> bool: ...

    def revoke_user_refresh_tokens(self, user_id: str) -> int: ...

    def close(self) -> None: ...


def _normalize_email(email: str) -> str:
    return email.strip().lower()


class SqliteAuthRepository:
    """SQLite-backed credential store sharing one locked connection."""

    _USER_COLUMNS = (
        "user_id, username, email, password_hash, role, is_active, created_at, updated_at"
    )

    def __init__(self, database_path: Path) -> None:
        """Apply schema migrations and open the shared connection."""
        apply_migrations(database_path)
        self._connection = sqlite3.connect(str(database_path), check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._connection.execute("PRAGMA foreign_keys = ON")
        self._lock = Lock()

    @staticmethod
    def _row_to_user(row: sqlite3.Row | None) -> User | None:
        if row is None:
            return None
        return User(
            user_id=row["user_id"],
            username=row["username"],
            email=row["email"],
            password_hash=row["password_hash"],
            role=Role(row["role"]),
            is_active=bool(row["is_active"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def _fetch_user(self, where: str, value: str) -> User | None:
        with self._lock:
            row = self._connection.execute(
                f"SELECT {self._USER_COLUMNS} FROM auth_users WHERE {where} = ?",
                (value,),
            ).fetchone()
        return self._row_to_user(row)

    def find_by_email(self, email: str) -> User | None:
        """Get user by email, case-insensitively."""
        return self._fetch_user("email", _normalize_email(email))

    def find_by_id(self, user_id: str) -> User | None:
        """Get user by id."""
        return self._fetch_user("user_id", user_id)

    def create(self, user: User) -> User:
        """Insert a new user, raising ``DuplicateUserError`` on taken email/username."""
        stored = user.model_copy(update={"email": _normalize_email(user.email)})
        with self._lock:
            try:
                self._connection.execute(
                    f"INSERT INTO auth_users({self._USER_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        stored.user_id,
                        stored.username,
                        stored.email,
                        stored.password_hash,
                        str(stored.role),
                        int(stored.is_active),
                        stored.created_at.isoformat(),
                        stored.updated_at.isoformat(),
                    ),
                )
                self._connection.commit()
            except sqlite3.IntegrityError as exc:
                self._connection.rollback()
                if "UNIQUE" in str(exc).upper():
                    raise DuplicateUserError(str(exc)) from exc
                raise
        return stored

    def update_profile(
        self, user_id: str, *, username: str | None = None, email: str | None = None
    ) -> User | None:
        """Update username/email of a user; ``None`` fields are left unchanged."""
        assignments: list[str] = []
        params: list[Any] = []
        if username is not None:
            assignments.append("username = ?")
            params.append(username)
        if email is not None:
            assignments.append("email = ?")
            params.append(_normalize_email(email))
        if assignments:
            assignments.append("updated_at = ?")
            params.extend([utc_now().isoformat(), user_id])
            with self._lock:
                try:
                    self._connection.execute(
                        f"UPDATE auth_users SET {', '.join(assignments)} WHERE user_id = ?",
                        params,
                    )
                    self._connection.commit()
                except sqlite3.IntegrityError as exc:
                    self._connection.rollback()
                    if "UNIQUE" in str(exc).upper():
                        raise DuplicateUserError(str(exc)) from exc
                    raise
        return self.find_by_id(user_id)

    def _update_user(self, user_id: str, assignment: str, value: Any) -> bool:
        with self._lock:
            cursor = self._connection.execute(
                f"UPDATE auth_users SET {assignment} = ?, updated_at = ? WHERE user_id = ?",
                (value, utc_now().isoformat(), user_id),
            )
            self._connection.commit()
        return cursor.rowcount > 0

    def deactivate(self, user_id: str) -> bool:
        """Soft-delete a user by clearing its active flag."""
        return self._update_user(user_id, "is_active", 0)

    def update_password(self, user_id: str, password_hash: str) -> bool:
        """Replace the stored password hash."""
        return self._update_user(user_id, "password_hash", password_hash)

    def list_users(self, limit: int, offset: int) -> list[User]:
        """List users ordered by creation time, newest first."""
        with self._lock:
            rows = self._connection.execute(
                f"""
                SELECT {self._USER_COLUMNS} FROM auth_users
                ORDER BY created_at DESC, user_id
                LIMIT ? OFFSET ?
                """,
                (limit, offset),
            ).fetchall()
        return [user for user in map(self._row_to_user, rows) if user is not None]

    def user_stats(self) -> UserStats:
        """Count all, active and admin users."""
        with self._lock:
            row = self._connection.execute(
                """
                SELECT
                  COUNT(*) AS total_users,
                  COALESCE(SUM(is_active), 0) AS active_users,
                  COALESCE(SUM(CASE WHEN role = 'admin' THEN 1 ELSE 0 END), 0) AS admin_users
                FROM auth_users
                """
            ).fetchone()
        return UserStats(
            total_users=int(row["total_users"]),
            active_users=int(row["active_users"]),
            admin_users=int(row["admin_users"]),
        )

    def save_refresh_token(self, record: RefreshTokenRecord) -> None:
        """Save refresh token record for rotation/revocation."""
        with self._lock:
            self._connection.execute(
                """
                INSERT INTO auth_refresh_tokens(jti, user_id, token_hash, expires_at, revoked)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(jti) DO UPDATE SET
                  token_hash = excluded.token_hash,
                  expires_at = excluded.expires_at,
                  revoked = excluded.revoked
                """,
                (
                    record.jti,
                    record.user_id,
                    record.token_hash,
                    record.expires_at,
                    int(record.revoked),
                ),
            )
            self._connection.commit()

    def get_refresh_token(self, jti: str) -> RefreshTokenRecord | None:
        """Get refresh token record by jti."""
        with self._lock:
            row = self._connection.execute(
                """
                SELECT jti, user_id, token_hash, expires_at, revoked
                FROM auth_refresh_tokens WHERE jti = ?
                """,
                (jti,),
            ).fetchone()
        if row is None:
            return None
        return RefreshTokenRecord(
            jti=row["jti"],
            user_id=row["user_id"],
            token_hash=row["token_hash"],
            expires_at=int(row["expires_at"]),
            revoked=bool(row["revoked"]),
        )

    def revoke_refresh_token(self, jti: str) -> bool:
        """Revoke one record; return ``False`` when it was already revoked or missing."""
        with self._lock:
            cursor = self._connection.execute(
                "UPDATE auth_refresh_tokens SET revoked = 1 WHERE jti = ? AND revoked = 0",
                (jti,),
            )
            self._connection.commit()
        return cursor.rowcount == 1

    def revoke_user_refresh_tokens(self, user_id: str) -> int:
        """Revoke every active refresh token of a user."""
        with self._lock:
            cursor = self._connection.execute(
                "UPDATE auth_refresh_tokens SET revoked = 1 WHERE user_id = ? AND revoked = 0",
                (user_id,),
            )
            self._connection.commit()
        return cursor.rowcount

    def close(self) -> None:
        """Close SQLite resources."""
        with self._lock:
            self._connection.close()


class MongoAuthRepository:
    """MongoDB-backed credential store using unique indexes for identity fields."""

    def __init__(self, mongo_uri: str, db_name: str) -> None:
        """Connect, verify reachability and apply index migrations."""
        self._client: MongoClient = MongoClient(
            mongo_uri, serverSelectionTimeoutMS=3000, tz_aware=True
        )
        self._client.admin.command("ping")
        db = self._client[db_name]
        apply_mongo_migrations(db)
        self._users = db["auth_users"]
        self._refresh = db["auth_refresh_tokens"]

    @staticmethod
    def _doc_to_user(doc: dict[str, Any] | None) -> User | None:
        if not doc:
            return None
        doc.pop("username_key", None)
        return User.model_validate(doc)

    def find_by_email(self, email: str) -> User | None:
        """Get user by email, case-insensitively."""
        return self._doc_to_user(
            self._users.find_one({"email": _normalize_email(email)}, {"_id": 0})
        )

    def find_by_id(self, user_id: str) -> User | None:
        """Get user by id."""
        return self._doc_to_user(self._users.find_one({"user_id": user_id}, {"_id": 0}))

    def create(self, user: User) -> User:
        """Insert a new user, raising ``DuplicateUserError`` on taken email/username."""
        stored = user.model_copy(update={"email": _normalize_email(user.email)})
        doc = stored.model_dump(mode="python")
        doc["role"] = str(stored.role)
        doc["username_key"] = stored.username.lower()
        try:
            self._users.insert_one(doc)
        except DuplicateKeyError as exc:
            raise DuplicateUserError(str(exc)) from exc
        return stored

    def update_profile(
        self, user_id: str, *, username: str | None = None, email: str | None = None
    ) -> User | None:
        """Update username/email of a user; ``None`` fields are left unchanged."""
        changes: dict[str, Any] = {}
        if username is not None:
            changes["username"] = username
            changes["username_key"] = username.lower()
        if email is not None:
            changes["email"] = _normalize_email(email)
        if changes:
            changes["updated_at"] = utc_now()
            try:
                self._users.update_one({"user_id": user_id}, {"$set": changes})
            except DuplicateKeyError as exc:
                raise DuplicateUserError(str(exc)) from exc
        return self.find_by_id(user_id)

    def deactivate(self, user_id: str) -> bool:
        """Soft-delete a user by clearing its active flag."""
        result = self._users.update_one(
            {"user_id": user_id},
            {"$set": {"is_active": False, "updated_at": utc_now()}},
        )
        return result.matched_count > 0

    def update_password(self, user_id: str, password_hash: str) -> bool:
        """Replace the stored password hash."""
        result = self._users.update_one(
            {"user_id": user_id},
            {"$set": {"password_hash": password_hash, "updated_at": utc_now()}},
        )
        return result.matched_count > 0

    def list_users(self, limit: int, offset: int) -> list[User]:
        """List users ordered by creation time, newest first."""
        cursor = (
            self._users.find({}, {"_id": 0})
            .sort([("created_at", -1), ("user_id", 1)])
            .skip(offset)
            .limit(limit)
        )
        return [user for user in map(self._doc_to_user, cursor) if user is not None]

    def user_stats(self) -> UserStats:
        """Count all, active and admin users."""
        return UserStats(
            total_users=self._users.count_documents({}),
            active_users=self._users.count_documents({"is_active": True}),
            admin_users=self._users.count_documents({"role": str(Role.ADMIN)}),
        )

    def save_refresh_token(self, record: RefreshTokenRecord) -> None:
        """Save refresh token record for rotation/revocation."""
        doc = record.model_dump()
        doc["expires_at_dt"] = datetime.fromtimestamp(record.expires_at, tz=timezone.utc)
        self._refresh.update_one({"jti": record.jti}, {"$set": doc}, upsert=True)

    def get_refresh_token(self, jti: str) -> RefreshTokenRecord | None:
        """Get refresh token record by jti."""
        doc = self._refresh.find_one({"jti": jti}, {"_id": 0, "expires_at_dt": 0})
        return RefreshTokenRecord.model_validate(doc) if doc else None

    def revoke_refresh_token(self, jti: str) -> bool:
        """Revoke one record; return ``False`` when it was already revoked or missing."""
        result = self._refresh.update_one(
            {"jti": jti, "revoked": False}, {"$set": {"revoked": True}}
        )
        return result.modified_count == 1

    def revoke_user_refresh_tokens(self, user_id: str) -> int:
        """Revoke every active refresh token of a user."""
        result = self._refresh.update_many(
            {"user_id": user_id, "revoked": False}, {"$set": {"revoked": True}}
        )
        return result.modified_count

    def close(self) -> None:
        """Close the MongoDB client."""
        self._client.close()


def create_auth_repository(
    config: StorageConfig, app_root: Path
) -> SqliteAuthRepository | MongoAuthRepository:
    """Build the configured credential store backend."""
    if config.mongodb_uri:
        LOGGER.info("credential_store_backend: mongodb")
        return MongoAuthRepository(config.mongodb_uri, config.mongodb_db)

    sqlite_path = Path(config.sqlite_path)
    if not sqlite_path.is_absolute():
        sqlite_path = app_root / sqlite_path
    LOGGER.info("credential_store_backend: sqlite")
    return SqliteAuthRepository(sqlite_path)
