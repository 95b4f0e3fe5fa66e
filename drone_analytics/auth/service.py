"""Authentication service for registration, login, refresh and admin operations."""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
import uuid

from drone_analytics.auth.errors import (
    Conflict,
    DuplicateUserError,
    Forbidden,
    InvalidCredentials,
    NotFound,
    TokenError,
    TokenExpired,
    Unauthenticated,
    ValidationError,
)
from drone_analytics.auth.models import (
    AuthIdentity,
    AuthSession,
    RefreshTokenRecord,
    Role,
    User,
    UserPublic,
    UserStats,
)
from drone_analytics.auth.repository import CredentialStore
from drone_analytics.auth.tokens import REFRESH_TOKEN_TYPE, TokenIssuer
from drone_analytics.core.config import AuthConfig
from drone_analytics.core.security import hash_password, needs_rehash, verify_password

LOGGER = logging.getLogger(__name__)

USERNAME_RE = re.compile(r"^[A-Za-z0-9_.-]{3,50}$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PASSWORD_MIN_LENGTH = 8
MAX_PAGE_SIZE = 200


def validate_username(username: str) -> str:
    value = (username or "").strip()
    if not USERNAME_RE.match(value):
        raise ValidationError(
            "Username must be 3-50 characters of letters, digits, '_', '.' or '-'",
            field="username",
        )
    return value


def validate_email(email: str) -> str:
    value = (email or "").strip().lower()
    if len(value) > 255 or not EMAIL_RE.match(value):
        raise ValidationError("Email address is not valid", field="email")
    return value


def validate_password(password: str) -> str:
    """Enforce minimum password strength: length, a letter and a digit."""
    value = password or ""
    if (
        len(value) < PASSWORD_MIN_LENGTH
        or not any(ch.isalpha() for ch in value)
        or not any(ch.isdigit() for ch in value)
    ):
        raise ValidationError(
            f"Password must be at least {PASSWORD_MIN_LENGTH} characters "
            "and contain a letter and a digit",
            field="password",
        )
    try:
        value.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise ValidationError("Password contains invalid characters", field="password") from exc
    return value


class AuthService:
    """Coordinates the credential store, password hasher and token issuer."""

    def __init__(
        self, repo: CredentialStore, config: AuthConfig, tokens: TokenIssuer
    ) -> None:
        """Initialize service dependencies."""
        self._repo = repo
        self._config = config
        self._tokens = tokens
        self._hash_iterations = config.password_hash_iterations
        # Verified against for unknown emails so both paths cost one PBKDF2 run.
        self._dummy_hash = hash_password(
            uuid.uuid4().hex, iterations=self._hash_iterations
        )

    @property
    def tokens(self) -> TokenIssuer:
        return self._tokens

    def bootstrap_admin_user(self) -> UserPublic | None:
        """Ensure the configured bootstrap admin exists."""
        if not self._config.bootstrap_admin_enabled:
            return None
        existing = self._repo.find_by_email(self._config.admin_email)
        if existing is not None:
            return existing.to_public()
        try:
            user = self._repo.create(
                User(
                    user_id=uuid.uuid4().hex,
                    username=self._config.admin_username,
                    email=self._config.admin_email,
                    password_hash=hash_password(
                        self._config.admin_password, iterations=self._hash_iterations
                    ),
                    role=Role.ADMIN,
                )
            )
        except DuplicateUserError:
            # Created concurrently by another worker.
            return None
        LOGGER.info("admin_bootstrapped", extra={"user_id": user.user_id})
        return user.to_public()

    def register(
        self,
        username: str,
        email: str,
        password: str,
        role: Role | None = None,
        actor: AuthIdentity | None = None,
    ) -> UserPublic:
        """Create a user account.

        Only an authenticated admin ``actor`` may create another admin.
        Uniqueness is left to the store so that concurrent registrations of
        the same email produce exactly one success.
        """
        clean_username = validate_username(username)
        clean_email = validate_email(email)
        validate_password(password)

        target_role = role or Role.USER
        if target_role == Role.ADMIN and (actor is None or actor.role != Role.ADMIN):
            raise Forbidden("Only administrators can create admin accounts")

        try:
            user = self._repo.create(
                User(
                    user_id=uuid.uuid4().hex,
                    username=clean_username,
                    email=clean_email,
                    password_hash=hash_password(password, iterations=self._hash_iterations),
                    role=target_role,
                )
            )
        except DuplicateUserError as exc:
            raise Conflict() from exc

        LOGGER.info("user_registered", extra={"user_id": user.user_id})
        return user.to_public()

    def login(self, email: str, password: str) -> AuthSession:
        """Authenticate credentials and issue access/refresh token pair.

        Unknown email, wrong password and inactive account are reported with
        the same ``InvalidCredentials`` error.
        """
        user = self._repo.find_by_email((email or "").strip().lower())
        if user is None:
            verify_password(password, self._dummy_hash)
            LOGGER.info("login_failed", extra={"reason": "invalid_credentials"})
            raise InvalidCredentials()

        password_ok = verify_password(password, user.password_hash)
        if not password_ok or not user.is_active:
            LOGGER.info(
                "login_failed",
                extra={"user_id": user.user_id, "reason": "invalid_credentials"},
            )
            raise InvalidCredentials()

        if needs_rehash(user.password_hash, self._hash_iterations):
            self._repo.update_password(
                user.user_id, hash_password(password, iterations=self._hash_iterations)
            )

        LOGGER.info("login_succeeded", extra={"user_id": user.user_id})
        return self._issue_session_for_user(user)

    def _issue_session_for_user(self, user: User) -> AuthSession:
        """Issue fresh access and refresh tokens for given user."""
        access = self._tokens.issue_access_token(user.user_id, user.role)
        refresh = self._tokens.issue_refresh_token(user.user_id)

        self._repo.save_refresh_token(
            RefreshTokenRecord(
                jti=refresh.jti,
                user_id=user.user_id,
                token_hash=self._hash_token(refresh.token),
                expires_at=refresh.expires_at,
                revoked=False,
            )
        )

        return AuthSession(
            access_token=access.token,
            refresh_token=refresh.token,
            token_type="bearer",
            expires_in=self._tokens.access_token_ttl_seconds,
            user=user.to_public(),
        )

    def refresh(self, refresh_token: str) -> AuthSession:
        """Validate refresh token, re-resolve the user and rotate the token pair."""
        try:
            claims = self._tokens.verify(refresh_token, expected_type=REFRESH_TOKEN_TYPE)
        except TokenExpired as exc:
            raise Unauthenticated("Refresh token expired", reason="token_expired") from exc
        except TokenError as exc:
            raise Unauthenticated("Invalid refresh token", reason="token_invalid") from exc

        record = self._repo.get_refresh_token(claims.jti)
        if record is None or record.user_id != claims.subject:
            raise Unauthenticated("Invalid refresh token", reason="token_invalid")
        if not hmac.compare_digest(record.token_hash, self._hash_token(refresh_token)):
            self._repo.revoke_refresh_token(claims.jti)
            raise Unauthenticated("Invalid refresh token", reason="token_invalid")

        # Losing the revoke race means the token was already used or revoked.
        if record.revoked or not self._repo.revoke_refresh_token(claims.jti):
            revoked = self._repo.revoke_user_refresh_tokens(record.user_id)
            LOGGER.warning(
                "refresh_token_reuse_detected",
                extra={"user_id": record.user_id, "reason": f"revoked={revoked}"},
            )
            raise Unauthenticated("Refresh token revoked", reason="token_revoked")

        user = self._repo.find_by_id(record.user_id)
        if user is None or not user.is_active:
            raise Unauthenticated("Account is not active", reason="account_inactive")

        LOGGER.info("session_refreshed", extra={"user_id": user.user_id})
        return self._issue_session_for_user(user)

    def verify_access_token(self, token: str) -> AuthIdentity:
        """Validate access token and return the identity it carries."""
        try:
            claims = self._tokens.verify(token)
        except TokenExpired as exc:
            raise Unauthenticated("Access token expired", reason="token_expired") from exc
        except TokenError as exc:
            raise Unauthenticated("Invalid access token", reason="token_invalid") from exc
        return AuthIdentity(
            user_id=claims.subject,
            role=claims.role or Role.USER,
            expires_at=claims.expires_at,
        )

    def change_password(self, user_id: str, old_password: str, new_password: str) -> None:
        """Replace the password after re-verifying the current one."""
        user = self._repo.find_by_id(user_id)
        if user is None or not user.is_active:
            raise Unauthenticated("Account is not active", reason="account_inactive")
        if not verify_password(old_password, user.password_hash):
            raise InvalidCredentials("Current password is incorrect")
        validate_password(new_password)

        self._repo.update_password(
            user_id, hash_password(new_password, iterations=self._hash_iterations)
        )
        self._repo.revoke_user_refresh_tokens(user_id)
        LOGGER.info("password_changed", extra={"user_id": user_id})

    def logout(self, user_id: str) -> int:
        """Revoke every active refresh token of the user."""
        revoked = self._repo.revoke_user_refresh_tokens(user_id)
        LOGGER.info("logged_out", extra={"user_id": user_id, "reason": f"revoked={revoked}"})
        return revoked

    def get_profile(self, user_id: str) -> UserPublic:
        user = self._repo.find_by_id(user_id)
        if user is None:
            raise NotFound()
        return user.to_public()

    def update_profile(
        self, user_id: str, *, username: str | None = None, email: str | None = None
    ) -> UserPublic:
        """Change username and/or email, keeping both unique."""
        clean_username = validate_username(username) if username is not None else None
        clean_email = validate_email(email) if email is not None else None
        try:
            user = self._repo.update_profile(
                user_id, username=clean_username, email=clean_email
            )
        except DuplicateUserError as exc:
            raise Conflict() from exc
        if user is None:
            raise NotFound()
        return user.to_public()

    def list_users(self, limit: int = 50, offset: int = 0) -> list[UserPublic]:
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}", field="limit")
        if offset < 0:
            raise ValidationError("offset must not be negative", field="offset")
        return [user.to_public() for user in self._repo.list_users(limit, offset)]

    def get_user(self, user_id: str) -> UserPublic:
        return self.get_profile(user_id)

    def deactivate_user(self, actor: AuthIdentity, user_id: str) -> None:
        """Soft-delete a user account and revoke its refresh tokens.

        The ownership rule is data-dependent, so it lives here rather than in
        the role check: nobody may deactivate their own account.
        """
        if actor.user_id == user_id:
            raise ValidationError("Cannot deactivate your own account", field="user_id")
        if not self._repo.deactivate(user_id):
            raise NotFound()
        self._repo.revoke_user_refresh_tokens(user_id)
        LOGGER.info(
            "user_deactivated", extra={"user_id": user_id, "reason": f"by={actor.user_id}"}
        )

    def user_stats(self) -> UserStats:
        return self._repo.user_stats()

    @staticmethod
    def _hash_token(token: str) -> str:
        """Hash raw token for storage/comparison."""
        return hashlib.sha256(token.encode("utf-8")).hexdigest()
