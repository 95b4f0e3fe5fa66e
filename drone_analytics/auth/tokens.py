"""Access/refresh token issuance and verification."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable

from drone_analytics.auth.models import Role
from drone_analytics.core.config import AuthConfig
from drone_analytics.core.security import (
    TokenInvalid,
    build_signed_token,
    decode_signed_token,
)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

_REQUIRED_CLAIMS = ("iss", "sub", "type", "iat", "exp", "jti")


@dataclass(frozen=True)
class IssuedToken:
    """Freshly minted token with its expiry (unix seconds) and id."""

    token: str
    expires_at: int
    jti: str


@dataclass(frozen=True)
class TokenClaims:
    """Verified claims of an access or refresh token."""

    subject: str
    role: Role | None
    token_type: str
    issued_at: int
    expires_at: int
    jti: str


class TokenIssuer:
    """Mints and verifies HMAC-signed tokens with a process-wide secret."""

    def __init__(
        self,
        *,
        secret_key: str,
        issuer: str,
        access_token_ttl_seconds: int,
        refresh_token_ttl_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret_key:
            raise ValueError("Token signing secret must not be empty")
        self._secret_key = secret_key
        self._issuer = issuer
        self._access_ttl = max(1, int(access_token_ttl_seconds))
        self._refresh_ttl = max(1, int(refresh_token_ttl_seconds))
        self._clock = clock

    @classmethod
    def from_config(
        cls, config: AuthConfig, *, clock: Callable[[], float] = time.time
    ) -> "TokenIssuer":
        return cls(
            secret_key=config.secret_key,
            issuer=config.issuer,
            access_token_ttl_seconds=config.access_token_ttl_seconds,
            refresh_token_ttl_seconds=config.refresh_token_ttl_seconds,
            clock=clock,
        )

    @property
    def access_token_ttl_seconds(self) -> int:
        return self._access_ttl

    def _issue(self, claims: dict[str, Any], ttl: int) -> IssuedToken:
        now_ts = int(self._clock())
        jti = uuid.uuid4().hex
        payload = {
            "iss": self._issuer,
            **claims,
            "iat": now_ts,
            "exp": now_ts + ttl,
            "jti": jti,
        }
        return IssuedToken(
            token=build_signed_token(payload, self._secret_key),
            expires_at=payload["exp"],
            jti=jti,
        )

    def issue_access_token(self, user_id: str, role: Role) -> IssuedToken:
        """Mint a short-lived access token carrying subject and role."""
        return self._issue(
            {"sub": user_id, "role": str(role), "type": ACCESS_TOKEN_TYPE},
            self._access_ttl,
        )

    def issue_refresh_token(self, user_id: str) -> IssuedToken:
        """Mint a long-lived refresh token; the role is re-read from storage on use."""
        return self._issue({"sub": user_id, "type": REFRESH_TOKEN_TYPE}, self._refresh_ttl)

    def verify(self, token: str, *, expected_type: str = ACCESS_TOKEN_TYPE) -> TokenClaims:
        """Verify signature, claims and expiry.

        Raises ``TokenInvalid`` or ``TokenExpired``. The clock is read once.
        """
        payload = decode_signed_token(token, self._secret_key, now=self._clock())

        missing = [claim for claim in _REQUIRED_CLAIMS if payload.get(claim) in (None, "")]
        if missing:
            raise TokenInvalid(f"Token missing claims: {', '.join(missing)}")
        if payload["iss"] != self._issuer:
            raise TokenInvalid("Invalid token issuer")
        if payload["type"] != expected_type:
            raise TokenInvalid("Invalid token type")

        role: Role | None = None
        if expected_type == ACCESS_TOKEN_TYPE:
            try:
                role = Role(payload.get("role"))
            except ValueError as exc:
                raise TokenInvalid("Invalid token role") from exc

        try:
            issued_at = int(payload["iat"])
            expires_at = int(payload["exp"])
        except (TypeError, ValueError) as exc:
            raise TokenInvalid("Invalid token timestamps") from exc

        return TokenClaims(
            subject=str(payload["sub"]),
            role=role,
            token_type=str(payload["type"]),
            issued_at=issued_at,
            expires_at=expires_at,
            jti=str(payload["jti"]),
        )
