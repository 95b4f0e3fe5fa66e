"""Security primitives for password hashing and token signing."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import os
import time
from typing import Any

PASSWORD_HASH_ALGORITHM = "pbkdf2_sha256"
DEFAULT_HASH_ITERATIONS = 120_000
MAX_HASH_ITERATIONS = 10_000_000
SALT_BYTES = 16


class TokenError(ValueError):
    """Base class for signed token failures."""


class TokenInvalid(TokenError):
    """Token is malformed, tampered with or signed by another key."""


class TokenExpired(TokenError):
    """Token signature is valid but its expiry has passed."""


def _b64url_encode(raw: bytes) -> str:
    """Return URL-safe base64 string without padding."""
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def _b64url_decode(value: str) -> bytes:
    """Decode URL-safe base64 string with optional missing padding."""
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode((value + padding).encode("utf-8"))


def hash_password(password: str, *, iterations: int = DEFAULT_HASH_ITERATIONS) -> str:
    """Hash password using PBKDF2-HMAC-SHA256 with random salt.

    The iteration count is stored alongside salt and digest so the work factor
    can be raised later without invalidating existing hashes.

    Raises ``UnicodeEncodeError`` (a ``ValueError``) for text with lone
    surrogates, which has no UTF-8 form.
    """
    salt = os.urandom(SALT_BYTES)
    derived = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return (
        f"{PASSWORD_HASH_ALGORITHM}${iterations}$"
        f"{_b64url_encode(salt)}${_b64url_encode(derived)}"
    )


def verify_password(password: str, stored_hash: str) -> bool:
    """Verify password against a stored PBKDF2 hash, never raising."""
    if not isinstance(password, str) or not isinstance(stored_hash, str):
        return False
    try:
        algo, rounds_raw, salt_b64, digest_b64 = stored_hash.split("$", 3)
        rounds = int(rounds_raw)
        salt = _b64url_decode(salt_b64)
        expected = _b64url_decode(digest_b64)
        candidate = password.encode("utf-8")
    except (ValueError, binascii.Error):
        # UnicodeEncodeError (lone surrogates) is a ValueError too.
        return False
    if algo != PASSWORD_HASH_ALGORITHM or not 0 < rounds <= MAX_HASH_ITERATIONS:
        return False

    derived = hashlib.pbkdf2_hmac("sha256", candidate, salt, rounds)
    return hmac.compare_digest(derived, expected)


def needs_rehash(stored_hash: str, iterations: int) -> bool:
    """Return whether a stored hash uses a lower work factor than configured."""
    try:
        algo, rounds_raw, _ = stored_hash.split("$", 2)
        return algo != PASSWORD_HASH_ALGORITHM or int(rounds_raw) < iterations
    except ValueError:
        return True


def _sign(signing_input: bytes, secret_key: str) -> bytes:
    return hmac.new(secret_key.encode("utf-8"), signing_input, hashlib.sha256).digest()


def build_signed_token(payload: dict[str, Any], secret_key: str) -> str:
    """Create compact signed token using JWT-like 3-part structure."""
    header = {"alg": "HS256", "typ": "JWT"}
    header_part = _b64url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8"))
    payload_part = _b64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    signing_input = f"{header_part}.{payload_part}".encode("utf-8")
    signature_part = _b64url_encode(_sign(signing_input, secret_key))
    return f"{header_part}.{payload_part}.{signature_part}"


def decode_signed_token(
    token: str, secret_key: str, *, now: float | None = None
) -> dict[str, Any]:
    """Decode and verify compact signed token.

    Raises ``TokenInvalid`` for structural or signature problems and
    ``TokenExpired`` when ``now`` is at or past the ``exp`` claim. The
    signature is checked first, so a foreign token is never reported as
    expired. ``now`` is sampled once when not supplied.
    """
    current = time.time() if now is None else now
    if not isinstance(token, str) or token.count(".") != 2:
        raise TokenInvalid("Malformed token")
    header_part, payload_part, signature_part = token.split(".")

    signing_input = f"{header_part}.{payload_part}".encode("utf-8")
    try:
        got_sig = _b64url_decode(signature_part)
    except (ValueError, binascii.Error) as exc:
        raise TokenInvalid("Malformed token signature") from exc
    if not hmac.compare_digest(_sign(signing_input, secret_key), got_sig):
        raise TokenInvalid("Invalid token signature")

    try:
        header = json.loads(_b64url_decode(header_part).decode("utf-8"))
        payload = json.loads(_b64url_decode(payload_part).decode("utf-8"))
    except (ValueError, binascii.Error) as exc:
        raise TokenInvalid("Invalid token payload") from exc
    if not isinstance(header, dict) or header.get("alg") != "HS256":
        raise TokenInvalid("Unsupported token algorithm")
    if not isinstance(payload, dict):
        raise TokenInvalid("Invalid token payload")

    exp = payload.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        raise TokenInvalid("Token has no expiry")
    if current >= exp:
        raise TokenExpired("Token expired")

    return payload
