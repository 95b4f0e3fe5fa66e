from __future__ import annotations

import pytest

from drone_analytics.core.security import (
    TokenExpired,
    TokenInvalid,
    build_signed_token,
    decode_signed_token,
    hash_password,
    needs_rehash,
    verify_password,
)


def test_hash_password_round_trip_and_mismatch() -> None:
    stored = hash_password("Pass1234", iterations=1000)

    assert verify_password("Pass1234", stored) is True
    assert verify_password("Pass12345", stored) is False
    assert verify_password("", stored) is False


def test_hash_password_uses_random_salt() -> None:
    first = hash_password("Pass1234", iterations=1000)
    second = hash_password("Pass1234", iterations=1000)

    assert first != second
    assert first.startswith("pbkdf2_sha256$1000$")
    assert "Pass1234" not in first


@pytest.mark.parametrize(
    "stored",
    [
        "",
        "garbage",
        "md5$1$abc$def",
        "pbkdf2_sha256$notanumber$abc$def",
        "pbkdf2_sha256$0$abc$def",
        "pbkdf2_sha256$1000$!!$??",
    ],
)
def test_verify_password_returns_false_for_malformed_hash(stored: str) -> None:
    assert verify_password("Pass1234", stored) is False


def test_verify_password_rejects_non_string_input() -> None:
    stored = hash_password("Pass1234", iterations=1000)

    assert verify_password(None, stored) is False  # type: ignore[arg-type]
    assert verify_password("Pass1234", None) is False  # type: ignore[arg-type]


def test_verify_password_returns_false_for_unencodable_input() -> None:
    stored = hash_password("Pass1234", iterations=1000)

    assert verify_password("\ud800", stored) is False
    assert verify_password("Pass1234\udcff", stored) is False
    assert verify_password("Pass1234", "pbkdf2_sha256$1000$\ud800$abc") is False


def test_hash_password_rejects_unencodable_input() -> None:
    with pytest.raises(ValueError):
        hash_password("Pass\ud8001234", iterations=1000)


def test_needs_rehash_detects_lower_work_factor() -> None:
    stored = hash_password("Pass1234", iterations=1000)

    assert needs_rehash(stored, 1000) is False
    assert needs_rehash(stored, 5000) is True
    assert needs_rehash("broken", 1000) is True


def test_signed_token_expiry_boundary() -> None:
    token = build_signed_token({"sub": "u1", "exp": 1000}, "secret")

    assert decode_signed_token(token, "secret", now=999.999)["sub"] == "u1"
    with pytest.raises(TokenExpired):
        decode_signed_token(token, "secret", now=1000)
    with pytest.raises(TokenExpired):
        decode_signed_token(token, "secret", now=5000)


def test_signed_token_with_other_secret_is_invalid_even_when_expired() -> None:
    token = build_signed_token({"sub": "u1", "exp": 1000}, "other-secret")

    with pytest.raises(TokenInvalid):
        decode_signed_token(token, "secret", now=10)
    with pytest.raises(TokenInvalid):
        decode_signed_token(token, "secret", now=99_999)


def test_signed_token_tampered_payload_is_invalid() -> None:
    token = build_signed_token({"sub": "u1", "role": "user", "exp": 1000}, "secret")
    forged = build_signed_token({"sub": "u1", "role": "admin", "exp": 1000}, "secret")
    header, _, signature = token.split(".")
    _, forged_payload, _ = forged.split(".")

    with pytest.raises(TokenInvalid):
        decode_signed_token(f"{header}.{forged_payload}.{signature}", "secret", now=10)


@pytest.mark.parametrize("token", ["", "abc", "a.b", "a.b.c.d", "###.###.###"])
def test_signed_token_malformed_structure_is_invalid(token: str) -> None:
    with pytest.raises(TokenInvalid):
        decode_signed_token(token, "secret", now=10)


def test_signed_token_without_expiry_is_invalid() -> None:
    token = build_signed_token({"sub": "u1"}, "secret")

    with pytest.raises(TokenInvalid):
        decode_signed_token(token, "secret", now=10)
