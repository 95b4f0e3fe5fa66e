from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from drone_analytics.auth.errors import (
    Conflict,
    Forbidden,
    InvalidCredentials,
    NotFound,
    Unauthenticated,
    ValidationError,
)
from drone_analytics.auth.models import AuthIdentity, Role
from drone_analytics.auth.repository import SqliteAuthRepository
from drone_analytics.auth.service import AuthService
from drone_analytics.auth.tokens import TokenIssuer
from drone_analytics.core.security import hash_password
from tests.fakes import FakeClock, InMemoryCredentialStore, auth_config


def _build_service(
    repo=None, clock: FakeClock | None = None, **config_overrides
) -> tuple[AuthService, InMemoryCredentialStore, FakeClock]:
    config = auth_config(**config_overrides)
    clock = clock or FakeClock()
    repo = repo if repo is not None else InMemoryCredentialStore()
    service = AuthService(
        repo=repo, config=config, tokens=TokenIssuer.from_config(config, clock=clock)
    )
    service.bootstrap_admin_user()
    return service, repo, clock


def _admin_identity(service: AuthService) -> AuthIdentity:
    session = service.login("admin@test.local", "Admin1234")
    return service.verify_access_token(session.access_token)


def test_auth_service_bootstraps_admin_once() -> None:
    service, repo, _ = _build_service()

    service.bootstrap_admin_user()

    admins = [u for u in repo.users.values() if u.role == Role.ADMIN]
    assert len(admins) == 1
    assert admins[0].email == "admin@test.local"


def test_auth_service_skips_bootstrap_without_credentials() -> None:
    _, repo, _ = _build_service(admin_email="", admin_password="")

    assert repo.users == {}


def test_auth_service_register_login_and_verify_access_token() -> None:
    service, repo, _ = _build_service()

    user = service.register("alice", "Alice@X.com", "Pass1234")
    session = service.login("alice@x.com", "Pass1234")
    identity = service.verify_access_token(session.access_token)

    assert user.role == Role.USER
    assert user.email == "alice@x.com"
    assert "password_hash" not in user.model_dump()
    assert repo.users[user.user_id].password_hash != "Pass1234"
    assert identity.user_id == user.user_id
    assert identity.role == Role.USER
    assert session.token_type == "bearer"
    assert session.expires_in == 300


@pytest.mark.parametrize(
    ("username", "email", "password", "field"),
    [
        ("", "alice@x.com", "Pass1234", "username"),
        ("a", "alice@x.com", "Pass1234", "username"),
        ("alice smith", "alice@x.com", "Pass1234", "username"),
        ("alice", "not-an-email", "Pass1234", "email"),
        ("alice", "alice@x.com", "short1", "password"),
        ("alice", "alice@x.com", "onlyletters", "password"),
        ("alice", "alice@x.com", "12345678", "password"),
        ("alice", "alice@x.com", "Pass1234\ud800", "password"),
    ],
)
def test_auth_service_register_validation(
    username: str, email: str, password: str, field: str
) -> None:
    service, _, _ = _build_service()

    with pytest.raises(ValidationError) as exc:
        service.register(username, email, password)

    assert exc.value.field == field


def test_auth_service_register_duplicate_raises_conflict() -> None:
    service, _, _ = _build_service()
    service.register("alice", "alice@x.com", "Pass1234")

    with pytest.raises(Conflict):
        service.register("alice2", "ALICE@x.com", "Pass1234")
    with pytest.raises(Conflict):
        service.register("ALICE", "other@x.com", "Pass1234")


def test_auth_service_concurrent_registration_yields_one_conflict(tmp_path: Path) -> None:
    repo = SqliteAuthRepository(tmp_path / "auth.db")
    service, _, _ = _build_service(repo=repo)

    def attempt(index: int) -> str:
        try:
            service.register(f"alice{index}", "alice@x.com", "Pass1234")
        except Conflict:
            return "conflict"
        return "created"

    with ThreadPoolExecutor(max_workers=2) as pool:
        outcomes = sorted(pool.map(attempt, range(2)))
    repo.close()

    assert outcomes == ["conflict", "created"]


def test_auth_service_admin_role_requires_admin_actor() -> None:
    service, _, _ = _build_service()
    alice = service.register("alice", "alice@x.com", "Pass1234")
    alice_identity = AuthIdentity(user_id=alice.user_id, role=Role.USER, expires_at=0)

    with pytest.raises(Forbidden):
        service.register("mallory", "m@x.com", "Pass1234", role=Role.ADMIN)
    with pytest.raises(Forbidden):
        service.register(
            "mallory", "m@x.com", "Pass1234", role=Role.ADMIN, actor=alice_identity
        )

    created = service.register(
        "bob", "bob@x.com", "Pass1234", role=Role.ADMIN, actor=_admin_identity(service)
    )
    assert created.role == Role.ADMIN


def test_auth_service_login_failures_are_indistinguishable() -> None:
    service, _, _ = _build_service()
    service.register("alice", "alice@x.com", "Pass1234")
    bob = service.register("bob", "bob@x.com", "Pass1234")
    service.deactivate_user(_admin_identity(service), bob.user_id)

    failures = []
    for email, password in [
        ("alice@x.com", "WrongPass1"),
        ("nobody@x.com", "Pass1234"),
        ("bob@x.com", "Pass1234"),
    ]:
        with pytest.raises(InvalidCredentials) as exc:
            service.login(email, password)
        failures.append((type(exc.value), exc.value.message, str(exc.value)))

    assert len(set(failures)) == 1


def test_auth_service_login_rehashes_weaker_password_hash() -> None:
    service, repo, _ = _build_service()
    user = service.register("alice", "alice@x.com", "Pass1234")
    repo.update_password(user.user_id, hash_password("Pass1234", iterations=500))

    service.login("alice@x.com", "Pass1234")

    assert repo.users[user.user_id].password_hash.startswith("pbkdf2_sha256$1000$")


def test_auth_service_access_token_expiry_is_reported() -> None:
    service, _, clock = _build_service()
    service.register("alice", "alice@x.com", "Pass1234")
    session = service.login("alice@x.com", "Pass1234")

    clock.advance(300)
    with pytest.raises(Unauthenticated) as exc:
        service.verify_access_token(session.access_token)

    assert exc.value.reason == "token_expired"


def test_auth_service_refresh_rotates_token() -> None:
    service, repo, _ = _build_service()
    service.register("alice", "alice@x.com", "Pass1234")
    session = service.login("alice@x.com", "Pass1234")

    rotated = service.refresh(session.refresh_token)

    assert rotated.access_token
    assert rotated.refresh_token != session.refresh_token
    assert sum(1 for r in repo.refresh_tokens.values() if not r.revoked) == 1


def test_auth_service_refresh_reuse_revokes_all_sessions() -> None:
    service, _, _ = _build_service()
    service.register("alice", "alice@x.com", "Pass1234")
    session = service.login("alice@x.com", "Pass1234")
    rotated = service.refresh(session.refresh_token)

    with pytest.raises(Unauthenticated) as exc:
        service.refresh(session.refresh_token)
    assert exc.value.reason == "token_revoked"

    with pytest.raises(Unauthenticated):
        service.refresh(rotated.refresh_token)


def test_auth_service_refresh_rereads_role_and_active_state() -> None:
    service, repo, _ = _build_service()
    alice = service.register("alice", "alice@x.com", "Pass1234")
    session = service.login("alice@x.com", "Pass1234")
    repo.users[alice.user_id] = repo.users[alice.user_id].model_copy(
        update={"role": Role.ADMIN}
    )

    promoted = service.refresh(session.refresh_token)
    assert service.verify_access_token(promoted.access_token).role == Role.ADMIN

    repo.deactivate(alice.user_id)
    with pytest.raises(Unauthenticated) as exc:
        service.refresh(promoted.refresh_token)
    assert exc.value.reason == "account_inactive"


def test_auth_service_refresh_rejects_expired_and_access_tokens() -> None:
    service, _, clock = _build_service()
    service.register("alice", "alice@x.com", "Pass1234")
    session = service.login("alice@x.com", "Pass1234")

    with pytest.raises(Unauthenticated) as wrong_type:
        service.refresh(session.access_token)
    clock.advance(1200)
    with pytest.raises(Unauthenticated) as expired:
        service.refresh(session.refresh_token)

    assert wrong_type.value.reason == "token_invalid"
    assert expired.value.reason == "token_expired"


def test_auth_service_logout_invalidates_refresh_tokens() -> None:
    service, _, _ = _build_service()
    alice = service.register("alice", "alice@x.com", "Pass1234")
    first = service.login("alice@x.com", "Pass1234")
    second = service.login("alice@x.com", "Pass1234")

    assert service.logout(alice.user_id) == 2
    for session in (first, second):
        with pytest.raises(Unauthenticated):
            service.refresh(session.refresh_token)
    assert service.logout(alice.user_id) == 0


def test_auth_service_change_password() -> None:
    service, _, _ = _build_service()
    alice = service.register("alice", "alice@x.com", "Pass1234")
    session = service.login("alice@x.com", "Pass1234")

    with pytest.raises(InvalidCredentials):
        service.change_password(alice.user_id, "WrongPass1", "NewPass5678")
    with pytest.raises(ValidationError):
        service.change_password(alice.user_id, "Pass1234", "weak")

    service.change_password(alice.user_id, "Pass1234", "NewPass5678")

    with pytest.raises(InvalidCredentials):
        service.login("alice@x.com", "Pass1234")
    assert service.login("alice@x.com", "NewPass5678").access_token
    with pytest.raises(Unauthenticated):
        service.refresh(session.refresh_token)


def test_auth_service_update_profile() -> None:
    service, _, _ = _build_service()
    alice = service.register("alice", "alice@x.com", "Pass1234")
    service.register("bob", "bob@x.com", "Pass1234")

    updated = service.update_profile(alice.user_id, username="alice_w")

    assert updated.username == "alice_w"
    assert updated.email == "alice@x.com"
    with pytest.raises(Conflict):
        service.update_profile(alice.user_id, email="bob@x.com")
    with pytest.raises(ValidationError):
        service.update_profile(alice.user_id, email="nope")
    with pytest.raises(NotFound):
        service.get_profile("missing")


def test_auth_service_admin_cannot_deactivate_self() -> None:
    service, _, _ = _build_service()
    admin = _admin_identity(service)

    with pytest.raises(ValidationError):
        service.deactivate_user(admin, admin.user_id)
    with pytest.raises(NotFound):
        service.deactivate_user(admin, "missing")


def test_auth_service_deactivation_revokes_refresh_tokens_and_counts() -> None:
    service, _, _ = _build_service()
    alice = service.register("alice", "alice@x.com", "Pass1234")
    session = service.login("alice@x.com", "Pass1234")

    service.deactivate_user(_admin_identity(service), alice.user_id)

    with pytest.raises(Unauthenticated):
        service.refresh(session.refresh_token)
    stats = service.user_stats()
    assert (stats.total_users, stats.active_users, stats.admin_users) == (2, 1, 1)
    assert service.get_user(alice.user_id).is_active is False


def test_auth_service_list_users_validates_paging() -> None:
    service, _, _ = _build_service()
    service.register("alice", "alice@x.com", "Pass1234")

    assert len(service.list_users(limit=10, offset=0)) == 2
    with pytest.raises(ValidationError):
        service.list_users(limit=0)
    with pytest.raises(ValidationError):
        service.list_users(offset=-1)
