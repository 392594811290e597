from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from plots.auth import TOKEN_ALGORITHM, AuthService
from plots.database import Database
from plots.errors import InvalidCredentialsError, InvalidTokenError

SECRET = "tests-secret-key"


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture()
def service(database: Database, clock: FakeClock) -> AuthService:
    return AuthService(database, secret=SECRET, clock=clock)


def test_login_returns_token_with_identity_claims(service: AuthService, clock: FakeClock) -> None:
    result = service.login("admin", "admin123")

    assert result.token
    assert result.user.username == "admin"

    identity = service.verify(result.token)
    assert identity.user_id == result.user.id
    assert identity.username == "admin"
    assert identity.issued_at == clock.now
    assert identity.expires_at - identity.issued_at == timedelta(hours=24)


def test_login_rejects_wrong_password(service: AuthService) -> None:
    with pytest.raises(InvalidCredentialsError):
        service.login("admin", "wrong")


def test_login_rejects_unknown_username(service: AuthService) -> None:
    with pytest.raises(InvalidCredentialsError):
        service.login("root", "admin123")


def test_token_valid_until_expiry(service: AuthService, clock: FakeClock) -> None:
    token = service.login("admin", "admin123").token

    clock.advance(timedelta(hours=23, minutes=59, seconds=59))
    assert service.verify(token).username == "admin"

    clock.advance(timedelta(seconds=1))
    with pytest.raises(InvalidTokenError, match="expired"):
        service.verify(token)


def test_verify_rejects_token_signed_with_other_secret(database: Database, service: AuthService) -> None:
    other = AuthService(database, secret="another-secret")
    token = other.login("admin", "admin123").token

    with pytest.raises(InvalidTokenError):
        service.verify(token)


def test_verify_rejects_tampered_token(service: AuthService) -> None:
    token = service.login("admin", "admin123").token
    header, payload, signature = token.split(".")
    tampered = ".".join([header, payload, ("B" if signature[0] == "A" else "A") + signature[1:]])

    with pytest.raises(InvalidTokenError):
        service.verify(tampered)


def test_verify_rejects_garbage(service: AuthService) -> None:
    with pytest.raises(InvalidTokenError):
        service.verify("not-a-token")


def test_verify_rejects_missing_claims(service: AuthService, clock: FakeClock) -> None:
    token = jwt.encode(
        {"sub": "someone", "exp": int((clock.now + timedelta(hours=1)).timestamp())},
        SECRET,
        algorithm=TOKEN_ALGORITHM,
    )
    with pytest.raises(InvalidTokenError):
        service.verify(token)


def test_secret_is_required(database: Database) -> None:
    with pytest.raises(ValueError):
        AuthService(database, secret="")
