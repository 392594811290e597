"""Credential checks and signed, time-limited session tokens."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt

from .database import Database
from .errors import InvalidCredentialsError, InvalidTokenError
from .models import AdminUser, Identity

logger = logging.getLogger("plots.auth")

TOKEN_ALGORITHM = "HS256"
TOKEN_TTL = timedelta(hours=24)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class LoginResult:
    token: str
    user: AdminUser


class AuthService:
    """Validate admin credentials and mint/verify HS256 bearer tokens.

    Tokens are never revoked server-side; expiry is the only way a session
    ends. Verification trusts the signed claims and does not reload the
    admin from the database.
    """

    def __init__(
        self,
        database: Database,
        *,
        secret: str,
        ttl: timedelta = TOKEN_TTL,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if not secret:
            raise ValueError("A token signing secret must be provided")
        self._database = database
        self._secret = secret
        self._ttl = ttl
        self._clock = clock or _utcnow

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def login(self, username: str, password: str) -> LoginResult:
        user = self._database.authenticate_admin(username, password)
        if user is None:
            logger.info("Rejected login attempt for %r", username)
            raise InvalidCredentialsError()
        logger.info("Admin %r logged in", user.username)
        return LoginResult(token=self.issue_token(user), user=user)

    def issue_token(self, user: AdminUser) -> str:
        issued_at = self._clock()
        payload = {
            "sub": user.id,
            "username": user.username,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self._ttl).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=TOKEN_ALGORITHM)

    def verify(self, token: str) -> Identity:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[TOKEN_ALGORITHM],
                options={
                    "require": ["sub", "iat", "exp"],
                    # Expiry is checked below against the injected clock.
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.InvalidTokenError as exc:
            raise InvalidTokenError("Invalid token") from exc

        try:
            user_id = str(payload["sub"])
            username = str(payload["username"])
            issued_at = datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc)
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        except (KeyError, TypeError, ValueError, OverflowError) as exc:
            raise InvalidTokenError("Invalid token payload") from exc

        if expires_at <= self._clock():
            raise InvalidTokenError("Token expired")

        return Identity(
            user_id=user_id,
            username=username,
            issued_at=issued_at,
            expires_at=expires_at,
        )


__all__ = ["AuthService", "LoginResult", "TOKEN_ALGORITHM", "TOKEN_TTL"]
