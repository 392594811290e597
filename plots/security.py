"""Bearer token gate for protected routes."""
from __future__ import annotations

from fastapi import Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .auth import AuthService
from .errors import AuthError
from .models import Identity


class BearerAuth:
    """Resolve the caller's identity from an ``Authorization: Bearer`` header."""

    def __init__(self, auth_service: AuthService):
        self._auth_service = auth_service
        self._bearer = HTTPBearer(auto_error=False)

    async def __call__(self, request: Request) -> Identity:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
            raise AuthError("Access token required")

        identity = self._auth_service.verify(credentials.credentials)
        request.state.identity = identity
        return identity


__all__ = ["BearerAuth"]
