"""Error taxonomy shared by the data layer, auth service and HTTP gateway."""

from __future__ import annotations

from typing import List, Optional


class PlotsError(Exception):
    """Base class for errors that map onto an HTTP status code."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(PlotsError):
    status_code = 400

    def __init__(self, message: str, details: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.details = list(details or [])


class NothingToUpdateError(ValidationError):
    def __init__(self) -> None:
        super().__init__("No fields to update")


class AuthError(PlotsError):
    status_code = 401


class InvalidCredentialsError(AuthError):
    def __init__(self) -> None:
        super().__init__("Invalid credentials")


class InvalidTokenError(AuthError):
    pass


class NotFoundError(PlotsError):
    status_code = 404


class ConflictError(PlotsError):
    status_code = 409


class DatabaseUnavailableError(PlotsError):
    """Raised when the store cannot be reached within the startup retry budget."""

    status_code = 503


__all__ = [
    "AuthError",
    "ConflictError",
    "DatabaseUnavailableError",
    "InvalidCredentialsError",
    "InvalidTokenError",
    "NotFoundError",
    "NothingToUpdateError",
    "PlotsError",
    "ValidationError",
]
