from enum import StrEnum
from typing import Any


class ErrorKind(StrEnum):
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"


STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.AUTHENTICATION: 401,
    ErrorKind.AUTHORIZATION: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
}


class AppError(Exception):
    """Base exception for expected, user-facing identity errors."""

    kind: ErrorKind = ErrorKind.VALIDATION
    default_message = "Request failed"

    def __init__(self, message: str | None = None, detail: dict[str, Any] | None = None):
        self.message = message or self.default_message
        self.detail = detail or {}
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]


class ValidationError(AppError):
    """Raised for malformed input or a business-rule violation (e.g. expired OTP)."""

    kind = ErrorKind.VALIDATION
    default_message = "Validation failed"


class AuthenticationError(AppError):
    """Raised for bad credentials or an invalid, expired or revoked token."""

    kind = ErrorKind.AUTHENTICATION
    default_message = "Authentication failed"


class AuthorizationError(AppError):
    """Raised when the caller's role is not permitted to perform the action."""

    kind = ErrorKind.AUTHORIZATION
    default_message = "Insufficient permissions"


class NotFoundError(AppError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Resource not found"


class ConflictError(AppError):
    """Raised for duplicate emails or organization slugs."""

    kind = ErrorKind.CONFLICT
    default_message = "Resource already exists"
