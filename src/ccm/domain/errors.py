from __future__ import annotations

from typing import Optional


# SQLSTATE codes reported by the backend (PostgREST forwards them verbatim).
CHECK_VIOLATION = "23514"
FOREIGN_KEY_VIOLATION = "23503"
UNIQUE_VIOLATION = "23505"
NOT_NULL_VIOLATION = "23502"
INVALID_TEXT_REPRESENTATION = "22P02"
INSUFFICIENT_PRIVILEGE = "42501"


class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    pass


class NotFoundError(AppError):
    pass


class InsufficientStockError(ValidationError):
    def __init__(self, balance: int, requested: int):
        super().__init__(f"Insufficient balance. Current balance: {balance}. Requested: {requested}.")
        self.balance = balance
        self.requested = requested


class AuthorizationError(AppError):
    pass


class StoreError(AppError):
    """The backend refused the operation."""

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[str] = None,
        hint: Optional[str] = None,
        constraint: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details
        self.hint = hint
        self.constraint = constraint

    @property
    def is_check_violation(self) -> bool:
        return self.code == CHECK_VIOLATION

    @property
    def is_foreign_key_violation(self) -> bool:
        return self.code == FOREIGN_KEY_VIOLATION

    @property
    def is_permission_denied(self) -> bool:
        return self.code == INSUFFICIENT_PRIVILEGE

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r}, constraint={self.constraint!r})"


class StoreUnavailableError(StoreError):
    """Backend unreachable or answered with an unexpected shape."""
