"""Typed application errors.

Each error carries the HTTP status it maps to; the API layer renders any
AppError into the response envelope and reports it to the log pipeline.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for errors that are safe to show to the caller."""

    status_code: int = 500
    default_message: str = "internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(AppError):
    status_code = 400
    default_message = "invalid input"


class NoActiveSession(InvalidInput):
    default_message = "no active session found"


class InvalidCredentials(AppError):
    status_code = 401
    default_message = "invalid credentials"


class InvalidToken(AppError):
    status_code = 401
    default_message = "invalid or expired token"


class Forbidden(AppError):
    status_code = 403
    default_message = "forbidden"


class EmailNotVerified(Forbidden):
    default_message = "email not verified, a new verification code has been sent"


class NotFound(AppError):
    status_code = 404
    default_message = "not found"


class DuplicateResource(AppError):
    status_code = 409
    default_message = "resource already exists"


class PasswordReuse(AppError):
    status_code = 409
    default_message = "new password must be different from the current password"


class AccountLocked(AppError):
    status_code = 423
    default_message = "account is temporarily locked"


class QueueSaturated(AppError):
    status_code = 429
    default_message = "email service is busy, please try again shortly"


class TooManyRequests(AppError):
    status_code = 429
    default_message = "too many requests"


class InternalError(AppError):
    status_code = 500
    default_message = "internal server error"
