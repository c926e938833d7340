"""Domain enums used across SQLAlchemy models and Pydantic schemas.

All enums use str mixin for JSON serialization; columns store `.value`.
"""

from __future__ import annotations

from enum import Enum


class LogLevel(str, Enum):
    """Severity of an application log record."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class DeviceType(str, Enum):
    """Device class derived from the User-Agent header."""

    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"
    UNKNOWN = "unknown"


class AuthType(str, Enum):
    """How a user proves identity."""

    PASSWORD = "password"
    OAUTH = "oauth"
    SSO = "sso"


class EmailKind(str, Enum):
    """Kinds of job the email queue accepts."""

    VERIFICATION = "verification"
    LOGIN_WARNING = "login_warning"
    PASSWORD_RESET = "password_reset"


class WarningType(str, Enum):
    """Security alert flavours for the login warning email."""

    NEW_LOGIN = "new_login"
    LOCKOUT_FAILED_ATTEMPTS = "lockout_failed_attempts"
    ACCOUNT_LOCKED = "account_locked"
    DEFAULT = "default"


class ResponseStatus(str, Enum):
    """Values of the `status` field in the response envelope."""

    SUCCESS = "success"
    FAILED = "failed"
    WARNING = "warning"
