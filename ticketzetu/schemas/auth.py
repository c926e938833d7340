"""Authentication request/response schemas.

Pydantic models for API request validation and response serialization.
Separates API contracts from database models.
"""

from __future__ import annotations

import re
import uuid
from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+$")


def _normalize_email(v: str) -> str:
    v = v.strip().lower()
    if len(v) > 255 or not EMAIL_PATTERN.match(v):
        msg = "Invalid email format"
        raise ValueError(msg)
    return v


class SignUpRequest(BaseModel):
    """Request body for POST /auth/sign-up."""

    username: str = Field(..., min_length=6, max_length=50, pattern=r"^[a-zA-Z0-9_]+$")
    first_name: str = Field(..., min_length=2, max_length=100)
    last_name: str = Field(..., min_length=2, max_length=100)
    email: str
    phone: str = Field(..., min_length=10, max_length=20)
    password: str = Field(..., min_length=8)
    date_of_birth: date | None = Field(default=None, description="YYYY-MM-DD")

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str) -> str:
        return _normalize_email(v)

    @field_validator("date_of_birth", mode="before")
    @classmethod
    def strict_date(cls, v: object) -> object:
        """Accept only YYYY-MM-DD strings (or empty for none)."""
        if v in (None, ""):
            return None
        if isinstance(v, str):
            try:
                return datetime.strptime(v, "%Y-%m-%d").date()
            except ValueError as exc:
                msg = "date_of_birth must be YYYY-MM-DD"
                raise ValueError(msg) from exc
        return v


class LoginRequest(BaseModel):
    """Request body for POST /auth/sign-in."""

    username_or_email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=8)
    remember_me: bool = False


class VerifyEmailRequest(BaseModel):
    """Request body for POST /auth/verify-email."""

    user_id: uuid.UUID
    token: str = Field(..., min_length=1)


class ResetPasswordRequest(BaseModel):
    """Request body for POST /auth/reset-password-request."""

    username_or_email: str = Field(..., min_length=3, max_length=255)


class SetNewPasswordRequest(BaseModel):
    """Request body for POST /auth/reset-password."""

    reset_token: str = Field(..., min_length=32, max_length=64)
    new_password: str = Field(..., min_length=8)


class ChangePasswordRequest(BaseModel):
    """Request body for POST /users/me/password."""

    new_password: str = Field(..., min_length=8)


class UpdateEmailRequest(BaseModel):
    """Request body for POST /users/me/email."""

    email: str

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str) -> str:
        return _normalize_email(v)


class UsernameCheckResponse(BaseModel):
    available: bool
    message: str
    suggestions: list[str] = Field(default_factory=list)


class SignInResult(BaseModel):
    """What the sign-in route returns in `data` (tokens travel as cookies)."""

    user_id: uuid.UUID
    username: str
    email: str
    expires_at: datetime
    device_type: str


class UserProfileOut(BaseModel):
    """Response body for GET /users/me."""

    id: uuid.UUID
    username: str
    first_name: str
    last_name: str
    email: str
    phone: str
    avatar_url: str | None = None
    date_of_birth: date | None = None
    role: str | None = None
    email_verified: bool = False
    pending_email: str | None = None
    created_at: datetime
