"""Authentication routes: sign-up, sign-in, logout, verification and reset.

Errors are raised as AppError and rendered by the app-level handlers;
successes go through the LogHandler envelope.
"""
# ruff: noqa: B008

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from ticketzetu.api.deps import (
    REFRESH_COOKIE,
    SESSION_COOKIE,
    get_auth_service,
    get_geolocation,
    get_log_handler,
    get_username_checker,
)
from ticketzetu.auth.geolocation import GeolocationService
from ticketzetu.auth.service import AuthService
from ticketzetu.auth.username_check import UsernameChecker
from ticketzetu.config import settings
from ticketzetu.errors import AppError
from ticketzetu.logs.handler import LogHandler, client_ip
from ticketzetu.schemas.auth import (
    LoginRequest,
    ResetPasswordRequest,
    SetNewPasswordRequest,
    SignInResult,
    SignUpRequest,
    VerifyEmailRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _set_cookie(response: JSONResponse, name: str, value: str, expires: datetime) -> None:
    response.set_cookie(
        key=name,
        value=value,
        expires=expires,
        path="/",
        httponly=True,
        secure=settings.auth.cookie_secure,
        samesite="strict",
    )


def clear_session_cookies(response: JSONResponse) -> None:
    for name in (SESSION_COOKIE, REFRESH_COOKIE):
        _set_cookie(response, name, "", _EPOCH)


# ── Sign-up / sign-in ────────────────────────────────────────────────


@router.post("/sign-up")
async def sign_up(
    body: SignUpRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
    geolocation: GeolocationService = Depends(get_geolocation),
    log: LogHandler = Depends(get_log_handler),
) -> JSONResponse:
    request.state.body = body.model_dump(mode="json")
    location = await geolocation.lookup(client_ip(request))
    user = await service.sign_up(body, location)
    data = {"user_id": user.id, "username": user.username, "email": user.email}
    return log.log_success(
        request,
        data,
        "Account created, check your email for the verification code",
        should_log=True,
        status_code=201,
    )


@router.post("/sign-in")
async def sign_in(
    body: LoginRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
    log: LogHandler = Depends(get_log_handler),
) -> JSONResponse:
    request.state.body = body.model_dump(mode="json")
    user, session = await service.sign_in(
        body,
        client_ip(request),
        request.headers.get("user-agent", ""),
    )
    request.state.user_id = str(user.id)

    result = SignInResult(
        user_id=user.id,
        username=user.username,
        email=user.email,
        expires_at=session.expires_at,
        device_type=session.device_type,
    )
    response = log.log_success(request, result.model_dump(), "Signed in successfully", should_log=True)
    _set_cookie(response, SESSION_COOKIE, session.session_token, session.expires_at)
    if session.refresh_token:
        _set_cookie(response, REFRESH_COOKIE, session.refresh_token, session.refresh_expiry)
    return response


@router.post("/logout")
async def logout(
    request: Request,
    service: AuthService = Depends(get_auth_service),
    log: LogHandler = Depends(get_log_handler),
) -> JSONResponse:
    """End the current session; cookies are cleared whatever the outcome."""
    try:
        await service.logout(request.cookies.get(SESSION_COOKIE))
        response = log.log_success(request, None, "Logged out successfully", should_log=True)
    except AppError as exc:
        response = log.log_error(request, exc, exc.status_code)
    clear_session_cookies(response)
    return response


# ── Verification / reset ─────────────────────────────────────────────


@router.post("/verify-email")
async def verify_email(
    body: VerifyEmailRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
    log: LogHandler = Depends(get_log_handler),
) -> JSONResponse:
    request.state.body = body.model_dump(mode="json")
    request.state.user_id = str(body.user_id)
    await service.verify_email(body.user_id, body.token)
    return log.log_success(request, None, "Email verified successfully", should_log=True)


@router.post("/reset-password-request")
async def reset_password_request(
    body: ResetPasswordRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
    log: LogHandler = Depends(get_log_handler),
) -> JSONResponse:
    request.state.body = body.model_dump(mode="json")
    await service.request_password_reset(body.username_or_email)
    return log.log_success(request, None, "Password reset link sent to your email", should_log=True)


@router.post("/reset-password")
async def reset_password(
    body: SetNewPasswordRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
    log: LogHandler = Depends(get_log_handler),
) -> JSONResponse:
    request.state.body = body.model_dump(mode="json")
    await service.set_new_password(body.reset_token, body.new_password)
    return log.log_success(request, None, "Password has been reset successfully", should_log=True)


# ── Username availability ────────────────────────────────────────────


@router.get("/check-username")
async def check_username(
    request: Request,
    username: str = Query(default=""),
    checker: UsernameChecker = Depends(get_username_checker),
    log: LogHandler = Depends(get_log_handler),
) -> JSONResponse:
    result = await checker.check(username, client_ip(request))
    message = "Username check completed (cached)" if result.cached else "Username check completed"
    return log.log_success(request, result.response.model_dump(), message)
