"""FastAPI dependencies: services wired on `app.state` and the session check."""

from __future__ import annotations

from fastapi import Request

from ticketzetu.auth.geolocation import GeolocationService
from ticketzetu.auth.service import AuthService
from ticketzetu.auth.username_check import UsernameChecker
from ticketzetu.logs.handler import LogHandler
from ticketzetu.logs.pipeline import LogPipeline
from ticketzetu.models.user import User

SESSION_COOKIE = "session_token"
REFRESH_COOKIE = "refresh_token"


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_log_handler(request: Request) -> LogHandler:
    return request.app.state.log_handler


def get_log_pipeline(request: Request) -> LogPipeline:
    return request.app.state.log_pipeline


def get_username_checker(request: Request) -> UsernameChecker:
    return request.app.state.username_checker


def get_geolocation(request: Request) -> GeolocationService:
    return request.app.state.geolocation


async def get_current_user(request: Request) -> User:
    """Resolve the signed-in user from the session cookie.

    Raises InvalidCredentials when the cookie is missing or the session is
    gone; the user id is kept on `request.state` for log records.
    """
    service = get_auth_service(request)
    user = await service.current_user(request.cookies.get(SESSION_COOKIE))
    request.state.user_id = str(user.id)
    return user
