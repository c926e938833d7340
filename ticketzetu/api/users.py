"""Signed-in user routes."""
# ruff: noqa: B008

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ticketzetu.api.deps import get_auth_service, get_current_user, get_log_handler
from ticketzetu.auth.service import AuthService
from ticketzetu.logs.handler import LogHandler
from ticketzetu.models.user import User
from ticketzetu.schemas.auth import ChangePasswordRequest, UpdateEmailRequest, UserProfileOut

router = APIRouter(prefix="/users", tags=["users"])


def profile_of(user: User) -> UserProfileOut:
    security = user.security
    return UserProfileOut(
        id=user.id,
        username=user.username,
        first_name=user.first_name,
        last_name=user.last_name,
        email=user.email,
        phone=user.phone,
        avatar_url=user.avatar_url,
        date_of_birth=user.date_of_birth,
        role=user.role.role_name if user.role is not None else None,
        email_verified=security.email_verified if security is not None else False,
        pending_email=security.pending_email if security is not None else None,
        created_at=user.created_at,
    )


@router.get("/me")
async def me(
    request: Request,
    user: User = Depends(get_current_user),
    log: LogHandler = Depends(get_log_handler),
) -> JSONResponse:
    return log.log_success(request, profile_of(user).model_dump(), "Profile retrieved")


@router.post("/me/email")
async def change_email(
    body: UpdateEmailRequest,
    request: Request,
    user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
    log: LogHandler = Depends(get_log_handler),
) -> JSONResponse:
    """Park the new address as pending until its verification code is used."""
    request.state.body = body.model_dump(mode="json")
    await service.request_email_change(user.id, body.email)
    return log.log_success(
        request,
        {"pending_email": body.email},
        "Verification code sent to the new email address",
        should_log=True,
    )


@router.post("/me/password")
async def change_password(
    body: ChangePasswordRequest,
    request: Request,
    user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
    log: LogHandler = Depends(get_log_handler),
) -> JSONResponse:
    request.state.body = body.model_dump(mode="json")
    await service.change_password(user.id, body.new_password)
    return log.log_success(request, None, "Password updated successfully", should_log=True)
