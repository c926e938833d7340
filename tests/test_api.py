"""Tests for the HTTP layer.

Covers:
- Health endpoint
- Response envelope for successes, AppErrors, validation and unexpected errors
- Session cookies: attributes on sign-in, cleared on logout even on failure
- Protected routes: /users/me, password change and /logs
- Username check route
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from ticketzetu.api.deps import SESSION_COOKIE, get_current_user
from ticketzetu.auth.username_check import UsernameCheckResult
from ticketzetu.errors import AccountLocked, InvalidCredentials, NoActiveSession, PasswordReuse
from ticketzetu.logs.filters import IPEquals, LevelEquals
from ticketzetu.logs.handler import LogHandler
from ticketzetu.main import API_PREFIX, create_app
from ticketzetu.models.base import utcnow
from ticketzetu.schemas.auth import UsernameCheckResponse

USER_ID = uuid.UUID("5f0c6d2e-8a1b-4c3d-9e7f-0123456789ab")


def _user() -> SimpleNamespace:
    return SimpleNamespace(
        id=USER_ID,
        username="alice",
        first_name="Alice",
        last_name="Wanjiru",
        email="alice@example.com",
        phone="+254700000001",
        avatar_url=None,
        date_of_birth=None,
        role=SimpleNamespace(role_name="guest"),
        security=SimpleNamespace(email_verified=True, pending_email=None),
        created_at=utcnow(),
    )


@pytest.fixture()
def pipeline() -> MagicMock:
    pipeline = MagicMock()
    pipeline.query = AsyncMock(return_value=[])
    pipeline.delete = AsyncMock(return_value=3)
    return pipeline


@pytest.fixture()
def auth_service() -> MagicMock:
    service = MagicMock()
    for name in (
        "sign_up",
        "sign_in",
        "logout",
        "verify_email",
        "request_password_reset",
        "set_new_password",
        "request_email_change",
        "change_password",
        "current_user",
    ):
        setattr(service, name, AsyncMock())
    return service


@pytest.fixture()
def app(pipeline, auth_service):
    app = create_app()
    app.state.log_pipeline = pipeline
    app.state.log_handler = LogHandler(pipeline)
    app.state.auth_service = auth_service
    app.state.username_checker = MagicMock()
    app.state.geolocation = MagicMock()
    app.state.geolocation.lookup = AsyncMock(return_value=None)
    return app


@pytest.fixture()
def client(app) -> TestClient:
    # No context manager: the lifespan (database, queues) is not started
    return TestClient(app, raise_server_exceptions=False)


def _set_cookies(response) -> list[str]:
    return response.headers.get_list("set-cookie")


# ── Envelope and errors ──────────────────────────────────────────────


class TestEnvelope:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_app_error_maps_to_status(self, client, auth_service, pipeline):
        auth_service.sign_in.side_effect = AccountLocked("account is locked")

        resp = client.post(
            f"{API_PREFIX}/auth/sign-in",
            json={"username_or_email": "alice", "password": "wrong-password"},
        )

        assert resp.status_code == 423
        assert resp.json() == {"status": "failed", "message": "account is locked", "data": None}
        entry = pipeline.submit.call_args.args[0]
        assert entry.level == "error"
        assert entry.status_code == 423
        assert "wrong-password" not in entry.context

    def test_validation_error_is_400(self, client):
        resp = client.post(f"{API_PREFIX}/auth/sign-in", json={"password": "short"})

        assert resp.status_code == 400
        body = resp.json()
        assert body["status"] == "failed"
        assert body["message"].startswith("invalid request:")
        assert "username_or_email" in body["message"]

    def test_unexpected_error_is_generic_500(self, client, auth_service, pipeline):
        auth_service.verify_email.side_effect = RuntimeError("db exploded")

        resp = client.post(
            f"{API_PREFIX}/auth/verify-email",
            json={"user_id": str(USER_ID), "token": "12345678"},
        )

        assert resp.status_code == 500
        assert resp.json()["message"] == "internal server error"
        entry = pipeline.submit.call_args.args[0]
        assert entry.message == "db exploded"
        assert entry.stack


# ── Auth routes ──────────────────────────────────────────────────────


class TestAuthRoutes:
    def test_sign_up_created(self, client, auth_service):
        auth_service.sign_up.return_value = _user()

        resp = client.post(
            f"{API_PREFIX}/auth/sign-up",
            json={
                "username": "alice_w",
                "first_name": "Alice",
                "last_name": "Wanjiru",
                "email": "Alice@Example.com",
                "phone": "+254700000001",
                "password": "correct-horse",
                "date_of_birth": "1990-01-01",
            },
        )

        assert resp.status_code == 201
        assert resp.json()["data"] == {
            "user_id": str(USER_ID),
            "username": "alice",
            "email": "alice@example.com",
        }
        request = auth_service.sign_up.await_args.args[0]
        assert request.email == "alice@example.com"

    def test_sign_in_sets_secure_cookies(self, client, auth_service):
        now = utcnow()
        session = SimpleNamespace(
            session_token="s" * 32,
            refresh_token="r" * 32,
            expires_at=now + timedelta(hours=24),
            refresh_expiry=now + timedelta(hours=48),
            device_type="desktop",
        )
        auth_service.sign_in.return_value = (_user(), session)

        resp = client.post(
            f"{API_PREFIX}/auth/sign-in",
            json={"username_or_email": "alice", "password": "correct-horse"},
            headers={"user-agent": "pytest", "x-forwarded-for": "203.0.113.9, 10.0.0.1"},
        )

        assert resp.status_code == 200
        assert resp.json()["data"]["device_type"] == "desktop"
        _, ip_address, user_agent = auth_service.sign_in.await_args.args
        assert ip_address == "203.0.113.9"
        assert user_agent == "pytest"

        cookies = _set_cookies(resp)
        assert len(cookies) == 2
        session_cookie = next(c for c in cookies if c.startswith(f"{SESSION_COOKIE}="))
        assert "s" * 32 in session_cookie
        for cookie in cookies:
            lowered = cookie.lower()
            assert "httponly" in lowered
            assert "samesite=strict" in lowered
            assert "secure" in lowered
            assert "path=/" in lowered

    def test_logout_clears_cookies(self, client, auth_service):
        client.cookies.set(SESSION_COOKIE, "tok")

        resp = client.post(f"{API_PREFIX}/auth/logout")

        assert resp.status_code == 200
        auth_service.logout.assert_awaited_once_with("tok")
        cookies = _set_cookies(resp)
        assert len(cookies) == 2
        assert all("1970" in c for c in cookies)

    def test_logout_clears_cookies_on_failure(self, client, auth_service):
        auth_service.logout.side_effect = NoActiveSession()

        resp = client.post(f"{API_PREFIX}/auth/logout")

        assert resp.status_code == 400
        assert resp.json()["message"] == "no active session found"
        assert all("1970" in c for c in _set_cookies(resp))

    def test_reset_password_request(self, client, auth_service):
        resp = client.post(
            f"{API_PREFIX}/auth/reset-password-request",
            json={"username_or_email": "alice"},
        )

        assert resp.status_code == 200
        auth_service.request_password_reset.assert_awaited_once_with("alice")

    def test_reset_password(self, client, auth_service):
        resp = client.post(
            f"{API_PREFIX}/auth/reset-password",
            json={"reset_token": "t" * 32, "new_password": "battery-staple"},
        )

        assert resp.status_code == 200
        auth_service.set_new_password.assert_awaited_once_with("t" * 32, "battery-staple")

    def test_check_username(self, client, app):
        app.state.username_checker.check = AsyncMock(
            return_value=UsernameCheckResult(
                UsernameCheckResponse(available=True, message="Username is available"),
                cached=True,
            )
        )

        resp = client.get(f"{API_PREFIX}/auth/check-username", params={"username": "new_person"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "Username check completed (cached)"
        assert body["data"]["available"] is True


# ── Protected routes ─────────────────────────────────────────────────


class TestProtectedRoutes:
    def test_me_requires_session(self, client, auth_service):
        auth_service.current_user.side_effect = InvalidCredentials("authentication required")

        resp = client.get(f"{API_PREFIX}/users/me")

        assert resp.status_code == 401
        auth_service.current_user.assert_awaited_once_with(None)

    def test_me(self, client, app):
        app.dependency_overrides[get_current_user] = _user

        resp = client.get(f"{API_PREFIX}/users/me")

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["username"] == "alice"
        assert data["role"] == "guest"
        assert data["email_verified"] is True

    def test_change_email(self, client, app, auth_service):
        app.dependency_overrides[get_current_user] = _user

        resp = client.post(f"{API_PREFIX}/users/me/email", json={"email": "New@Example.com"})

        assert resp.status_code == 200
        assert resp.json()["data"] == {"pending_email": "new@example.com"}
        auth_service.request_email_change.assert_awaited_once_with(USER_ID, "new@example.com")

    def test_change_password(self, client, app, auth_service, pipeline):
        app.dependency_overrides[get_current_user] = _user

        resp = client.post(f"{API_PREFIX}/users/me/password", json={"new_password": "battery-staple9"})

        assert resp.status_code == 200
        assert resp.json()["message"] == "Password updated successfully"
        auth_service.change_password.assert_awaited_once_with(USER_ID, "battery-staple9")
        entry = pipeline.submit.call_args.args[0]
        assert "battery-staple9" not in entry.context

    def test_change_password_reuse_is_conflict(self, client, app, auth_service):
        app.dependency_overrides[get_current_user] = _user
        auth_service.change_password.side_effect = PasswordReuse()

        resp = client.post(f"{API_PREFIX}/users/me/password", json={"new_password": "correct-horse1"})

        assert resp.status_code == 409
        assert resp.json()["message"] == "new password must be different from the current password"

    def test_change_password_requires_session(self, client, auth_service):
        auth_service.current_user.side_effect = InvalidCredentials("authentication required")

        resp = client.post(f"{API_PREFIX}/users/me/password", json={"new_password": "battery-staple9"})

        assert resp.status_code == 401
        auth_service.change_password.assert_not_awaited()

    def test_list_logs(self, client, app, pipeline):
        app.dependency_overrides[get_current_user] = _user

        resp = client.get(
            f"{API_PREFIX}/logs",
            params={"ip_address": "203.0.113.9", "level": "ERROR", "limit": 10},
        )

        assert resp.status_code == 200
        assert resp.json()["data"] == []
        filters = pipeline.query.await_args.args[0]
        assert filters == [IPEquals("203.0.113.9"), LevelEquals("error")]
        assert pipeline.query.await_args.kwargs == {"limit": 10, "offset": 0}

    def test_list_logs_bad_level(self, client, app):
        app.dependency_overrides[get_current_user] = _user

        resp = client.get(f"{API_PREFIX}/logs", params={"level": "debug"})

        assert resp.status_code == 400

    def test_delete_logs(self, client, app, pipeline):
        app.dependency_overrides[get_current_user] = _user

        resp = client.delete(f"{API_PREFIX}/logs", params={"ip_address": "203.0.113.9"})

        assert resp.status_code == 200
        assert resp.json()["data"] == {"deleted": 3}
        pipeline.delete.assert_awaited_once_with([IPEquals("203.0.113.9")])
