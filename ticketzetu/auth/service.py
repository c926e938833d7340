"""Authentication state machine.

Sign-up, sign-in with progressive lockout, logout, email verification,
password reset and email change. Each operation opens its own DB session;
multi-step writes run inside one transaction and roll back as a whole.
Rows touched by concurrent requests for the same user are read with
SELECT ... FOR UPDATE.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketzetu.auth.devices import describe_device, detect_device_type
from ticketzetu.auth.geolocation import GeoLocation
from ticketzetu.auth.passwords import generate_secure_token, hash_password_async, passwords_match
from ticketzetu.auth.session_cache import SessionCache
from ticketzetu.auth.validation import is_old_enough, validate_password_strength
from ticketzetu.config import AuthSettings, settings
from ticketzetu.errors import (
    AccountLocked,
    DuplicateResource,
    EmailNotVerified,
    InternalError,
    InvalidCredentials,
    InvalidInput,
    InvalidToken,
    NoActiveSession,
    NotFound,
    PasswordReuse,
    QueueSaturated,
)
from ticketzetu.mail.service import EmailService
from ticketzetu.models.base import utcnow
from ticketzetu.models.enums import WarningType
from ticketzetu.models.location import UserLocation
from ticketzetu.models.preferences import UserPreferences
from ticketzetu.models.role import GUEST_ROLE, Role
from ticketzetu.models.security import SecurityAttributes
from ticketzetu.models.user import User
from ticketzetu.models.user_session import UserSession
from ticketzetu.schemas.auth import LoginRequest, SignUpRequest

logger = logging.getLogger(__name__)


def duplicate_from_integrity(exc: IntegrityError) -> DuplicateResource:
    """Name the clashing column from the driver's unique-violation message."""
    detail = str(exc.orig).lower()
    if "username" in detail:
        return DuplicateResource("username already exists")
    if "email" in detail:
        return DuplicateResource("email already exists")
    if "phone" in detail:
        return DuplicateResource("phone number already exists")
    return DuplicateResource("duplicate entry")


class AuthService:
    """Authentication operations over the user tables."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        email_service: EmailService,
        session_cache: SessionCache,
        config: AuthSettings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._email = email_service
        self._cache = session_cache
        self._config = config or settings.auth
        self._clock = clock

    @property
    def _token_ttl(self) -> timedelta:
        return timedelta(hours=self._config.token_ttl_hours)

    # ── Lookups ──────────────────────────────────────────────────────

    @staticmethod
    async def _find_by_identifier(db: AsyncSession, identifier: str) -> User | None:
        ident = identifier.strip()
        stmt = select(User).where(
            or_(User.username == ident, User.email == ident.lower()),
            User.deleted_at.is_(None),
        )
        return (await db.execute(stmt)).scalars().first()

    @staticmethod
    async def _locked_security(db: AsyncSession, user_id: uuid.UUID) -> SecurityAttributes | None:
        stmt = (
            select(SecurityAttributes)
            .where(SecurityAttributes.user_id == user_id)
            .with_for_update()
        )
        return (await db.execute(stmt)).scalar_one_or_none()

    @staticmethod
    async def _ensure_available(
        db: AsyncSession,
        email: str,
        username: str | None = None,
        phone: str | None = None,
        exclude_user_id: uuid.UUID | None = None,
    ) -> None:
        """Raise DuplicateResource if username, email or phone is taken."""
        if username is not None:
            taken = await db.scalar(select(User.id).where(User.username == username))
            if taken is not None:
                raise DuplicateResource("username already exists")

        stmt = select(User.id).where(User.email == email)
        if exclude_user_id is not None:
            stmt = stmt.where(User.id != exclude_user_id)
        if await db.scalar(stmt) is not None:
            raise DuplicateResource("email already exists")

        pending = select(SecurityAttributes.id).where(SecurityAttributes.pending_email == email)
        if exclude_user_id is not None:
            pending = pending.where(SecurityAttributes.user_id != exclude_user_id)
        if await db.scalar(pending) is not None:
            raise DuplicateResource("email is already pending verification for another account")

        if phone is not None:
            taken = await db.scalar(select(User.id).where(User.phone == phone))
            if taken is not None:
                raise DuplicateResource("phone number already exists")

    # ── Sign-up ──────────────────────────────────────────────────────

    async def sign_up(self, request: SignUpRequest, location: GeoLocation | None = None) -> User:
        """Create an unverified account and send its verification code."""
        now = self._clock()
        if request.date_of_birth is not None and not is_old_enough(
            request.date_of_birth, now.date(), self._config.minimum_age
        ):
            raise InvalidInput(f"you must be at least {self._config.minimum_age} years old to sign up")

        user_id = uuid.uuid4()
        try:
            async with self._session_factory() as db:
                async with db.begin():
                    role = await db.scalar(select(Role).where(Role.role_name == GUEST_ROLE))
                    if role is None:
                        raise InternalError("default guest role not found")
                    await self._ensure_available(db, request.email, request.username, request.phone)

                    password_hash = await hash_password_async(request.password, str(user_id))
                    user = User(
                        id=user_id,
                        username=request.username,
                        first_name=request.first_name,
                        last_name=request.last_name,
                        email=request.email,
                        phone=request.phone,
                        date_of_birth=request.date_of_birth,
                        role_id=role.id,
                        created_by=str(user_id),
                        last_modified_by=str(user_id),
                        created_at=now,
                        updated_at=now,
                    )
                    db.add(user)
                    db.add(SecurityAttributes(
                        user_id=user_id,
                        password=password_hash,
                        email_verified=False,
                        email_token_expiry=now + self._token_ttl,
                        created_at=now,
                        updated_at=now,
                    ))
                    db.add(UserPreferences(user_id=user_id, created_at=now, updated_at=now))
                    if location is not None:
                        db.add(UserLocation(
                            user_id=user_id,
                            country=location.country,
                            state=location.state,
                            state_name=location.state,
                            continent=location.continent,
                            city=location.city,
                            zip=location.zip,
                            timezone=location.timezone or "UTC",
                            last_active=now,
                            created_at=now,
                            updated_at=now,
                        ))
        except IntegrityError as exc:
            raise duplicate_from_integrity(exc) from exc

        logger.info("User %s signed up", user_id)

        try:
            code = await self._email.send_verification_code(user.email, user.username)
        except QueueSaturated:
            # Account exists; the next sign-in attempt resends the code
            logger.warning("Verification email for %s not queued, email queue saturated", user_id)
            return user
        await self.update_verification_code(user_id, code)
        return user

    async def update_verification_code(self, user_id: uuid.UUID, code: str) -> None:
        """Store a freshly sent verification code with a new expiry."""
        now = self._clock()
        async with self._session_factory() as db:
            async with db.begin():
                security = await self._locked_security(db, user_id)
                if security is None:
                    raise NotFound("user not found")
                security.email_verification_token = code
                security.email_token_expiry = now + self._token_ttl
                security.updated_at = now

    # ── Sign-in ──────────────────────────────────────────────────────

    async def sign_in(
        self,
        request: LoginRequest,
        ip_address: str,
        user_agent: str,
    ) -> tuple[User, UserSession]:
        """Verify credentials and open a session.

        Raises:
            InvalidCredentials: unknown identifier or wrong password.
            EmailNotVerified: email not verified yet (a new code is sent).
            AccountLocked: locked now, or this failure reached the limit.
        """
        now = self._clock()
        async with self._session_factory() as db:
            user = await self._find_by_identifier(db, request.username_or_email)
        if user is None or user.security is None:
            raise InvalidCredentials()
        security = user.security
        device_info = describe_device(user_agent)

        if not security.email_verified:
            await self._resend_verification(user)
            raise EmailNotVerified()

        if security.is_locked(now):
            await self._warn(user, WarningType.ACCOUNT_LOCKED, device_info, ip_address, now)
            raise AccountLocked(f"account is locked until {security.lock_until:%Y-%m-%d %H:%M:%S} UTC")

        candidate = await hash_password_async(request.password, str(user.id))
        if not passwords_match(candidate, security.password):
            attempts, lock_until = await self._record_failure(user.id, now)
            if attempts >= self._config.max_login_attempts and lock_until is not None:
                logger.warning("User %s locked after %d failed attempts", user.id, attempts)
                await self._warn(user, WarningType.LOCKOUT_FAILED_ATTEMPTS, device_info, ip_address, now)
                raise AccountLocked(
                    f"too many failed attempts, account locked until {lock_until:%Y-%m-%d %H:%M:%S} UTC"
                )
            raise InvalidCredentials()

        await self._warn(user, WarningType.NEW_LOGIN, device_info, ip_address, now)
        session = await self._open_session(user.id, request.remember_me, ip_address, user_agent, now)
        await self._cache.store(session.session_token, str(user.id), session.expires_at)
        logger.info("User %s signed in (%s)", user.id, session.device_type)
        return user, session

    async def _record_failure(self, user_id: uuid.UUID, now: datetime) -> tuple[int, datetime | None]:
        async with self._session_factory() as db:
            async with db.begin():
                security = await self._locked_security(db, user_id)
                if security is None:
                    raise InvalidCredentials()
                attempts = security.increment_failed_attempts(self._config.max_login_attempts, now)
                security.updated_at = now
                lock_until = security.lock_until
        return attempts, lock_until

    async def _open_session(
        self,
        user_id: uuid.UUID,
        remember_me: bool,
        ip_address: str,
        user_agent: str,
        now: datetime,
    ) -> UserSession:
        hours = self._config.remember_me_hours if remember_me else self._config.session_hours
        duration = timedelta(hours=hours)
        async with self._session_factory() as db:
            async with db.begin():
                security = await self._locked_security(db, user_id)
                if security is None:
                    raise InvalidCredentials()
                security.reset_login_attempts()
                security.updated_at = now

                session = UserSession(
                    user_id=user_id,
                    session_token=generate_secure_token(),
                    refresh_token=generate_secure_token(),
                    ip_address=ip_address or None,
                    user_agent=user_agent or None,
                    device_type=detect_device_type(user_agent).value,
                    device_name=describe_device(user_agent)[:100],
                    is_active=True,
                    expires_at=now + duration,
                    refresh_expiry=now + 2 * duration,
                    created_at=now,
                    updated_at=now,
                )
                db.add(session)
        return session

    async def _resend_verification(self, user: User) -> None:
        try:
            code = await self._email.send_verification_code(user.email, user.username)
        except QueueSaturated:
            logger.warning("Could not queue verification resend for %s", user.id)
            return
        await self.update_verification_code(user.id, code)

    async def _warn(
        self,
        user: User,
        warning_type: WarningType,
        device_info: str,
        ip_address: str,
        when: datetime,
    ) -> None:
        """Queue a security alert; a full queue only costs the alert."""
        try:
            await self._email.send_login_warning(
                user.email, user.username, warning_type, device_info, ip_address, when
            )
        except QueueSaturated:
            logger.warning("Dropped %s alert for %s, email queue saturated", warning_type.value, user.id)

    # ── Logout ───────────────────────────────────────────────────────

    async def logout(self, session_token: str | None) -> None:
        """Terminate the active session behind `session_token`.

        The cache entry goes first; if Redis fails the session stays open
        in the database and the caller is told to retry. It is purged again
        once the session row is closed, since a lookup in between can put
        it back.
        """
        if not session_token:
            raise NoActiveSession()
        await self._purge_cached(session_token)

        now = self._clock()
        async with self._session_factory() as db:
            async with db.begin():
                stmt = (
                    select(UserSession)
                    .where(UserSession.session_token == session_token, UserSession.is_active.is_(True))
                    .with_for_update()
                )
                session = (await db.execute(stmt)).scalar_one_or_none()
                if session is None:
                    raise NoActiveSession()
                session.terminate(now)

        await self._purge_cached(session_token)
        logger.info("Session for user %s terminated", session.user_id)

    async def _purge_cached(self, session_token: str) -> None:
        try:
            await self._cache.purge(session_token)
        except Exception as exc:
            logger.exception("Failed to purge cached session")
            raise InternalError("failed to end session, please try again") from exc

    # ── Email verification ───────────────────────────────────────────

    async def verify_email(self, user_id: uuid.UUID, code: str) -> None:
        now = self._clock()
        async with self._session_factory() as db:
            async with db.begin():
                user = await db.scalar(
                    select(User).where(User.id == user_id, User.deleted_at.is_(None))
                )
                security = await self._locked_security(db, user_id) if user is not None else None
                if user is None or security is None:
                    raise NotFound("user not found or account is deleted")

                token = security.email_verification_token or ""
                if not token:
                    raise InvalidToken("invalid verification code")
                if security.email_token_expiry is None or security.email_token_expiry <= now:
                    raise InvalidToken("verification code has expired")
                if not secrets.compare_digest(token.encode("utf-8"), code.encode("utf-8")):
                    raise InvalidToken("invalid verification code")

                security.email_verified = True
                security.email_verified_at = now
                security.email_verification_token = None
                security.email_token_expiry = None
                if not user.email and security.pending_email:
                    user.email = security.pending_email
                    user.updated_at = now
                security.pending_email = None
                security.updated_at = now
        logger.info("Email verified for user %s", user_id)

    # ── Password reset ───────────────────────────────────────────────

    async def request_password_reset(self, identifier: str) -> None:
        now = self._clock()
        async with self._session_factory() as db:
            async with db.begin():
                user = await self._find_by_identifier(db, identifier)
                if user is None:
                    raise NotFound("user not found")
                security = await self._locked_security(db, user.id)
                if security is None:
                    raise NotFound("user not found")
                if security.is_locked(now):
                    raise AccountLocked("account temporarily locked")

                token = generate_secure_token()
                security.password_reset_token = token
                security.password_reset_token_expiry = now + self._token_ttl
                security.updated_at = now

        try:
            await self._email.send_password_reset(user.email, user.username, token)
        except QueueSaturated:
            logger.warning("Password reset email for %s not queued, email queue saturated", user.id)

    async def set_new_password(self, reset_token: str, new_password: str) -> None:
        now = self._clock()
        async with self._session_factory() as db:
            async with db.begin():
                stmt = (
                    select(SecurityAttributes)
                    .where(
                        SecurityAttributes.password_reset_token == reset_token,
                        SecurityAttributes.password_reset_token_expiry > now,
                    )
                    .with_for_update()
                )
                security = (await db.execute(stmt)).scalar_one_or_none()
                if security is None:
                    raise InvalidToken("invalid or expired reset token")
                if security.is_locked(now):
                    raise AccountLocked("account temporarily locked")

                new_hash = await hash_password_async(new_password, str(security.user_id))
                if passwords_match(new_hash, security.password):
                    raise PasswordReuse()

                security.password = new_hash
                security.password_reset_token = None
                security.password_reset_token_expiry = None
                security.reset_login_attempts()
                security.updated_at = now
        logger.info("Password reset completed for user %s", security.user_id)

    async def change_password(self, user_id: uuid.UUID, new_password: str) -> None:
        """Replace the password of a signed-in user.

        Any pending reset token is discarded and the lockout counters are
        cleared, as after a completed reset.
        """
        validate_password_strength(new_password)
        now = self._clock()
        async with self._session_factory() as db:
            async with db.begin():
                user = await self._active_user(db, user_id)
                security = await self._locked_security(db, user_id) if user is not None else None
                if user is None or security is None:
                    raise NotFound("user not found")

                new_hash = await hash_password_async(new_password, str(user_id))
                if passwords_match(new_hash, security.password):
                    raise PasswordReuse()

                security.password = new_hash
                security.password_reset_token = None
                security.password_reset_token_expiry = None
                security.reset_login_attempts()
                security.updated_at = now
                user.last_modified_by = str(user_id)
                user.updated_at = now
        logger.info("Password changed for user %s", user_id)

    # ── Email change ─────────────────────────────────────────────────

    async def request_email_change(self, user_id: uuid.UUID, new_email: str) -> User:
        """Park `new_email` as pending and send it a verification code."""
        now = self._clock()
        async with self._session_factory() as db:
            async with db.begin():
                user = await db.scalar(
                    select(User).where(User.id == user_id, User.deleted_at.is_(None))
                )
                if user is None:
                    raise NotFound("user not found")
                if new_email == user.email:
                    raise InvalidInput("new email must be different from the current email")
                await self._ensure_available(db, new_email, exclude_user_id=user_id)

                security = await self._locked_security(db, user_id)
                if security is None:
                    raise NotFound("user not found")

                code = await self._email.send_verification_code(new_email, user.username)
                security.pending_email = new_email
                security.email_verification_token = code
                security.email_token_expiry = now + self._token_ttl
                security.updated_at = now
                user.last_modified_by = str(user_id)
        logger.info("Email change requested for user %s", user_id)
        return user

    # ── Session lookup ───────────────────────────────────────────────

    async def current_user(self, session_token: str | None) -> User:
        """User behind a session cookie.

        Raises:
            InvalidCredentials: no token, unknown token, or expired session.
        """
        if not session_token:
            raise InvalidCredentials("authentication required")
        now = self._clock()

        cached_user_id = await self._cache.get_user_id(session_token)
        async with self._session_factory() as db:
            if cached_user_id:
                user = await self._active_user(db, uuid.UUID(cached_user_id))
                if user is not None:
                    return user

            stmt = select(UserSession).where(
                UserSession.session_token == session_token,
                UserSession.is_active.is_(True),
            )
            session = (await db.execute(stmt)).scalar_one_or_none()
            if session is None or not session.is_valid(now):
                raise InvalidCredentials("session expired or invalid")
            user = await self._active_user(db, session.user_id)
        if user is None:
            raise InvalidCredentials("session expired or invalid")

        await self._cache.store(session_token, str(user.id), session.expires_at)
        return user

    @staticmethod
    async def _active_user(db: AsyncSession, user_id: uuid.UUID) -> User | None:
        return await db.scalar(select(User).where(User.id == user_id, User.deleted_at.is_(None)))
