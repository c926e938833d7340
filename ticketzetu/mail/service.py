"""Transactional email: verification codes, security alerts, password resets.

Every public `send_*` call enqueues a job on the EmailQueue and returns as
soon as the job is accepted. Rendering (jinja2) and SMTP delivery
(aiosmtplib) happen later on a queue worker.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from email.message import EmailMessage
from functools import lru_cache
from pathlib import Path
from typing import Any

import aiosmtplib
from jinja2 import Environment, StrictUndefined, Template, select_autoescape

from ticketzetu.config import MailSettings, UrlSettings, settings
from ticketzetu.errors import InternalError
from ticketzetu.mail.queue import EmailJob, EmailQueue
from ticketzetu.models.base import utcnow
from ticketzetu.models.enums import EmailKind, WarningType

logger = logging.getLogger(__name__)

VERIFICATION_CODE_LENGTH = 8
RESET_LINK_TTL = timedelta(hours=24)
_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

VERIFICATION_SUBJECT = "Confirm Your Ticket Zetu Account"
PASSWORD_RESET_SUBJECT = "Reset Your Ticket Zetu Password"

# (subject, message) per alert type
WARNING_CONTENT: dict[WarningType, tuple[str, str]] = {
    WarningType.NEW_LOGIN: (
        "New Login Detected",
        "We detected a new login to your account.",
    ),
    WarningType.LOCKOUT_FAILED_ATTEMPTS: (
        "Account Locked: Too Many Failed Attempts",
        "Your account has been locked due to too many failed login attempts.",
    ),
    WarningType.ACCOUNT_LOCKED: (
        "Sign-in Blocked: Account Locked",
        "Someone tried to sign in while your account is temporarily locked.",
    ),
    WarningType.DEFAULT: (
        "Security Alert",
        "A security event was detected on your account.",
    ),
}

Sender = Callable[[EmailMessage], Awaitable[None]]


class EmailDeliveryError(RuntimeError):
    """Raised when the SMTP server refuses or cannot accept a message."""


def generate_verification_code() -> str:
    """Eight random decimal digits.

    Raises:
        InternalError: the generated value is not exactly eight digits.
    """
    code = f"{secrets.randbelow(10**VERIFICATION_CODE_LENGTH):0{VERIFICATION_CODE_LENGTH}d}"
    if len(code) != VERIFICATION_CODE_LENGTH or not code.isdigit():
        raise InternalError("failed to generate verification code")
    return code


def ticket_reference(prefix: str, now: datetime) -> str:
    """Short support reference like CNF-4821-307."""
    return f"{prefix}-{int(now.timestamp()) % 10000}-{100 + secrets.randbelow(900)}"


# ── Rendering ────────────────────────────────────────────────────────

_env = Environment(autoescape=select_autoescape(default=True), undefined=StrictUndefined)


@lru_cache(maxsize=16)
def _load_template(path: str) -> Template:
    return _env.from_string(Path(path).read_text(encoding="utf-8"))


def render_template(path: str, context: dict[str, Any]) -> str:
    return _load_template(path).render(**context)


# ── SMTP delivery ────────────────────────────────────────────────────


class SmtpSender:
    """Delivers messages with aiosmtplib using the configured dialer."""

    def __init__(self, mail: MailSettings | None = None) -> None:
        self._mail = mail or settings.mail

    async def __call__(self, message: EmailMessage) -> None:
        try:
            await aiosmtplib.send(
                message,
                hostname=self._mail.smtp_host,
                port=self._mail.smtp_port,
                username=self._mail.smtp_username or None,
                password=self._mail.smtp_password or None,
                use_tls=self._mail.smtp_port == 465,  # Implicit TLS for port 465
            )
        except aiosmtplib.SMTPException as exc:
            raise EmailDeliveryError(f"failed to send email to {message['To']}: {exc}") from exc


# ── Service ──────────────────────────────────────────────────────────


class EmailService:
    """Builds email jobs and hands them to the queue."""

    def __init__(
        self,
        queue: EmailQueue,
        sender: Sender | None = None,
        mail: MailSettings | None = None,
        urls: UrlSettings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._queue = queue
        self._mail = mail or settings.mail
        self._urls = urls or settings.urls
        self._sender = sender or SmtpSender(self._mail)
        self._clock = clock

    def _app_urls(self) -> dict[str, str]:
        return {
            "security_url": self._urls.security_url,
            "support_url": self._urls.support_url,
            "privacy_url": self._urls.privacy_url,
            "terms_url": self._urls.terms_url,
        }

    async def send_verification_code(self, email: str, username: str) -> str:
        """Queue a verification email and return its code.

        The code is returned as soon as the job is accepted; the caller is
        responsible for persisting it. Delivery happens later.

        Raises:
            QueueSaturated: the email queue had no room.
        """
        code = generate_verification_code()
        context = {
            "username": username,
            "code": code,
            "reference": ticket_reference("CNF", self._clock()),
            **self._app_urls(),
        }
        await self._enqueue(
            EmailKind.VERIFICATION,
            email,
            VERIFICATION_SUBJECT,
            self._mail.verification_template_path,
            context,
        )
        return code

    async def send_login_warning(
        self,
        email: str,
        username: str,
        warning_type: WarningType,
        device_info: str,
        ip_address: str,
        login_time: datetime | None = None,
    ) -> None:
        subject, message = WARNING_CONTENT.get(warning_type, WARNING_CONTENT[WarningType.DEFAULT])
        when = login_time or self._clock()
        context = {
            "username": username,
            "device_info": device_info or "unknown device",
            "ip_address": ip_address or "unknown",
            "login_time": when.strftime(_TIME_FORMAT),
            "warning_type": warning_type.value,
            "warning_message": message,
            "reference": ticket_reference("ALRT", self._clock()),
            **self._app_urls(),
        }
        await self._enqueue(
            EmailKind.LOGIN_WARNING,
            email,
            subject,
            self._mail.login_warning_template_path,
            context,
        )

    async def send_password_reset(self, email: str, username: str, token: str) -> None:
        now = self._clock()
        context = {
            "username": username,
            "reset_url": f"{self._urls.security_url}/reset-password?token={token}",
            "expiry_time": (now + RESET_LINK_TTL).strftime(_TIME_FORMAT),
            "reference": ticket_reference("RST", now),
            **self._app_urls(),
        }
        await self._enqueue(
            EmailKind.PASSWORD_RESET,
            email,
            PASSWORD_RESET_SUBJECT,
            self._mail.password_reset_template_path,
            context,
        )

    async def _enqueue(
        self,
        kind: EmailKind,
        recipient: str,
        subject: str,
        template_path: str,
        context: dict[str, Any],
    ) -> None:
        async def run() -> None:
            await self._deliver(recipient, subject, template_path, context)

        payload = {"email": recipient, "subject": subject, "template": template_path, **context}
        await self._queue.submit(EmailJob(kind=kind, payload=payload, run=run))

    async def _deliver(
        self,
        recipient: str,
        subject: str,
        template_path: str,
        context: dict[str, Any],
    ) -> None:
        html = render_template(template_path, context)
        message = EmailMessage()
        message["From"] = self._mail.from_email
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content("This message requires an HTML-capable email client.")
        message.add_alternative(html, subtype="html")
        await self._sender(message)
        logger.info("Sent %r email to %s", subject, recipient)
