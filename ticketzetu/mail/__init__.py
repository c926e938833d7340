"""Email job queue and transactional email service."""

from __future__ import annotations

from ticketzetu.mail.queue import EmailJob, EmailQueue
from ticketzetu.mail.service import EmailService, SmtpSender, generate_verification_code

__all__ = ["EmailJob", "EmailQueue", "EmailService", "SmtpSender", "generate_verification_code"]
