"""Transactional email channel over SMTP (aiosmtplib).

The channel is called from worker threads. Each send runs its own short
event loop.

Security: NEVER log recipient addresses or bodies. Only log
hashes and lengths.
"""

from __future__ import annotations

import asyncio
import email.policy
from email.message import EmailMessage
from typing import Protocol

import aiosmtplib

from marketnotify.config import SmtpSettings
from marketnotify.observability.logging import get_logger
from marketnotify.observability.redaction import hash_identifier, safe_log_context

logger = get_logger(__name__)

# Implicit TLS port; everything else negotiates STARTTLS when offered
SMTPS_PORT = 465


class EmailChannel(Protocol):
    """Send one HTML email. Returns True on provider acceptance, never raises."""

    def send(self, to: str, subject: str, html: str) -> bool: ...


class DisabledEmailChannel:
    """Stand-in used when SMTP credentials are incomplete."""

    enabled = False

    def send(self, to: str, subject: str, html: str) -> bool:
        logger.debug(
            "email not sent - smtp not configured",
            extra={
                "extra_fields": safe_log_context(
                    to_hash=hash_identifier(to or ""),
                    subject_len=len(subject),
                )
            },
        )
        return False


class SmtpEmailChannel:
    """SMTP-backed channel. Every connection carries an explicit timeout."""

    enabled = True

    def __init__(self, settings: SmtpSettings) -> None:
        self._settings = settings

    def _build_message(self, to: str, subject: str, html: str) -> EmailMessage:
        message = EmailMessage(policy=email.policy.default)
        message["From"] = self._settings.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(html, subtype="html", charset="utf-8")
        return message

    async def _deliver(self, message: EmailMessage) -> None:
        s = self._settings
        implicit_tls = s.port == SMTPS_PORT
        await aiosmtplib.send(
            message,
            hostname=s.host,
            port=s.port,
            username=s.user,
            password=s.password,
            use_tls=implicit_tls,
            start_tls=False if implicit_tls else None,
            timeout=s.timeout,
        )

    def send(self, to: str, subject: str, html: str) -> bool:
        log_ctx = safe_log_context(
            to_hash=hash_identifier(to),
            subject_len=len(subject),
            html_len=len(html),
            provider="smtp",
        )

        try:
            # Header injection (CR/LF in an address or subject) raises ValueError
            message = self._build_message(to, subject, html)
            asyncio.run(self._deliver(message))
        except (aiosmtplib.SMTPException, asyncio.TimeoutError, OSError, ValueError) as e:
            logger.error(
                "email send failed",
                extra={"extra_fields": safe_log_context(**log_ctx, error_type=type(e).__name__)},
            )
            return False

        logger.info("email sent", extra={"extra_fields": log_ctx})
        return True


def build_email_channel(settings: SmtpSettings) -> EmailChannel:
    """Pick the SMTP or disabled variant once, at startup."""
    if settings.is_complete:
        logger.info(
            "smtp email channel enabled",
            extra={"extra_fields": safe_log_context(port=settings.port)},
        )
        return SmtpEmailChannel(settings)

    logger.warning("smtp not configured - emails will be logged only")
    return DisabledEmailChannel()
