"""Outbound WhatsApp messaging via the Twilio API.

Security: NEVER log the recipient number or message text. Only log hashes and lengths.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal, Protocol

import requests
from twilio.base.exceptions import TwilioException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from marketnotify.config import TwilioSettings
from marketnotify.infra.time import epoch_millis
from marketnotify.observability.logging import get_logger
from marketnotify.observability.redaction import hash_identifier, safe_log_context

logger = get_logger(__name__)

WHATSAPP_PREFIX = "whatsapp:"

# E.164: optional +, 8-15 digits
_PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{7,14}$")


@dataclass(frozen=True)
class SendOutcome:
    """Result of one provider call.

    Attributes:
        message_id: Provider sid, or a synthetic "failed-"/"mock-" id.
        status: SENT when the provider accepted the message, FAILED otherwise.
        simulated: True when no provider is configured; SENT then means
            "accepted for local testing", not delivered.
    """

    message_id: str
    status: Literal["SENT", "FAILED"]
    simulated: bool = False


class WhatsAppProvider(Protocol):
    def send(self, to: str, body: str, media_url: str | None = None) -> SendOutcome: ...


def strip_channel_prefix(address: str) -> str:
    """'whatsapp:+447700900000' -> '+447700900000'."""
    if address.startswith(WHATSAPP_PREFIX):
        return address[len(WHATSAPP_PREFIX):]
    return address


def is_phone_address(address: str) -> bool:
    """True for an E.164 number, with or without the whatsapp: prefix."""
    return bool(_PHONE_PATTERN.match(strip_channel_prefix(address)))


class LoggingWhatsAppProvider:
    """Stand-in used when Twilio credentials are incomplete."""

    enabled = False

    def send(self, to: str, body: str, media_url: str | None = None) -> SendOutcome:
        logger.debug(
            "whatsapp message not sent - twilio not configured",
            extra={
                "extra_fields": safe_log_context(
                    to_hash=hash_identifier(to),
                    text_len=len(body),
                    has_media=media_url is not None,
                )
            },
        )
        return SendOutcome(message_id=f"mock-{epoch_millis()}", status="SENT", simulated=True)


class TwilioWhatsAppProvider:
    """Twilio-backed provider. HTTP calls time out after settings.timeout seconds."""

    enabled = True

    def __init__(self, settings: TwilioSettings, client: Client | None = None) -> None:
        self._from = f"{WHATSAPP_PREFIX}{strip_channel_prefix(settings.whatsapp_number)}"
        self._client = client or Client(
            settings.account_sid,
            settings.auth_token,
            http_client=TwilioHttpClient(timeout=settings.timeout),
        )

    def send(self, to: str, body: str, media_url: str | None = None) -> SendOutcome:
        log_ctx = safe_log_context(
            to_hash=hash_identifier(to),
            text_len=len(body),
            has_media=media_url is not None,
            provider="twilio",
        )
        logger.info("sending whatsapp message", extra={"extra_fields": log_ctx})

        try:
            message = self._client.messages.create(
                from_=self._from,
                to=f"{WHATSAPP_PREFIX}{strip_channel_prefix(to)}",
                body=body,
                media_url=[media_url] if media_url else None,
            )
        except (TwilioException, requests.RequestException) as e:
            logger.error(
                "whatsapp send failed",
                extra={"extra_fields": safe_log_context(**log_ctx, error_type=type(e).__name__)},
            )
            return SendOutcome(message_id=f"failed-{epoch_millis()}", status="FAILED")

        logger.info("whatsapp message sent", extra={"extra_fields": log_ctx})
        return SendOutcome(message_id=message.sid, status="SENT")


def build_whatsapp_provider(settings: TwilioSettings) -> WhatsAppProvider:
    """Pick the Twilio or logging variant once, at startup."""
    if settings.is_complete:
        logger.info("twilio whatsapp integration enabled")
        return TwilioWhatsAppProvider(settings)

    logger.warning("twilio not configured - whatsapp messages will be logged only")
    return LoggingWhatsAppProvider()
