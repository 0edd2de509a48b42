"""Twilio WhatsApp webhook adapter - verify and normalize inbound payloads.

Twilio posts application/x-www-form-urlencoded bodies and signs them with
X-Twilio-Signature (HMAC-SHA1 over the public URL plus sorted params).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from twilio.request_validator import RequestValidator

from marketnotify.channels.whatsapp import is_phone_address
from marketnotify.infra.time import epoch_millis


class InvalidWebhookError(Exception):
    """Raised when a webhook payload has an invalid shape."""

    pass


class SignatureVerificationError(Exception):
    """Raised when the Twilio signature is missing or does not match."""

    pass


@dataclass(frozen=True)
class InboundWhatsApp:
    """Normalized inbound message. from_address and body are PII."""

    from_address: str
    to_address: str
    body: str
    provider_message_id: str
    media_url: str | None


def verify_signature(
    url: str,
    params: Mapping[str, Any],
    signature_header: str,
    auth_token: str,
) -> None:
    """Verify a Twilio webhook signature.

    Args:
        url: Full public URL Twilio posted to (including query string).
        params: Decoded form parameters.
        signature_header: X-Twilio-Signature header value.
        auth_token: Twilio auth token (HMAC key).

    Raises:
        SignatureVerificationError: If signature is missing or invalid.
    """
    if not signature_header:
        raise SignatureVerificationError("missing signature header")

    validator = RequestValidator(auth_token)
    if not validator.validate(url, dict(params), signature_header):
        raise SignatureVerificationError("signature mismatch")


def _text(params: Mapping[str, Any], key: str, *, strip: bool = True) -> str:
    value = params.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise InvalidWebhookError(f"{key} must be a string")
    return value.strip() if strip else value


def normalize(params: Mapping[str, Any]) -> InboundWhatsApp:
    """Normalize a Twilio inbound-message payload.

    Only From is mandatory. A missing MessageSid gets a synthetic
    "inbound-<epoch ms>" id.

    Raises:
        InvalidWebhookError: If From is missing or is not a phone address.
    """
    from_address = _text(params, "From")
    if not from_address:
        raise InvalidWebhookError("missing From")
    if not is_phone_address(from_address):
        raise InvalidWebhookError("From is not a phone address")

    message_sid = _text(params, "MessageSid") or _text(params, "SmsMessageSid")
    media_url = _text(params, "MediaUrl0") or None

    return InboundWhatsApp(
        from_address=from_address,
        to_address=_text(params, "To"),
        body=_text(params, "Body", strip=False),
        provider_message_id=message_sid or f"inbound-{epoch_millis()}",
        media_url=media_url,
    )
