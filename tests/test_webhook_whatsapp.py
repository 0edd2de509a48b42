"""Tests for Twilio webhook normalization and signature verification."""

from __future__ import annotations

import pytest
from twilio.request_validator import RequestValidator

from marketnotify.whatsapp.webhook import (
    InvalidWebhookError,
    SignatureVerificationError,
    normalize,
    verify_signature,
)

URL = "https://notify.example.com/whatsapp/webhook"
TOKEN = "twilio-auth-token"


class TestNormalize:
    def test_full_payload(self):
        inbound = normalize(
            {
                "From": "whatsapp:+447700900000",
                "To": "whatsapp:+14155238886",
                "Body": "  hello  ",
                "MessageSid": "SM123",
                "MediaUrl0": "https://api.twilio.com/media/1",
            }
        )
        assert inbound.from_address == "whatsapp:+447700900000"
        assert inbound.body == "  hello  "
        assert inbound.provider_message_id == "SM123"
        assert inbound.media_url == "https://api.twilio.com/media/1"

    def test_missing_message_sid_is_synthesized(self):
        inbound = normalize({"From": "whatsapp:+447700900000", "Body": "hi"})
        assert inbound.provider_message_id.startswith("inbound-")
        assert inbound.media_url is None

    def test_sms_message_sid_fallback(self):
        inbound = normalize({"From": "+447700900000", "SmsMessageSid": "SM9"})
        assert inbound.provider_message_id == "SM9"

    @pytest.mark.parametrize("params", [{}, {"From": ""}, {"From": "whatsapp:hello"}, {"From": "+12"}])
    def test_missing_or_invalid_from(self, params):
        with pytest.raises(InvalidWebhookError):
            normalize(params)


class TestVerifySignature:
    def _sign(self, params: dict) -> str:
        return RequestValidator(TOKEN).compute_signature(URL, params)

    def test_valid_signature(self):
        params = {"From": "whatsapp:+447700900000", "Body": "hi"}
        verify_signature(URL, params, self._sign(params), TOKEN)

    def test_tampered_body(self):
        params = {"From": "whatsapp:+447700900000", "Body": "hi"}
        signature = self._sign(params)
        with pytest.raises(SignatureVerificationError):
            verify_signature(URL, {**params, "Body": "changed"}, signature, TOKEN)

    def test_missing_header(self):
        with pytest.raises(SignatureVerificationError):
            verify_signature(URL, {}, "", TOKEN)
