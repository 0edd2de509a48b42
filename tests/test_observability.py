"""Tests for observability utilities."""

import json
import logging

from marketnotify.observability.correlation import reset_correlation_id, set_correlation_id
from marketnotify.observability.logging import JsonFormatter
from marketnotify.observability.redaction import (
    hash_identifier,
    redact_string,
    redact_value,
    safe_log_context,
)


class TestRedaction:
    """Tests for redaction helpers."""

    def test_redact_phone_number(self):
        result = redact_string("Reply to +44 7700 900000")
        assert "7700" not in result
        assert "[REDACTED]" in result

    def test_redact_whatsapp_address(self):
        result = redact_string("whatsapp:+447700900000")
        assert "447700900000" not in result

    def test_redact_email(self):
        result = redact_string("Email: buyer@example.com")
        assert "buyer@example.com" not in result
        assert "[REDACTED]" in result

    def test_redact_value_dict_only_keys(self):
        result = redact_value({"userEmail": "a@b.com", "orderId": "o-1"})
        assert "a@b.com" not in result
        assert "o-1" not in result
        assert "userEmail" in result

    def test_redact_value_list_only_len(self):
        assert redact_value(["a", "b", "c"]) == "list(len=3)"

    def test_safe_log_context(self):
        ctx = safe_log_context(phone="+447700900000", count=42, ok=True)
        assert "[REDACTED]" in ctx["phone"]
        assert ctx["count"] == "42"
        assert ctx["ok"] == "true"

    def test_hash_identifier_is_stable_and_short(self):
        assert hash_identifier("+447700900000") == hash_identifier("+447700900000")
        assert len(hash_identifier("+447700900000")) == 12
        assert hash_identifier("a@example.com") != hash_identifier("b@example.com")


class TestJsonFormatter:
    def test_includes_service_correlation_and_extra_fields(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "hello", None, None)
        record.extra_fields = {"event_type": "order.created"}

        token = set_correlation_id("cid-123")
        try:
            line = json.loads(JsonFormatter().format(record))
        finally:
            reset_correlation_id(token)

        assert line["message"] == "hello"
        assert line["service"] == "marketnotify"
        assert line["correlationId"] == "cid-123"
        assert line["event_type"] == "order.created"
        assert line["level"] == "INFO"
