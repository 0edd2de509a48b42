"""Tests for domain event envelope decoding."""

import json

import pytest

from marketnotify.events.envelope import DomainEvent, InvalidEventError

ENVELOPE = {
    "eventId": "evt-1",
    "type": "order.created",
    "timestamp": "2026-03-01T12:00:00Z",
    "source": "order-service",
    "correlationId": "cid-1",
    "payload": {"orderId": "o-1"},
}


class TestFromDict:
    def test_bare_envelope(self):
        event = DomainEvent.from_dict(ENVELOPE)
        assert event.type == "order.created"
        assert event.event_id == "evt-1"
        assert event.source == "order-service"
        assert event.correlation_id == "cid-1"
        assert event.payload == {"orderId": "o-1"}

    def test_wrapped_transport_framing(self):
        inner = {k: v for k, v in ENVELOPE.items() if k != "type"}
        inner["pattern"] = "order.order.created"
        event = DomainEvent.from_dict({"pattern": "order.order.created", "data": inner})
        assert event.type == "order.order.created"
        assert event.event_id == "evt-1"

    def test_channel_is_last_resort_type(self):
        event = DomainEvent.from_dict({"payload": {}}, channel="seller.approved")
        assert event.type == "seller.approved"
        assert event.event_id is None

    def test_missing_type_rejected(self):
        with pytest.raises(InvalidEventError):
            DomainEvent.from_dict({"payload": {}})

    def test_non_object_payload_rejected(self):
        with pytest.raises(InvalidEventError):
            DomainEvent.from_dict({"type": "order.created", "payload": "nope"})

    def test_non_object_envelope_rejected(self):
        with pytest.raises(InvalidEventError):
            DomainEvent.from_dict(["order.created"])


class TestFromMessage:
    def test_json_string(self):
        event = DomainEvent.from_message(json.dumps(ENVELOPE))
        assert event.type == "order.created"

    def test_invalid_json(self):
        with pytest.raises(InvalidEventError):
            DomainEvent.from_message("{not json")
