"""HTTP route tests with auth and persistence patched out."""

from __future__ import annotations

from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from twilio.request_validator import RequestValidator

from marketnotify.api.auth import CurrentUser, get_current_user
from marketnotify.api.factory import create_app
from marketnotify.whatsapp.conversations import (
    InvalidRecipientError,
    TemplateInactiveError,
    TemplateNotFoundError,
)

from .helpers import fake_txn

ROUTES = "marketnotify.api.routes"
TWILIO_TOKEN = "twilio-auth-token"

NOTIFICATION = {
    "id": "9b2f3c1e-0000-4000-8000-000000000001",
    "user_id": "user-1",
    "type": "WELCOME",
    "subject": "Welcome to House of Spells!",
    "content": "Welcome!",
    "email": None,
    "status": "SENT",
    "sent_at": "2026-03-01T12:00:00+00:00",
    "read_at": None,
    "metadata": None,
    "created_at": "2026-03-01T12:00:00+00:00",
}


def _app(roles: frozenset[str] = frozenset({"ADMIN"})):
    app = create_app()
    app.dependency_overrides[get_current_user] = lambda: CurrentUser(
        id="user-1", email="u@example.com", roles=roles
    )
    return app


@pytest.fixture
def db():
    txn, cur = fake_txn()
    with patch(f"{ROUTES}.notifications.txn", txn), patch(f"{ROUTES}.whatsapp.txn", txn):
        yield cur


@pytest.fixture
def manager():
    mock = MagicMock()
    with patch(f"{ROUTES}.whatsapp._get_conversation_manager", return_value=mock):
        yield mock


def test_health():
    response = TestClient(create_app()).get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_correlation_id_echoed():
    response = TestClient(create_app()).get("/health", headers={"X-Correlation-ID": "cid-42"})
    assert response.headers["X-Correlation-ID"] == "cid-42"


class TestNotifications:
    def test_list_scoped_to_caller(self, db):
        with patch(f"{ROUTES}.notifications.list_for_user", return_value=[NOTIFICATION]) as list_mock:
            response = TestClient(_app()).get("/notifications")

        assert response.status_code == 200
        body = response.json()
        assert body["data"][0]["subject"] == "Welcome to House of Spells!"
        assert list_mock.call_args[0][1] == "user-1"

    def test_mark_read(self, db):
        read = {**NOTIFICATION, "read_at": "2026-03-02T09:00:00+00:00"}
        with patch(f"{ROUTES}.notifications.mark_as_read", return_value=read) as mark:
            response = TestClient(_app()).patch(f"/notifications/{NOTIFICATION['id']}/read")

        assert response.status_code == 200
        assert response.json()["data"]["read_at"] == "2026-03-02T09:00:00+00:00"
        assert mark.call_args[0][1:] == (NOTIFICATION["id"], "user-1")

    def test_mark_read_not_found(self, db):
        with patch(f"{ROUTES}.notifications.mark_as_read", return_value=None):
            response = TestClient(_app()).patch(f"/notifications/{uuid4()}/read")
        assert response.status_code == 404

    def test_mark_read_rejects_non_uuid(self, db):
        assert TestClient(_app()).patch("/notifications/not-a-uuid/read").status_code == 422


class TestWhatsAppAdmin:
    def test_send(self, manager):
        manager.send.return_value = {"id": "m-1", "status": "SENT"}
        response = TestClient(_app()).post(
            "/whatsapp/send",
            json={"to": "+447700900000", "message": "hello", "userId": "u-9"},
        )
        assert response.status_code == 201
        assert response.json() == {
            "data": {"id": "m-1", "status": "SENT"},
            "message": "WhatsApp message sent successfully",
        }
        manager.send.assert_called_once_with(
            "+447700900000", "hello", None, user_id="u-9", seller_id=None, ticket_id=None
        )

    def test_send_requires_admin(self, manager):
        response = TestClient(_app(roles=frozenset({"CUSTOMER"}))).post(
            "/whatsapp/send", json={"to": "+447700900000", "message": "hello"}
        )
        assert response.status_code == 403
        manager.send.assert_not_called()

    def test_send_invalid_recipient(self, manager):
        manager.send.side_effect = InvalidRecipientError("Recipient is not a phone number")
        response = TestClient(_app()).post("/whatsapp/send", json={"to": "   ", "message": "hello"})
        assert response.status_code == 400

    def test_send_template_invalid_recipient(self, manager):
        manager.send_template_message.side_effect = InvalidRecipientError("Recipient is not a phone number")
        response = TestClient(_app()).post(
            "/whatsapp/send-template",
            json={"to": "hello", "templateName": "welcome", "variables": {}},
        )
        assert response.status_code == 400

    def test_send_template_not_found(self, manager):
        manager.send_template_message.side_effect = TemplateNotFoundError("Template not found")
        response = TestClient(_app()).post(
            "/whatsapp/send-template",
            json={"to": "+447700900000", "templateName": "nope", "variables": {}},
        )
        assert response.status_code == 404

    def test_send_template_inactive(self, manager):
        manager.send_template_message.side_effect = TemplateInactiveError("Template is not active")
        response = TestClient(_app()).post(
            "/whatsapp/send-template",
            json={"to": "+447700900000", "templateName": "old", "variables": {"name": "Ada"}},
        )
        assert response.status_code == 400

    def test_conversations_pagination(self, db):
        with patch(f"{ROUTES}.whatsapp.list_conversations", return_value=([{"id": "c-1"}], 51)) as list_mock:
            response = TestClient(_app()).get(
                "/whatsapp/conversations", params={"status": "ACTIVE", "page": 2, "limit": 25}
            )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["pagination"] == {"page": 2, "limit": 25, "total": 51, "totalPages": 3}
        kwargs = list_mock.call_args.kwargs
        assert kwargs["status"] == "ACTIVE"
        assert kwargs["limit"] == 25
        assert kwargs["offset"] == 25

    def test_conversation_messages(self, db):
        conversation_id = str(uuid4())
        with patch(f"{ROUTES}.whatsapp.list_messages", return_value=([], 0)) as list_mock:
            response = TestClient(_app()).get(f"/whatsapp/conversations/{conversation_id}/messages")

        assert response.status_code == 200
        assert response.json()["data"]["pagination"]["totalPages"] == 0
        assert list_mock.call_args[0][1] == conversation_id
        assert list_mock.call_args.kwargs == {"limit": 50, "offset": 0}

    def test_create_template(self, db):
        template = {"id": "t-1", "name": "order_ready", "is_active": True}
        with patch(f"{ROUTES}.whatsapp.create_template", return_value=template) as create:
            response = TestClient(_app()).post(
                "/whatsapp/templates",
                json={
                    "name": "order_ready",
                    "category": "ORDER",
                    "content": "Hi {{name}}",
                    "variables": ["name"],
                    "approvedBy": "admin-1",
                },
            )
        assert response.status_code == 201
        assert create.call_args.kwargs["approved_by"] == "admin-1"

    def test_create_template_duplicate_name(self, db):
        with patch(f"{ROUTES}.whatsapp.create_template", return_value=None):
            response = TestClient(_app()).post(
                "/whatsapp/templates",
                json={"name": "dup", "category": "ORDER", "content": "x"},
            )
        assert response.status_code == 409

    def test_list_templates_filters(self, db):
        with patch(f"{ROUTES}.whatsapp.list_templates", return_value=[]) as list_mock:
            response = TestClient(_app()).get(
                "/whatsapp/templates", params={"category": "ORDER", "isActive": "false"}
            )
        assert response.status_code == 200
        assert list_mock.call_args.kwargs == {"category": "ORDER", "is_active": False}


class TestWebhook:
    PARAMS = {
        "From": "whatsapp:+447700900000",
        "To": "whatsapp:+14155238886",
        "Body": "Where is my order?",
        "MessageSid": "SM-in-1",
    }

    def _env(self, **extra):
        return patch.dict("os.environ", {"TWILIO_AUTH_TOKEN": TWILIO_TOKEN, **extra}, clear=False)

    def test_signed_webhook_is_recorded(self, manager):
        manager.handle_webhook.return_value = {"id": "m-1", "direction": "INBOUND"}
        client = TestClient(_app())
        url = "http://testserver/whatsapp/webhook"
        signature = RequestValidator(TWILIO_TOKEN).compute_signature(url, self.PARAMS)

        with self._env(TWILIO_WEBHOOK_URL=url):
            response = client.post(
                "/whatsapp/webhook",
                data=self.PARAMS,
                headers={"X-Twilio-Signature": signature},
            )

        assert response.status_code == 200
        assert response.json()["message"] == "Webhook processed successfully"
        manager.handle_webhook.assert_called_once_with(
            "whatsapp:+447700900000",
            "whatsapp:+14155238886",
            "Where is my order?",
            "SM-in-1",
            None,
        )

    def test_bad_signature_forbidden(self, manager):
        with self._env(TWILIO_WEBHOOK_URL="http://testserver/whatsapp/webhook"):
            response = TestClient(_app()).post(
                "/whatsapp/webhook",
                data=self.PARAMS,
                headers={"X-Twilio-Signature": "bogus"},
            )
        assert response.status_code == 403
        manager.handle_webhook.assert_not_called()

    def test_unsigned_rejected_without_token(self, manager):
        with patch.dict("os.environ", {}, clear=True):
            response = TestClient(_app()).post("/whatsapp/webhook", data=self.PARAMS)
        assert response.status_code == 403

    def test_unsigned_allowed_in_local_dev(self, manager):
        manager.handle_webhook.return_value = {"id": "m-1"}
        with patch.dict("os.environ", {"WHATSAPP_WEBHOOK_ALLOW_UNSIGNED": "true"}, clear=True):
            response = TestClient(_app()).post("/whatsapp/webhook", json={"From": "+447700900000", "Body": "hi"})
        assert response.status_code == 200
        assert manager.handle_webhook.call_args[0][3].startswith("inbound-")

    def test_malformed_payload(self, manager):
        with patch.dict("os.environ", {"WHATSAPP_WEBHOOK_ALLOW_UNSIGNED": "1"}, clear=True):
            response = TestClient(_app()).post("/whatsapp/webhook", data={"Body": "no sender"})
        assert response.status_code == 400
        manager.handle_webhook.assert_not_called()

    @pytest.mark.parametrize(
        "body",
        [
            {"From": "whatsapp:+447700900000", "NumMedia": 0},
            {"From": "whatsapp:+447700900000", "Body": None},
            {"From": "whatsapp:+447700900000", "Body": {"text": "hi"}},
            ["From", "whatsapp:+447700900000"],
        ],
    )
    def test_json_body_with_non_string_values_is_bad_request(self, manager, body):
        with self._env(TWILIO_WEBHOOK_URL="http://testserver/whatsapp/webhook"):
            response = TestClient(_app()).post(
                "/whatsapp/webhook",
                json=body,
                headers={"X-Twilio-Signature": "bogus"},
            )
        assert response.status_code == 400
        manager.handle_webhook.assert_not_called()
