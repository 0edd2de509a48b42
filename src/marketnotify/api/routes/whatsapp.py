"""WhatsApp endpoints - admin messaging, templates and the Twilio webhook.

Security:
- Every endpoint except the webhook requires the ADMIN role
- The webhook is public and authenticated by X-Twilio-Signature (fail-closed)
- Logs contain NO phone numbers or message text
"""

from __future__ import annotations

import json
import math
from typing import Any
from urllib.parse import parse_qsl
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, ConfigDict, Field

from marketnotify.api.auth import AdminDep, CurrentUser
from marketnotify.channels.whatsapp import build_whatsapp_provider
from marketnotify.config import Settings, load_settings
from marketnotify.infra.db import txn
from marketnotify.infra.repositories.whatsapp_repository import (
    create_template,
    list_conversations,
    list_messages,
    list_templates,
)
from marketnotify.observability.logging import get_logger
from marketnotify.observability.redaction import safe_log_context
from marketnotify.whatsapp.conversations import (
    ConversationManager,
    InvalidRecipientError,
    TemplateInactiveError,
    TemplateNotFoundError,
)
from marketnotify.whatsapp.webhook import (
    InvalidWebhookError,
    SignatureVerificationError,
    normalize,
    verify_signature,
)

router = APIRouter(prefix="/whatsapp", tags=["whatsapp"])

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100

_conversation_manager: ConversationManager | None = None


def _get_settings() -> Settings:
    """Read settings per request (allows env override in tests)."""
    return load_settings()


def _get_conversation_manager() -> ConversationManager:
    """Process-wide manager; the provider variant is chosen on first use."""
    global _conversation_manager
    if _conversation_manager is None:
        _conversation_manager = ConversationManager(build_whatsapp_provider(_get_settings().twilio))
    return _conversation_manager


def _pagination(page: int, limit: int, total: int) -> dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": math.ceil(total / limit),
    }


# ── Request bodies ────────────────────────────────────────


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SendMessageRequest(_CamelModel):
    to: str = Field(min_length=1)
    message: str = Field(min_length=1)
    media_url: str | None = Field(None, alias="mediaUrl")
    user_id: str | None = Field(None, alias="userId")
    seller_id: str | None = Field(None, alias="sellerId")
    ticket_id: str | None = Field(None, alias="ticketId")


class CreateTemplateRequest(_CamelModel):
    name: str = Field(min_length=1)
    category: str = Field(min_length=1)
    content: str = Field(min_length=1)
    variables: list[str] = Field(default_factory=list)
    approved_by: str | None = Field(None, alias="approvedBy")


class SendTemplateRequest(_CamelModel):
    to: str = Field(min_length=1)
    template_name: str = Field(min_length=1, alias="templateName")
    variables: dict[str, Any] = Field(default_factory=dict)


# ── Admin messaging ───────────────────────────────────────


@router.post("/send", status_code=201)
def send_message(body: SendMessageRequest, admin: CurrentUser = AdminDep) -> dict:
    """Send a WhatsApp message; the message is recorded even if the provider rejects it.

    Returns:
        400 if the recipient is not an E.164 phone number.
    """
    try:
        message = _get_conversation_manager().send(
            body.to,
            body.message,
            body.media_url,
            user_id=body.user_id,
            seller_id=body.seller_id,
            ticket_id=body.ticket_id,
        )
    except InvalidRecipientError:
        raise HTTPException(status_code=400, detail="Recipient must be an E.164 phone number")
    return {"data": message, "message": "WhatsApp message sent successfully"}


@router.post("/send-template", status_code=201)
def send_template_message(body: SendTemplateRequest, admin: CurrentUser = AdminDep) -> dict:
    """Render a stored template and send it.

    Returns:
        404 if the template does not exist, 400 if it is inactive or the
        recipient is not an E.164 phone number.
    """
    try:
        message = _get_conversation_manager().send_template_message(
            body.to,
            body.template_name,
            body.variables,
        )
    except TemplateNotFoundError:
        raise HTTPException(status_code=404, detail="Template not found")
    except TemplateInactiveError:
        raise HTTPException(status_code=400, detail="Template is not active")
    except InvalidRecipientError:
        raise HTTPException(status_code=400, detail="Recipient must be an E.164 phone number")

    return {"data": message, "message": "Template message sent successfully"}


@router.get("/conversations")
def get_conversations(
    admin: CurrentUser = AdminDep,
    user_id: str | None = Query(None, alias="userId"),
    seller_id: str | None = Query(None, alias="sellerId"),
    ticket_id: str | None = Query(None, alias="ticketId"),
    status: str | None = Query(None, description="ACTIVE or CLOSED"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
) -> dict:
    """Conversations, most recently active first, with message counts."""
    with txn() as cur:
        conversations, total = list_conversations(
            cur,
            user_id=user_id,
            seller_id=seller_id,
            ticket_id=ticket_id,
            status=status,
            limit=limit,
            offset=(page - 1) * limit,
        )

    return {
        "data": {"conversations": conversations, "pagination": _pagination(page, limit, total)},
        "message": "Conversations retrieved successfully",
    }


@router.get("/conversations/{conversation_id}/messages")
def get_conversation_messages(
    conversation_id: UUID,
    admin: CurrentUser = AdminDep,
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
) -> dict:
    """Messages of one conversation, oldest first."""
    with txn() as cur:
        messages, total = list_messages(
            cur,
            str(conversation_id),
            limit=limit,
            offset=(page - 1) * limit,
        )

    return {
        "data": {"messages": messages, "pagination": _pagination(page, limit, total)},
        "message": "Messages retrieved successfully",
    }


# ── Templates ─────────────────────────────────────────────


@router.post("/templates", status_code=201)
def post_template(body: CreateTemplateRequest, admin: CurrentUser = AdminDep) -> dict:
    """Create an active template. Names are unique (409 on conflict)."""
    with txn() as cur:
        template = create_template(
            cur,
            name=body.name,
            category=body.category,
            content=body.content,
            variables=body.variables,
            approved_by=body.approved_by,
        )

    if template is None:
        raise HTTPException(status_code=409, detail="Template name already exists")

    logger.info(
        "whatsapp template created",
        extra={"extra_fields": safe_log_context(template_id=template["id"], category=body.category)},
    )
    return {"data": template, "message": "Template created successfully"}


@router.get("/templates")
def get_templates(
    admin: CurrentUser = AdminDep,
    category: str | None = Query(None),
    is_active: bool | None = Query(None, alias="isActive"),
) -> dict:
    with txn() as cur:
        templates = list_templates(cur, category=category, is_active=is_active)
    return {"data": templates, "message": "Templates retrieved successfully"}


# ── Webhook ───────────────────────────────────────────────


def _parse_params(raw: bytes, content_type: str) -> dict[str, Any]:
    if "application/json" in content_type:
        try:
            data = json.loads(raw or b"{}")
        except ValueError:
            raise InvalidWebhookError("invalid json body") from None
        if not isinstance(data, dict):
            raise InvalidWebhookError("body must be an object")
        # Twilio signs form fields; only flat string values can be verified
        if not all(isinstance(value, str) for value in data.values()):
            raise InvalidWebhookError("body values must be strings")
        return data
    return dict(parse_qsl(raw.decode("utf-8", errors="replace"), keep_blank_values=True))


def _check_signature(request: Request, params: dict[str, Any], settings: Settings) -> None:
    """Verify X-Twilio-Signature, failing closed when no auth token is configured.

    Raises:
        SignatureVerificationError: If the request cannot be authenticated.
    """
    twilio = settings.twilio
    if not twilio.auth_token:
        if twilio.allow_unsigned_webhooks:
            logger.warning("TWILIO_AUTH_TOKEN not set - accepting unsigned webhook (local dev)")
            return
        raise SignatureVerificationError("webhook signing not configured")

    url = twilio.webhook_url or str(request.url)
    verify_signature(url, params, request.headers.get("X-Twilio-Signature", ""), twilio.auth_token)


@router.post("/webhook")
async def whatsapp_webhook(request: Request) -> dict:
    """Receive an inbound WhatsApp message from Twilio.

    Returns:
        200 with the stored message.
        400 if the payload is malformed.
        403 if the signature is missing or invalid.
    """
    raw = await request.body()
    settings = _get_settings()

    try:
        params = _parse_params(raw, request.headers.get("content-type", ""))
        _check_signature(request, params, settings)
        inbound = normalize(params)
    except SignatureVerificationError as e:
        logger.warning(
            "whatsapp webhook rejected - signature",
            extra={"extra_fields": safe_log_context(reason=str(e))},
        )
        raise HTTPException(status_code=403, detail="Invalid signature")
    except InvalidWebhookError as e:
        logger.warning(
            "whatsapp webhook rejected - payload",
            extra={"extra_fields": safe_log_context(reason=str(e))},
        )
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    message = await run_in_threadpool(
        _get_conversation_manager().handle_webhook,
        inbound.from_address,
        inbound.to_address,
        inbound.body,
        inbound.provider_message_id,
        inbound.media_url,
    )
    return {"data": message, "message": "Webhook processed successfully"}
