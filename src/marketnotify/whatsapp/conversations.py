"""WhatsApp conversation lifecycle - outbound sends, inbound webhooks, templates.

A phone number has no conversation until the first send or inbound message,
then exactly one ACTIVE conversation. Nothing transitions a conversation to
CLOSED yet.

Security: NEVER log phone numbers or message text. Only log hashes and lengths.
"""

from __future__ import annotations

from typing import Any, Mapping

from marketnotify.channels.whatsapp import WhatsAppProvider, is_phone_address, strip_channel_prefix
from marketnotify.infra.db import txn
from marketnotify.infra.repositories.whatsapp_repository import (
    get_or_create_active_conversation,
    get_template_by_name,
    insert_message,
    touch_conversation,
)
from marketnotify.infra.time import utc_now
from marketnotify.observability.logging import get_logger
from marketnotify.observability.redaction import hash_identifier, safe_log_context

logger = get_logger(__name__)


class TemplateNotFoundError(Exception):
    """Raised when no template has the requested name."""

    pass


class TemplateInactiveError(Exception):
    """Raised when the requested template exists but is disabled."""

    pass


class InvalidRecipientError(ValueError):
    """Raised when an outbound recipient is not an E.164 phone number."""

    pass


def _recipient(to: str) -> str:
    phone_number = strip_channel_prefix(to.strip())
    if not is_phone_address(phone_number):
        raise InvalidRecipientError("Recipient is not a phone number")
    return phone_number


def render_template(content: str, declared: list[str], values: Mapping[str, Any]) -> str:
    """Substitute {{name}} tokens for declared variables only.

    Undeclared tokens stay literal; a declared variable with no value
    becomes an empty string. Replacement is literal, never a regex.
    """
    message = content
    for variable in declared:
        value = values.get(variable)
        message = message.replace("{{" + variable + "}}", "" if value is None else str(value))
    return message


class ConversationManager:
    """Owns WhatsApp conversations and messages for one provider."""

    def __init__(self, provider: WhatsAppProvider) -> None:
        self._provider = provider

    def send(
        self,
        to: str,
        message: str,
        media_url: str | None = None,
        *,
        user_id: str | None = None,
        seller_id: str | None = None,
        ticket_id: str | None = None,
    ) -> dict[str, Any]:
        """Send an outbound message and record it.

        The conversation is resolved before the provider call, so a database
        failure there sends nothing. The message row is persisted and
        last_message_at updated whether the provider accepted the message or
        not; a rejected send is stored with status FAILED.

        Returns:
            The persisted message.

        Raises:
            InvalidRecipientError: If to is not an E.164 number; nothing is sent.
        """
        phone_number = _recipient(to)

        with txn() as cur:
            conversation_id, created = get_or_create_active_conversation(
                cur,
                phone_number,
                user_id=user_id,
                seller_id=seller_id,
                ticket_id=ticket_id,
            )

        # Provider call stays outside any transaction
        outcome = self._provider.send(phone_number, message, media_url)
        now = utc_now()

        with txn() as cur:
            stored = insert_message(
                cur,
                conversation_id=conversation_id,
                provider_message_id=outcome.message_id,
                direction="OUTBOUND",
                content=message,
                media_url=media_url,
                status=outcome.status,
                delivered_at=now if outcome.status == "SENT" else None,
            )
            touch_conversation(cur, conversation_id, now)

        logger.info(
            "outbound whatsapp message recorded",
            extra={
                "extra_fields": safe_log_context(
                    conversation_id=conversation_id,
                    conversation_created=created,
                    to_hash=hash_identifier(phone_number),
                    text_len=len(message),
                    status=outcome.status,
                    simulated=outcome.simulated,
                )
            },
        )
        return stored

    def handle_webhook(
        self,
        from_address: str,
        to_address: str,
        body: str,
        provider_message_id: str,
        media_url: str | None = None,
    ) -> dict[str, Any]:
        """Record an inbound message delivered by the provider webhook.

        Callers must have verified the webhook signature.

        Returns:
            The persisted INBOUND message.
        """
        phone_number = strip_channel_prefix(from_address.strip())
        now = utc_now()

        with txn() as cur:
            conversation_id, created = get_or_create_active_conversation(cur, phone_number)
            stored = insert_message(
                cur,
                conversation_id=conversation_id,
                provider_message_id=provider_message_id,
                direction="INBOUND",
                content=body or "",
                media_url=media_url,
                status="DELIVERED",
                delivered_at=now,
            )
            touch_conversation(cur, conversation_id, now)

        logger.info(
            "inbound whatsapp message recorded",
            extra={
                "extra_fields": safe_log_context(
                    conversation_id=conversation_id,
                    conversation_created=created,
                    from_hash=hash_identifier(phone_number),
                    to_hash=hash_identifier(strip_channel_prefix(to_address or "")),
                    text_len=len(body or ""),
                    has_media=media_url is not None,
                )
            },
        )
        return stored

    def send_template_message(
        self,
        to: str,
        template_name: str,
        variables: Mapping[str, Any],
    ) -> dict[str, Any]:
        """Render a stored template and send it.

        Raises:
            TemplateNotFoundError: No template with that name.
            TemplateInactiveError: Template is disabled; nothing is sent.
            InvalidRecipientError: If to is not an E.164 number.
        """
        _recipient(to)
        with txn() as cur:
            template = get_template_by_name(cur, template_name)

        if template is None:
            raise TemplateNotFoundError("Template not found")
        if not template["is_active"]:
            raise TemplateInactiveError("Template is not active")

        message = render_template(template["content"], template["variables"], variables)
        return self.send(to, message)
