"""Notification dispatch - render, deliver through a channel, persist outcome.

Call shapes:
- send_to_user(): generic notification; row is always written with status SENT.
- send_order_*(): kind-specific email; status is SENT only when the channel
  accepted the message, otherwise PENDING.
- send_seller_invitation(): email only, no row; returns the channel outcome.

Security: NEVER log email addresses. Only log hashes.
"""

from __future__ import annotations

from typing import Any, Callable
from urllib.parse import urlsplit

from marketnotify.channels.mail import EmailChannel
from marketnotify.infra.db import txn
from marketnotify.infra.repositories.notifications_repository import insert_notification
from marketnotify.infra.time import utc_now
from marketnotify.observability.logging import get_logger
from marketnotify.observability.redaction import hash_identifier, safe_log_context

from . import templates
from .models import (
    NewNotification,
    NotificationKind,
    NotificationStatus,
    OrderConfirmation,
    OrderDelivered,
    OrderShipped,
    SellerType,
)

logger = get_logger(__name__)


def _normalize_email(email: str | None) -> str | None:
    if email is None:
        return None
    email = email.strip()
    return email or None


class NotificationDispatcher:
    """Orchestrates template rendering, the email channel and the notification store."""

    def __init__(
        self,
        email_channel: EmailChannel,
        clock: Callable[[], Any] = utc_now,
    ) -> None:
        self._email = email_channel
        self._clock = clock

    def _persist(self, notification: NewNotification) -> str:
        with txn() as cur:
            return insert_notification(cur, notification)

    def send_to_user(
        self,
        user_id: str,
        kind: NotificationKind,
        subject: str,
        content: str,
        email: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Persist a notification and, if an address is given, email it.

        The row is written before the email is attempted and its status is
        SENT regardless of the channel outcome.

        Returns:
            The notification id.
        """
        email = _normalize_email(email)
        notification_id = self._persist(
            NewNotification(
                user_id=user_id,
                kind=kind,
                subject=subject,
                content=content,
                email=email,
                status=NotificationStatus.SENT,
                sent_at=self._clock(),
                metadata=metadata,
            )
        )

        email_sent = False
        if email:
            email_sent = self._email.send(email, subject, templates.render_generic(subject, content))

        logger.info(
            "notification sent to user",
            extra={
                "extra_fields": safe_log_context(
                    notification_id=notification_id,
                    user_id=user_id,
                    kind=kind.value,
                    has_email=email is not None,
                    email_sent=email_sent,
                )
            },
        )
        return notification_id

    def _deliver_flow(
        self,
        *,
        kind: NotificationKind,
        user_id: str,
        email: str | None,
        subject: str,
        html: str,
        content: str,
        metadata: dict[str, Any],
        reference: str,
    ) -> str:
        email = _normalize_email(email)
        email_sent = False

        if email:
            email_sent = self._email.send(email, subject, html)
        else:
            logger.warning(
                "no email address provided - skipping email",
                extra={"extra_fields": safe_log_context(kind=kind.value, reference=reference)},
            )

        status = NotificationStatus.SENT if email_sent else NotificationStatus.PENDING
        notification_id = self._persist(
            NewNotification(
                user_id=user_id,
                kind=kind,
                subject=subject,
                content=content,
                email=email,
                status=status,
                sent_at=self._clock() if email_sent else None,
                metadata=metadata,
            )
        )

        logger.info(
            "order notification recorded",
            extra={
                "extra_fields": safe_log_context(
                    notification_id=notification_id,
                    kind=kind.value,
                    reference=reference,
                    status=status.value,
                    to_hash=hash_identifier(email) if email else None,
                )
            },
        )
        return notification_id

    def send_order_confirmation(self, order: OrderConfirmation) -> str:
        return self._deliver_flow(
            kind=NotificationKind.ORDER_CONFIRMATION,
            user_id=order.user_id,
            email=order.user_email,
            subject=f"Order Confirmation - {order.order_number}",
            html=templates.render_order_confirmation(order.order_number, order.items, order.total),
            content=f"Your order {order.order_number} has been confirmed.",
            metadata={"orderId": order.order_id},
            reference=order.order_number,
        )

    def send_order_shipped(self, order: OrderShipped) -> str:
        return self._deliver_flow(
            kind=NotificationKind.ORDER_SHIPPED,
            user_id=order.user_id,
            email=order.user_email,
            subject=f"Your Order Has Shipped - {order.order_number}",
            html=templates.render_order_shipped(order.order_number, order.tracking_code),
            content=(
                f"Your order {order.order_number} has been shipped. "
                f"Tracking: {order.tracking_code}"
            ),
            metadata={"orderId": order.order_id, "trackingCode": order.tracking_code},
            reference=order.order_number,
        )

    def send_order_delivered(self, order: OrderDelivered) -> str:
        return self._deliver_flow(
            kind=NotificationKind.ORDER_DELIVERED,
            user_id=order.user_id,
            email=order.user_email,
            subject=f"Order Delivered - {order.order_number}",
            html=templates.render_order_delivered(order.order_number),
            content=f"Your order {order.order_number} has been delivered.",
            metadata={"orderId": order.order_id},
            reference=order.order_number,
        )

    def send_seller_invitation(
        self,
        email: str,
        seller_type: SellerType | str,
        invitation_link: str,
        message: str | None = None,
    ) -> bool:
        """Email an invitation to register as a seller.

        The invitee has no account yet, so no notification row is written.

        Returns:
            True if the channel accepted the email.

        Raises:
            ValueError: Unknown seller type, blank address, or a link that is
                not http(s).
        """
        seller_type = SellerType(seller_type)
        email = _normalize_email(email)
        if not email:
            raise ValueError("email is required")
        if urlsplit(invitation_link).scheme not in ("http", "https"):
            raise ValueError("invitation_link must be an http(s) URL")

        name = seller_type.display_name
        sent = self._email.send(
            email,
            f"You've been invited to join House of Spells as a {name}",
            templates.render_seller_invitation(name, invitation_link, message),
        )

        logger.info(
            "seller invitation processed",
            extra={
                "extra_fields": safe_log_context(
                    seller_type=seller_type.value,
                    to_hash=hash_identifier(email),
                    email_sent=sent,
                )
            },
        )
        return sent
