"""Event handlers - one function per marketplace event type.

Each handler receives the dispatcher and the event payload. A missing
required field raises InvalidEventError; the router dead-letters it.
"""

from __future__ import annotations

from typing import Any, Callable

from marketnotify.notifications.dispatcher import NotificationDispatcher
from marketnotify.notifications.models import (
    NotificationKind,
    OrderConfirmation,
    OrderDelivered,
    OrderItem,
    OrderShipped,
)
from marketnotify.observability.logging import get_logger
from marketnotify.observability.redaction import safe_log_context

from .envelope import InvalidEventError

logger = get_logger(__name__)

Handler = Callable[[NotificationDispatcher, dict[str, Any]], None]


def _require(payload: dict[str, Any], key: str) -> Any:
    value = payload.get(key)
    if value is None or value == "":
        raise InvalidEventError(f"payload missing {key}")
    return value


def _amount(payload: dict[str, Any]) -> str:
    amount = _require(payload, "amount")
    currency = _require(payload, "currency")
    try:
        return f"{currency} {float(amount):.2f}"
    except (TypeError, ValueError):
        raise InvalidEventError("amount must be numeric") from None


def _items(payload: dict[str, Any]) -> list[OrderItem]:
    raw_items = payload.get("items") or []
    if not isinstance(raw_items, list):
        raise InvalidEventError("items must be a list")
    try:
        return [
            OrderItem(
                # productName is optional enrichment; fall back to the id
                name=str(item.get("productName") or item["productId"]),
                quantity=int(item["quantity"]),
                price=float(item["price"]),
            )
            for item in raw_items
        ]
    except (KeyError, TypeError, ValueError, AttributeError):
        raise InvalidEventError("malformed order item") from None


# ── Orders ────────────────────────────────────────────────


def handle_order_created(dispatcher: NotificationDispatcher, payload: dict[str, Any]) -> None:
    try:
        total = float(payload.get("total") or 0)
    except (TypeError, ValueError):
        raise InvalidEventError("total must be numeric") from None

    dispatcher.send_order_confirmation(
        OrderConfirmation(
            order_id=_require(payload, "orderId"),
            order_number=_require(payload, "orderNumber"),
            user_id=_require(payload, "userId"),
            # Upstream does not always enrich the email; the dispatcher tolerates None
            user_email=payload.get("userEmail") or None,
            items=_items(payload),
            total=total,
        )
    )


def handle_order_cancelled(dispatcher: NotificationDispatcher, payload: dict[str, Any]) -> None:
    order_number = _require(payload, "orderNumber")
    reason = payload.get("reason")
    content = f"Your order {order_number} has been cancelled."
    if reason:
        content += f" Reason: {reason}"

    dispatcher.send_to_user(
        _require(payload, "userId"),
        NotificationKind.ORDER_CANCELLED,
        f"Order Cancelled - {order_number}",
        content,
        metadata={"orderId": payload.get("orderId")},
    )


# ── Payments ──────────────────────────────────────────────


def handle_payment_completed(dispatcher: NotificationDispatcher, payload: dict[str, Any]) -> None:
    dispatcher.send_to_user(
        _require(payload, "userId"),
        NotificationKind.PAYMENT_RECEIVED,
        "Payment Received",
        f"Your payment of {_amount(payload)} has been received.",
        metadata={"paymentId": _require(payload, "paymentId"), "orderId": payload.get("orderId")},
    )


def handle_payment_failed(dispatcher: NotificationDispatcher, payload: dict[str, Any]) -> None:
    reason = payload.get("reason") or "unknown"
    dispatcher.send_to_user(
        _require(payload, "userId"),
        NotificationKind.PAYMENT_FAILED,
        "Payment Failed",
        f"Your payment of {_amount(payload)} has failed. Reason: {reason}",
        metadata={"paymentId": _require(payload, "paymentId"), "orderId": payload.get("orderId")},
    )


# ── Shipping ──────────────────────────────────────────────
# Shipment events only carry shipment/order ids. Until the shipping service
# enriches them with userId and orderNumber they are logged, not sent.


def _is_enriched(payload: dict[str, Any]) -> bool:
    return bool(payload.get("userId") and payload.get("orderNumber"))


def handle_shipment_shipped(dispatcher: NotificationDispatcher, payload: dict[str, Any]) -> None:
    order_id = _require(payload, "orderId")
    tracking_number = _require(payload, "trackingNumber")

    if not _is_enriched(payload):
        logger.info(
            "shipment notification not sent - order details missing",
            extra={
                "extra_fields": safe_log_context(
                    shipment_id=payload.get("shipmentId"),
                    order_id=order_id,
                )
            },
        )
        return

    dispatcher.send_order_shipped(
        OrderShipped(
            order_id=order_id,
            order_number=payload["orderNumber"],
            user_id=payload["userId"],
            user_email=payload.get("userEmail") or None,
            tracking_code=tracking_number,
        )
    )


def handle_shipment_delivered(dispatcher: NotificationDispatcher, payload: dict[str, Any]) -> None:
    order_id = _require(payload, "orderId")

    if not _is_enriched(payload):
        logger.info(
            "delivery notification not sent - order details missing",
            extra={
                "extra_fields": safe_log_context(
                    shipment_id=payload.get("shipmentId"),
                    order_id=order_id,
                )
            },
        )
        return

    dispatcher.send_order_delivered(
        OrderDelivered(
            order_id=order_id,
            order_number=payload["orderNumber"],
            user_id=payload["userId"],
            user_email=payload.get("userEmail") or None,
        )
    )


# ── Sellers & accounts ────────────────────────────────────


def handle_seller_approved(dispatcher: NotificationDispatcher, payload: dict[str, Any]) -> None:
    store_name = _require(payload, "storeName")
    dispatcher.send_to_user(
        _require(payload, "userId"),
        NotificationKind.SELLER_APPROVED,
        "Seller Account Approved",
        (
            f'Congratulations! Your seller account "{store_name}" has been approved. '
            "You can now start listing products."
        ),
        metadata={"sellerId": _require(payload, "sellerId")},
    )


def handle_user_registered(dispatcher: NotificationDispatcher, payload: dict[str, Any]) -> None:
    first_name = (payload.get("firstName") or "").strip()
    greeting = f"Welcome {first_name}!" if first_name else "Welcome!"
    dispatcher.send_to_user(
        _require(payload, "userId"),
        NotificationKind.WELCOME,
        "Welcome to House of Spells!",
        f"{greeting} Your account has been created successfully.",
        email=payload.get("email") or None,
    )


# Event type -> handler. Canonical upstream patterns are registered as aliases.
EVENT_HANDLERS: dict[str, Handler] = {
    "order.created": handle_order_created,
    "order.order.created": handle_order_created,
    "order.cancelled": handle_order_cancelled,
    "order.order.cancelled": handle_order_cancelled,
    "payment.completed": handle_payment_completed,
    "payment.payment.completed": handle_payment_completed,
    "payment.failed": handle_payment_failed,
    "payment.payment.failed": handle_payment_failed,
    "shipment.shipped": handle_shipment_shipped,
    "shipping.shipment.shipped": handle_shipment_shipped,
    "shipment.delivered": handle_shipment_delivered,
    "shipping.shipment.delivered": handle_shipment_delivered,
    "seller.approved": handle_seller_approved,
    "seller.seller.approved": handle_seller_approved,
    "auth.user.registered": handle_user_registered,
}
