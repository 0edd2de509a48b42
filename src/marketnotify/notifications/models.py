"""Notification domain: enums, inputs for the specialized flows, read schema."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel


# ── Enums ─────────────────────────────────────────────────


class NotificationKind(str, Enum):
    ORDER_CONFIRMATION = "ORDER_CONFIRMATION"
    ORDER_SHIPPED = "ORDER_SHIPPED"
    ORDER_DELIVERED = "ORDER_DELIVERED"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    SELLER_APPROVED = "SELLER_APPROVED"
    WELCOME = "WELCOME"
    GENERIC = "GENERIC"


class NotificationStatus(str, Enum):
    """PENDING -> SENT or PENDING -> FAILED; SENT and FAILED are terminal."""

    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class SellerType(str, Enum):
    WHOLESALER = "WHOLESALER"
    B2C_SELLER = "B2C_SELLER"

    @property
    def display_name(self) -> str:
        return "Wholesaler" if self is SellerType.WHOLESALER else "B2C Seller"


# ── Flow inputs ───────────────────────────────────────────


@dataclass(frozen=True)
class OrderItem:
    name: str
    quantity: int
    price: float

    @property
    def line_total(self) -> float:
        return self.price * self.quantity


@dataclass(frozen=True)
class OrderConfirmation:
    order_id: str
    order_number: str
    user_id: str
    user_email: str | None
    items: list[OrderItem] = field(default_factory=list)
    total: float = 0.0


@dataclass(frozen=True)
class OrderShipped:
    order_id: str
    order_number: str
    user_id: str
    user_email: str | None
    tracking_code: str


@dataclass(frozen=True)
class OrderDelivered:
    order_id: str
    order_number: str
    user_id: str
    user_email: str | None


# ── Persisted row ─────────────────────────────────────────


@dataclass(frozen=True)
class NewNotification:
    """Row to insert; the store assigns id and created_at."""

    user_id: str
    kind: NotificationKind
    subject: str
    content: str
    status: NotificationStatus
    email: str | None = None
    sent_at: datetime | None = None
    metadata: dict[str, Any] | None = None


class NotificationRead(BaseModel):
    id: str
    user_id: str
    type: str
    subject: str
    content: str
    email: str | None
    status: str
    sent_at: str | None
    read_at: str | None
    metadata: dict[str, Any] | None
    created_at: str
