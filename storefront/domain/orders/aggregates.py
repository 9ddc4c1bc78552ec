from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

PaymentChannel = Literal["redirect_gateway", "wallet_checkout", "cash_on_delivery"]
PAYMENT_CHANNELS: tuple[str, ...] = ("redirect_gateway", "wallet_checkout", "cash_on_delivery")

DeliveryStatus = Literal["Not Processed", "Processing", "Shipped", "Delivered", "Cancelled"]
NOT_PROCESSED = "Not Processed"
PROCESSING = "Processing"
SHIPPED = "Shipped"
DELIVERED = "Delivered"
CANCELLED = "Cancelled"
DELIVERY_STATUSES: tuple[str, ...] = (NOT_PROCESSED, PROCESSING, SHIPPED, DELIVERED, CANCELLED)


def iso_utc(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class OrderLine:
    product_id: str
    name: str
    qty: int
    unit_price: int
    image: str | None = None

    @property
    def line_total(self) -> int:
        return self.qty * self.unit_price

    def as_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "qty": self.qty,
            "unit_price": self.unit_price,
            "image": self.image,
        }


@dataclass(frozen=True)
class ShippingAddress:
    address: str
    city: str
    postal_code: str
    country: str

    def as_dict(self) -> dict[str, str]:
        return {
            "address": self.address,
            "city": self.city,
            "postal_code": self.postal_code,
            "country": self.country,
        }


@dataclass(frozen=True)
class PaymentResult:
    """Settlement record; ``raw`` keeps the channel fields verbatim."""

    channel: str
    status: str
    update_time: str
    id: str | None = None
    email_address: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)
    receipt_object_key: str | None = None
    receipt_hash: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "channel": self.channel,
            "status": self.status,
            "update_time": self.update_time,
            "email_address": self.email_address,
            "raw": dict(self.raw),
            "receipt_object_key": self.receipt_object_key,
            "receipt_hash": self.receipt_hash,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PaymentResult":
        return cls(
            id=data.get("id"),
            channel=data.get("channel", ""),
            status=data.get("status", ""),
            update_time=data.get("update_time", ""),
            email_address=data.get("email_address"),
            raw=dict(data.get("raw") or {}),
            receipt_object_key=data.get("receipt_object_key"),
            receipt_hash=data.get("receipt_hash"),
        )


@dataclass(frozen=True)
class StatusHistoryEntry:
    status: str
    date: datetime
    comment: str
    updated_by: str | None

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "date": iso_utc(self.date),
            "comment": self.comment,
            "updated_by": self.updated_by,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StatusHistoryEntry":
        return cls(
            status=data["status"],
            date=datetime.fromisoformat(str(data["date"]).replace("Z", "+00:00")),
            comment=data.get("comment") or "",
            updated_by=data.get("updated_by"),
        )


@dataclass(frozen=True)
class Order:
    order_id: str
    customer_ref: str
    items: tuple[OrderLine, ...]
    shipping_address: ShippingAddress
    payment_method: str
    items_price: int
    tax_price: int
    shipping_price: int
    total_price: int
    created_at: datetime
    is_paid: bool = False
    paid_at: datetime | None = None
    payment_result: PaymentResult | None = None
    is_delivered: bool = False
    delivered_at: datetime | None = None
    delivery_status: str = NOT_PROCESSED
    status_history: tuple[StatusHistoryEntry, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "customer_ref": self.customer_ref,
            "items": [item.as_dict() for item in self.items],
            "shipping_address": self.shipping_address.as_dict(),
            "payment_method": self.payment_method,
            "items_price": self.items_price,
            "tax_price": self.tax_price,
            "shipping_price": self.shipping_price,
            "total_price": self.total_price,
            "is_paid": self.is_paid,
            "paid_at": iso_utc(self.paid_at),
            "payment_result": self.payment_result.as_dict() if self.payment_result else None,
            "is_delivered": self.is_delivered,
            "delivered_at": iso_utc(self.delivered_at),
            "delivery_status": self.delivery_status,
            "status_history": [entry.as_dict() for entry in self.status_history],
            "created_at": iso_utc(self.created_at),
        }
