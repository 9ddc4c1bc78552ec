from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import uuid4

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from storefront.core.config import Settings, get_settings
from storefront.core.errors import NotFound, ValidationFailed
from storefront.core.security import Actor
from storefront.domain.inventory.adjuster import InventoryAdjuster
from storefront.domain.orders.aggregates import (
    NOT_PROCESSED,
    PaymentChannel,
    Order,
    OrderLine,
    ShippingAddress,
    StatusHistoryEntry,
)
from storefront.domain.orders.delivery import DeliveryTracker
from storefront.domain.orders.pricing import calc_prices
from storefront.persistence.repository import OrderRepository, ProductRepository

logger = logging.getLogger(__name__)


class OrderItemRequest(BaseModel):
    product_id: str
    qty: int = Field(gt=0)


class ShippingAddressRequest(BaseModel):
    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    postal_code: str = Field(min_length=1)
    country: str = Field(min_length=1)


class PlaceOrderRequest(BaseModel):
    order_items: list[OrderItemRequest] = Field(default_factory=list)
    shipping_address: ShippingAddressRequest
    payment_method: PaymentChannel


class PayerRequest(BaseModel):
    email_address: str | None = None


class WalletCaptureRequest(BaseModel):
    id: str = Field(min_length=1, description="external payment id")
    status: str = ""
    update_time: str = ""
    payer: PayerRequest = Field(default_factory=PayerRequest)


class DeliveryStatusRequest(BaseModel):
    delivery_status: str
    comment: str | None = None


def place_order(
    session: Session,
    actor: Actor,
    request: PlaceOrderRequest,
    settings: Settings | None = None,
    order_id: str | None = None,
) -> Order:
    """Price the order from the catalog, persist it unpaid and move the stock."""
    settings = settings or get_settings()
    if not request.order_items:
        raise ValidationFailed("no order items")

    products = ProductRepository(session)
    lines: list[OrderLine] = []
    for item in request.order_items:
        product = products.get(item.product_id)
        if product is None:
            raise NotFound(f"product not found: {item.product_id}")
        lines.append(
            OrderLine(
                product_id=product.product_id,
                name=product.name,
                qty=item.qty,
                unit_price=int(product.price),
                image=product.image,
            )
        )

    prices = calc_prices(
        lines,
        tax_rate=settings.tax_rate,
        shipping_fee=settings.shipping_fee,
        free_shipping_threshold=settings.free_shipping_threshold,
    )
    now = datetime.now(timezone.utc)
    order = Order(
        order_id=order_id or uuid4().hex,
        customer_ref=actor.id,
        items=tuple(lines),
        shipping_address=ShippingAddress(**request.shipping_address.model_dump()),
        payment_method=request.payment_method,
        items_price=prices.items_price,
        tax_price=prices.tax_price,
        shipping_price=prices.shipping_price,
        total_price=prices.total_price,
        created_at=now,
        delivery_status=NOT_PROCESSED,
        status_history=(
            StatusHistoryEntry(status=NOT_PROCESSED, date=now, comment="Order placed", updated_by=actor.id),
        ),
    )
    OrderRepository(session).add(order)
    InventoryAdjuster(session).apply(order.items)
    logger.info(
        "order placed: order=%s customer=%s lines=%s total=%s method=%s",
        order.order_id,
        order.customer_ref,
        len(order.items),
        order.total_price,
        order.payment_method,
    )
    return order


def update_delivery_status(session: Session, actor: Actor, order_id: str, request: DeliveryStatusRequest) -> Order:
    return DeliveryTracker(session).update_status(
        order_id,
        request.delivery_status,
        actor_id=actor.id,
        comment=request.comment,
    )
