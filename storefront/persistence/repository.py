from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from storefront.domain.orders.aggregates import (
    Order,
    OrderLine,
    PaymentResult,
    ShippingAddress,
    StatusHistoryEntry,
)
from storefront.persistence.models import OrderModel, ProductModel


def _utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def order_from_row(row: OrderModel) -> Order:
    return Order(
        order_id=row.order_id,
        customer_ref=row.customer_ref,
        items=tuple(
            OrderLine(
                product_id=str(item["product_id"]),
                name=str(item.get("name") or ""),
                qty=int(item["qty"]),
                unit_price=int(item["unit_price"]),
                image=item.get("image"),
            )
            for item in row.line_items or []
        ),
        shipping_address=ShippingAddress(**(row.shipping_address or {})),
        payment_method=row.payment_method,
        items_price=int(row.items_price),
        tax_price=int(row.tax_price),
        shipping_price=int(row.shipping_price),
        total_price=int(row.total_price),
        created_at=_utc(row.created_at),
        is_paid=bool(row.is_paid),
        paid_at=_utc(row.paid_at),
        payment_result=PaymentResult.from_dict(row.payment_result) if row.payment_result else None,
        is_delivered=bool(row.is_delivered),
        delivered_at=_utc(row.delivered_at),
        delivery_status=row.delivery_status,
        status_history=tuple(StatusHistoryEntry.from_dict(entry) for entry in row.status_history or []),
    )


def _columns(order: Order) -> dict[str, Any]:
    return {
        "customer_ref": order.customer_ref,
        "line_items": [item.as_dict() for item in order.items],
        "shipping_address": order.shipping_address.as_dict(),
        "payment_method": order.payment_method,
        "items_price": order.items_price,
        "tax_price": order.tax_price,
        "shipping_price": order.shipping_price,
        "total_price": order.total_price,
        "is_paid": order.is_paid,
        "paid_at": order.paid_at,
        "payment_result_id": order.payment_result.id if order.payment_result else None,
        "payment_result": order.payment_result.as_dict() if order.payment_result else None,
        "is_delivered": order.is_delivered,
        "delivered_at": order.delivered_at,
        "delivery_status": order.delivery_status,
        "status_history": [entry.as_dict() for entry in order.status_history],
    }


class OrderRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, order_id: str, *, for_update: bool = False) -> Order | None:
        """Load a fresh snapshot; ``for_update`` holds the row lock until the transaction ends."""
        row = self.session.get(OrderModel, order_id, populate_existing=True, with_for_update=for_update)
        if row is None:
            return None
        return order_from_row(row)

    def add(self, order: Order) -> Order:
        row = OrderModel(
            order_id=order.order_id,
            created_at=order.created_at,
            updated_at=order.created_at,
            **_columns(order),
        )
        self.session.add(row)
        self.session.flush()
        return order

    def update(self, order: Order, *, require_unpaid: bool = False) -> bool:
        """Persist ``order``; with ``require_unpaid`` only an unpaid row is written."""
        stmt = (
            update(OrderModel)
            .where(OrderModel.order_id == order.order_id)
            .values(updated_at=datetime.now(timezone.utc), **_columns(order))
            .execution_options(synchronize_session=False)
        )
        if require_unpaid:
            stmt = stmt.where(OrderModel.is_paid.is_(False))
        result = self.session.execute(stmt)
        self.session.flush()
        return result.rowcount == 1

    def list(self, customer_ref: str | None = None) -> list[Order]:
        stmt = select(OrderModel).order_by(OrderModel.created_at.desc()).execution_options(populate_existing=True)
        if customer_ref is not None:
            stmt = stmt.where(OrderModel.customer_ref == customer_ref)
        return [order_from_row(row) for row in self.session.scalars(stmt).all()]

    def find_by_settlement_id(self, external_id: str) -> list[Order]:
        stmt = select(OrderModel).where(OrderModel.payment_result_id == external_id).execution_options(
            populate_existing=True
        )
        return [order_from_row(row) for row in self.session.scalars(stmt).all()]


class ProductRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, product_id: str) -> ProductModel | None:
        return self.session.get(ProductModel, product_id)
