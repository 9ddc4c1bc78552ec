from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import JSON


def _json_type():
    return JSON().with_variant(JSONB(astext_type=Text()), "postgresql")


class Base(DeclarativeBase):
    pass


class OrderModel(Base):
    __tablename__ = "orders"

    order_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    customer_ref: Mapped[str] = mapped_column(String(128), nullable=False)
    line_items: Mapped[list] = mapped_column(_json_type(), default=list, nullable=False)
    shipping_address: Mapped[dict] = mapped_column(_json_type(), default=dict, nullable=False)
    payment_method: Mapped[str] = mapped_column(String(32), nullable=False)
    items_price: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    tax_price: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    shipping_price: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    total_price: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    # Cross-order uniqueness backstop for external transaction ids.
    payment_result_id: Mapped[Optional[str]] = mapped_column(String(128), unique=True, nullable=True)
    payment_result: Mapped[Optional[dict]] = mapped_column(_json_type(), nullable=True)
    is_delivered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    delivery_status: Mapped[str] = mapped_column(String(32), default="Not Processed", nullable=False)
    status_history: Mapped[list] = mapped_column(_json_type(), default=list, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class ProductModel(Base):
    __tablename__ = "products"

    product_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    image: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    count_in_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    num_sales: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


Index("ix_orders_customer_ref", OrderModel.customer_ref)
Index("ix_orders_created_at", OrderModel.created_at)
