from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from storefront.core.errors import NotFound, ValidationFailed
from storefront.core.locks import ORDER_LOCKS, OrderLocks
from storefront.domain.orders.aggregates import (
    CANCELLED,
    DELIVERED,
    DELIVERY_STATUSES,
    Order,
    StatusHistoryEntry,
)
from storefront.persistence.repository import OrderRepository

logger = logging.getLogger(__name__)


def apply_delivery_status(
    order: Order,
    status: str,
    actor_id: str | None,
    comment: str | None = None,
    now: datetime | None = None,
) -> Order:
    """Return ``order`` moved to ``status`` with one more history entry.

    ``is_delivered``/``delivered_at`` follow the status: entering Delivered sets
    them, leaving Delivered clears them.
    """
    if status not in DELIVERY_STATUSES:
        raise ValidationFailed(f"unknown delivery status: {status}")
    if status == CANCELLED and order.delivery_status == DELIVERED:
        raise ValidationFailed("a delivered order cannot be cancelled")

    now = now or datetime.now(timezone.utc)
    is_delivered = order.is_delivered
    delivered_at = order.delivered_at
    if status == DELIVERED and not is_delivered:
        is_delivered = True
        delivered_at = now
    if status != DELIVERED and is_delivered:
        is_delivered = False
        delivered_at = None

    entry = StatusHistoryEntry(status=status, date=now, comment=comment or "", updated_by=actor_id)
    return replace(
        order,
        delivery_status=status,
        is_delivered=is_delivered,
        delivered_at=delivered_at,
        status_history=order.status_history + (entry,),
    )


class DeliveryTracker:
    """Applies status changes one at a time per order; each change is committed before the next is read."""

    def __init__(self, session: Session, locks: OrderLocks | None = None):
        self.session = session
        self.orders = OrderRepository(session)
        self.locks = locks if locks is not None else ORDER_LOCKS

    def update_status(self, order_id: str, status: str, actor_id: str, comment: str | None = None) -> Order:
        with self.locks.hold(order_id):
            order = self.orders.get(order_id, for_update=True)
            if order is None:
                raise NotFound("order not found")
            updated = apply_delivery_status(order, status, actor_id=actor_id, comment=comment)
            self.orders.update(updated)
            self.session.commit()
        logger.info(
            "delivery status changed: order=%s %s -> %s by=%s",
            order_id,
            order.delivery_status,
            status,
            actor_id,
        )
        return updated
