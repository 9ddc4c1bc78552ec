from __future__ import annotations

from sqlalchemy.orm import Session

from storefront.persistence.repository import OrderRepository


class ReplayGuard:
    def __init__(self, session: Session):
        self.orders = OrderRepository(session)

    def is_first_use(self, external_id: str, order_id: str | None = None) -> bool:
        """False when an order other than ``order_id`` already settled with ``external_id``."""
        for order in self.orders.find_by_settlement_id(external_id):
            if order.order_id != order_id:
                return False
        return True
