from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import update
from sqlalchemy.orm import Session

from storefront.core.errors import InsufficientStock, NotFound
from storefront.domain.orders.aggregates import OrderLine
from storefront.persistence.models import ProductModel

logger = logging.getLogger(__name__)


class InventoryAdjuster:
    """Moves stock into sales for the lines of a newly placed order.

    Each line is a single conditional UPDATE guarded by ``count_in_stock >= qty``,
    so two orders racing for the last units cannot both succeed. A failing line
    raises and the surrounding transaction discards every earlier adjustment.
    """

    def __init__(self, session: Session):
        self.session = session

    def _adjust_line(self, line: OrderLine) -> None:
        stmt = (
            update(ProductModel)
            .where(ProductModel.product_id == line.product_id)
            .where(ProductModel.count_in_stock >= line.qty)
            .values(
                count_in_stock=ProductModel.count_in_stock - line.qty,
                num_sales=ProductModel.num_sales + line.qty,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        if result.rowcount == 1:
            return

        product = self.session.get(ProductModel, line.product_id, populate_existing=True)
        if product is None:
            raise NotFound(f"product not found: {line.product_id}")
        raise InsufficientStock(
            f"insufficient stock for product={line.product_id}: "
            f"requested={line.qty}, available={product.count_in_stock}"
        )

    def apply(self, lines: Iterable[OrderLine]) -> None:
        for line in lines:
            self._adjust_line(line)
            logger.debug("stock adjusted: product=%s qty=%s", line.product_id, line.qty)
        self.session.flush()
