from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from storefront.domain.orders.aggregates import OrderLine


@dataclass(frozen=True)
class OrderPrices:
    items_price: int
    tax_price: int
    shipping_price: int
    total_price: int


def calc_prices(
    items: Iterable[OrderLine],
    tax_rate: Decimal,
    shipping_fee: int,
    free_shipping_threshold: int,
) -> OrderPrices:
    items_price = sum(item.line_total for item in items)
    shipping_price = 0 if items_price >= free_shipping_threshold else shipping_fee
    tax_price = int((Decimal(items_price) * tax_rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return OrderPrices(
        items_price=items_price,
        tax_price=tax_price,
        shipping_price=shipping_price,
        total_price=items_price + tax_price + shipping_price,
    )
