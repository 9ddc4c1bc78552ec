from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from uuid import uuid4

import storefront.persistence.pg as pg
from storefront import cli
from storefront.domain.orders.aggregates import DELIVERED, NOT_PROCESSED
from storefront.persistence.migrations import MIGRATION_COMMENT, backfill_delivery_status
from storefront.persistence.models import OrderModel
from storefront.persistence.repository import OrderRepository


def _legacy_row(is_delivered: bool) -> OrderModel:
    created = datetime(2023, 5, 1, 8, 0, tzinfo=timezone.utc)
    return OrderModel(
        order_id=f"legacy-{uuid4().hex[:10]}",
        customer_ref="customer-001",
        line_items=[{"product_id": "p1", "name": "Mug", "qty": 1, "unit_price": 100000, "image": None}],
        shipping_address={"address": "1 Trang Tien", "city": "Hanoi", "postal_code": "100000", "country": "Vietnam"},
        payment_method="cash_on_delivery",
        items_price=100000,
        tax_price=10000,
        shipping_price=30000,
        total_price=140000,
        is_paid=is_delivered,
        is_delivered=is_delivered,
        delivered_at=datetime(2023, 5, 3, 9, 30, tzinfo=timezone.utc) if is_delivered else None,
        delivery_status=NOT_PROCESSED,
        status_history=[],
        created_at=created,
        updated_at=created,
    )


def test_backfill_sets_status_from_delivery_flag(configure_test_engine):
    delivered_row = _legacy_row(is_delivered=True)
    pending_row = _legacy_row(is_delivered=False)
    with pg.session_scope() as s:
        s.add_all([delivered_row, pending_row])

    with pg.session_scope() as s:
        assert backfill_delivery_status(s) == 2

    with pg.session_scope() as s:
        repo = OrderRepository(s)
        delivered = repo.get(delivered_row.order_id)
        pending = repo.get(pending_row.order_id)

    assert delivered.delivery_status == DELIVERED
    assert len(delivered.status_history) == 1
    assert delivered.status_history[0].comment == MIGRATION_COMMENT
    assert delivered.status_history[0].date == datetime(2023, 5, 3, 9, 30, tzinfo=timezone.utc)
    assert pending.delivery_status == NOT_PROCESSED
    assert pending.status_history[0].date == datetime(2023, 5, 1, 8, 0, tzinfo=timezone.utc)


def test_backfill_leaves_tracked_orders_alone(seed_order):
    order = seed_order()
    with pg.session_scope() as s:
        assert backfill_delivery_status(s) == 0
    with pg.session_scope() as s:
        stored = OrderRepository(s).get(order.order_id)
    assert stored.status_history == order.status_history


def test_cli_reports_migrated_count(configure_test_engine, monkeypatch, capsys):
    row = _legacy_row(is_delivered=False)
    with pg.session_scope() as s:
        s.add(row)
    monkeypatch.setattr(sys, "argv", ["storefront", "migrate-delivery-status"])

    assert cli.main() == 0
    assert json.loads(capsys.readouterr().out) == {"migrated": 1}


def test_cli_prints_gateway_payment_url(seed_order, monkeypatch, capsys):
    order = seed_order(total=120000)
    monkeypatch.setattr(sys, "argv", ["storefront", "payment-url", order.order_id, "--ip", "198.51.100.4"])

    assert cli.main() == 0
    url = capsys.readouterr().out.strip()
    assert "vnp_Amount=12000000" in url
    assert "vnp_IpAddr=198.51.100.4" in url
    assert f"vnp_TxnRef={order.order_id}_" in url
