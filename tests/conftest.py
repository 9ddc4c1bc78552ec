from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import storefront.persistence.pg as pg
from storefront.core.config import get_settings
from storefront.domain.orders.aggregates import NOT_PROCESSED, Order, OrderLine, ShippingAddress, StatusHistoryEntry
from storefront.payments.wallet import WalletVerification
from storefront.persistence.models import Base, ProductModel
from storefront.persistence.repository import OrderRepository


class FakeVerifier:
    def __init__(self, verified: bool = True, amount: str | None = "10.00", currency: str | None = "USD"):
        self.verified = verified
        self.amount = amount
        self.currency = currency
        self.calls: list[str] = []

    def verify(self, payment_id: str) -> WalletVerification:
        self.calls.append(payment_id)
        return WalletVerification(
            verified=self.verified,
            amount=self.amount,
            currency=self.currency,
            status="COMPLETED" if self.verified else "APPROVED",
        )


@pytest.fixture(scope="session")
def test_db_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    return tmp_path_factory.mktemp("db") / "test.sqlite"


@pytest.fixture(scope="session", autouse=True)
def configure_test_engine(test_db_path: Path):
    settings = get_settings()
    settings.receipt_backend = "local"
    settings.receipts_dir = test_db_path.parent / "receipts"

    engine = create_engine(
        f"sqlite+pysqlite:///{test_db_path}",
        future=True,
        connect_args={"check_same_thread": False},
    )
    TestSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

    pg.engine = engine
    pg.SessionLocal = TestSessionLocal

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(configure_test_engine):
    from storefront.main import app

    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def session(configure_test_engine):
    with pg.session_scope() as s:
        yield s


@pytest.fixture()
def auth_headers():
    settings = get_settings()
    return {
        "customer": {"X-API-Key": settings.customer_api_key},
        "staff": {"X-API-Key": settings.staff_api_key},
        "system": {"X-API-Key": settings.system_api_key},
    }


@pytest.fixture()
def seed_product(configure_test_engine):
    def _seed(price: int = 125000, stock: int = 10, name: str = "Ceramic mug") -> str:
        product_id = f"prod-{uuid4().hex[:12]}"
        with pg.session_scope() as s:
            s.add(
                ProductModel(
                    product_id=product_id,
                    name=name,
                    image=f"/images/{product_id}.jpg",
                    price=price,
                    count_in_stock=stock,
                    num_sales=0,
                )
            )
        return product_id

    return _seed


@pytest.fixture()
def seed_order(configure_test_engine):
    def _seed(
        order_id: str | None = None,
        total: int = 250000,
        customer_ref: str | None = None,
        payment_method: str = "wallet_checkout",
    ) -> Order:
        now = datetime.now(timezone.utc)
        order = Order(
            order_id=order_id or uuid4().hex,
            customer_ref=customer_ref or get_settings().customer_actor_id,
            items=(OrderLine(product_id="prod-seed", name="Seed item", qty=1, unit_price=total),),
            shipping_address=ShippingAddress(
                address="12 Ly Thuong Kiet",
                city="Hanoi",
                postal_code="100000",
                country="Vietnam",
            ),
            payment_method=payment_method,
            items_price=total,
            tax_price=0,
            shipping_price=0,
            total_price=total,
            created_at=now,
            status_history=(StatusHistoryEntry(status=NOT_PROCESSED, date=now, comment="Order placed", updated_by=None),),
        )
        with pg.session_scope() as s:
            OrderRepository(s).add(order)
        return order

    return _seed


@pytest.fixture()
def wallet_verifier() -> FakeVerifier:
    return FakeVerifier()
