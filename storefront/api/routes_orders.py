from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from storefront.api.utils import client_ip, frontend_order_url
from storefront.core.config import get_settings
from storefront.core.errors import NotFound
from storefront.core.security import Actor, get_actor, require_owner_or_staff, require_staff
from storefront.domain.orders.aggregates import DELIVERED
from storefront.domain.orders.commands import (
    DeliveryStatusRequest,
    PlaceOrderRequest,
    WalletCaptureRequest,
    place_order,
    update_delivery_status,
)
from storefront.payments.receipts import build_receipt_store
from storefront.payments.wallet import CheckoutApiVerifier, WalletVerifier
from storefront.persistence.pg import get_session
from storefront.persistence.repository import OrderRepository
from storefront.settlement import SettlementEngine, WalletCapture, build_settlement_engine

router = APIRouter(prefix="/api/orders", tags=["orders"])


def get_wallet_verifier() -> WalletVerifier:
    return CheckoutApiVerifier(get_settings())


def get_settlement_engine(
    session: Session = Depends(get_session),
    verifier: WalletVerifier = Depends(get_wallet_verifier),
) -> SettlementEngine:
    return build_settlement_engine(session, verifier=verifier, receipts=build_receipt_store())


def _owned_order(session: Session, order_id: str, actor: Actor):
    order = OrderRepository(session).get(order_id)
    if order is None:
        raise NotFound("order not found")
    require_owner_or_staff(actor, order.customer_ref)
    return order


@router.post("", status_code=201)
def create_order(
    request: PlaceOrderRequest,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
):
    return place_order(session, actor, request).as_dict()


@router.get("")
def list_orders(actor: Actor = Depends(get_actor), session: Session = Depends(get_session)):
    require_staff(actor)
    orders = OrderRepository(session).list()
    return {"count": len(orders), "orders": [order.as_dict() for order in orders]}


@router.get("/mine")
def list_my_orders(actor: Actor = Depends(get_actor), session: Session = Depends(get_session)):
    orders = OrderRepository(session).list(customer_ref=actor.id)
    return {"count": len(orders), "orders": [order.as_dict() for order in orders]}


@router.get("/gateway-return")
def gateway_return(request: Request, engine: SettlementEngine = Depends(get_settlement_engine)):
    settlement = engine.settle_gateway_callback(dict(request.query_params))
    target = frontend_order_url(
        get_settings().frontend_url,
        settlement.order.order_id,
        success=settlement.success,
        message=settlement.message,
    )
    return RedirectResponse(target, status_code=302)


@router.get("/{order_id}")
def get_order(order_id: str, actor: Actor = Depends(get_actor), session: Session = Depends(get_session)):
    return _owned_order(session, order_id, actor).as_dict()


@router.post("/{order_id}/gateway")
def create_gateway_payment(
    order_id: str,
    request: Request,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    _owned_order(session, order_id, actor)
    return {"paymentUrl": engine.create_gateway_payment(order_id, client_ip(request))}


@router.put("/{order_id}/pay")
def pay_with_wallet(
    order_id: str,
    request: WalletCaptureRequest,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    _owned_order(session, order_id, actor)
    capture = WalletCapture(
        payment_id=request.id,
        status=request.status,
        update_time=request.update_time,
        payer_email=request.payer.email_address,
    )
    return engine.settle_wallet_capture(order_id, capture).as_dict()


@router.put("/{order_id}/cod")
def pay_cash_on_delivery(
    order_id: str,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    _owned_order(session, order_id, actor)
    return engine.settle_cash_on_delivery(order_id, actor_id=actor.id).as_dict()


@router.put("/{order_id}/deliver")
def mark_delivered(order_id: str, actor: Actor = Depends(get_actor), session: Session = Depends(get_session)):
    require_staff(actor)
    request = DeliveryStatusRequest(delivery_status=DELIVERED, comment="Marked as delivered")
    return update_delivery_status(session, actor, order_id, request).as_dict()


@router.put("/{order_id}/delivery-status")
def change_delivery_status(
    order_id: str,
    request: DeliveryStatusRequest,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
):
    require_staff(actor)
    return update_delivery_status(session, actor, order_id, request).as_dict()
