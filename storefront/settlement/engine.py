from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Mapping

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.core.config import Settings, get_settings
from storefront.core.errors import (
    AmountMismatch,
    NotFound,
    PaymentNotVerified,
    ReplayDetected,
    SignatureInvalid,
    ValidationFailed,
    VerificationUnavailable,
)
from storefront.core.locks import ORDER_LOCKS, OrderLocks
from storefront.domain.orders.aggregates import Order, PaymentResult, iso_utc
from storefront.payments.gateway import GatewayConfig, RedirectGateway
from storefront.payments.receipts import ReceiptStore, SettlementReceipt
from storefront.payments.replay import ReplayGuard
from storefront.payments.wallet import WalletVerification, WalletVerifier, expected_wallet_amount
from storefront.persistence.repository import OrderRepository

logger = logging.getLogger(__name__)

GATEWAY_COMPLETED = "COMPLETED"
COD_ACCEPTED = "COD_ACCEPTED"

_verification_pool = ThreadPoolExecutor(max_workers=8, thread_name_prefix="wallet-verify")


@dataclass(frozen=True)
class WalletCapture:
    payment_id: str
    status: str = ""
    update_time: str = ""
    payer_email: str | None = None


@dataclass(frozen=True)
class GatewaySettlement:
    order: Order
    success: bool
    response_code: str | None
    message: str


class SettlementEngine:
    """Moves orders from Unpaid to Paid for each payment channel.

    Every settlement runs under the per-order lock: load, check, verify, write,
    commit. The order row is loaded ``FOR UPDATE`` and the transaction is
    committed before the lock is released, so the next attempt for the same
    order sees the settled state. The write itself is conditional on the row
    still being unpaid as a last guard against another process.
    """

    def __init__(
        self,
        session: Session,
        gateway: RedirectGateway,
        verifier: WalletVerifier | None = None,
        receipts: ReceiptStore | None = None,
        settings: Settings | None = None,
        locks: OrderLocks | None = None,
    ):
        self.session = session
        self.gateway = gateway
        self.verifier = verifier
        self.receipts = receipts
        self.settings = settings or get_settings()
        self.locks = locks if locks is not None else ORDER_LOCKS
        self.orders = OrderRepository(session)
        self.replay_guard = ReplayGuard(session)

    def _load(self, order_id: str, *, for_update: bool = False) -> Order:
        order = self.orders.get(order_id, for_update=for_update)
        if order is None:
            raise NotFound("order not found")
        return order

    def _mark_paid(self, order: Order, result: PaymentResult, now: datetime) -> Order:
        receipt = None
        if self.receipts is not None:
            receipt = SettlementReceipt.for_settlement(order, result, now)
            result = replace(result, receipt_object_key=receipt.object_key, receipt_hash=receipt.receipt_hash)
        paid = replace(order, is_paid=True, paid_at=now, payment_result=result)

        try:
            written = self.orders.update(paid, require_unpaid=True)
        except IntegrityError as exc:
            self.session.rollback()
            raise ReplayDetected("Transaction has been used before") from exc

        if not written:
            current = self._load(order.order_id)
            settled_id = current.payment_result.id if current.payment_result else None
            if result.id is not None and settled_id != result.id:
                logger.warning(
                    "order settled by another payment: order=%s settled=%s rejected=%s",
                    order.order_id,
                    settled_id,
                    result.id,
                )
                raise ReplayDetected("Order was already settled by another payment")
            logger.info("order settled concurrently, keeping first settlement: order=%s", order.order_id)
            return current

        if receipt is not None:
            self.receipts.save(receipt)
        try:
            self.session.commit()
        except SQLAlchemyError:
            if receipt is not None:
                self.receipts.discard(receipt.object_key)
            raise
        logger.info(
            "order paid: order=%s channel=%s external_id=%s",
            order.order_id,
            result.channel,
            result.id,
        )
        return paid

    # redirect gateway

    def create_gateway_payment(self, order_id: str, caller_ip: str) -> str:
        order = self._load(order_id)
        if order.is_paid:
            raise ValidationFailed("order is already paid")
        return self.gateway.build_redirect_url(
            order.order_id,
            order.total_price,
            f"Payment for order {order.order_id}",
            caller_ip,
        )

    def settle_gateway_callback(self, params: Mapping[str, str]) -> GatewaySettlement:
        callback = self.gateway.validate_callback(params)
        if not callback.valid:
            logger.warning("gateway callback rejected: signature mismatch txn_ref=%s", params.get("vnp_TxnRef"))
            raise SignatureInvalid("Invalid payment data")
        if not callback.order_id:
            raise ValidationFailed("callback has no transaction reference")

        with self.locks.hold(callback.order_id):
            order = self._load(callback.order_id, for_update=True)

            if not callback.succeeded:
                logger.warning(
                    "gateway payment declined: order=%s response_code=%s",
                    order.order_id,
                    callback.response_code,
                )
                return GatewaySettlement(
                    order=order,
                    success=False,
                    response_code=callback.response_code,
                    message=f"Payment failed with error code: {callback.response_code}",
                )

            if order.is_paid:
                logger.info("gateway callback for paid order ignored: order=%s", order.order_id)
                return GatewaySettlement(order, True, callback.response_code, "Payment already recorded")

            expected = self.gateway.config.scaled_amount(order.total_price)
            signed_amount = callback.signed_amount
            if signed_amount is not None and signed_amount != expected:
                raise AmountMismatch(f"signed amount {signed_amount} does not match order amount {expected}")

            transaction_no = callback.transaction_no
            if transaction_no and not self.replay_guard.is_first_use(transaction_no, order.order_id):
                raise ReplayDetected("Transaction has been used before")

            now = datetime.now(timezone.utc)
            result = PaymentResult(
                id=transaction_no,
                channel="redirect_gateway",
                status=GATEWAY_COMPLETED,
                update_time=iso_utc(now),
                raw=dict(callback.raw),
            )
            updated = self._mark_paid(order, result, now)
        return GatewaySettlement(updated, True, callback.response_code, "Payment successful")

    # wallet checkout

    def _verify_wallet(self, payment_id: str) -> WalletVerification:
        if self.verifier is None:
            raise VerificationUnavailable("wallet verifier is not configured")
        timeout = self.settings.wallet_timeout_seconds
        future = _verification_pool.submit(self.verifier.verify, payment_id)
        try:
            return future.result(timeout=timeout)
        except TimeoutError as exc:
            future.cancel()
            raise VerificationUnavailable(f"wallet verification timed out after {timeout}s") from exc

    def settle_wallet_capture(self, order_id: str, capture: WalletCapture) -> Order:
        with self.locks.hold(order_id):
            order = self._load(order_id, for_update=True)
            if order.is_paid:
                logger.info("wallet capture for paid order ignored: order=%s", order_id)
                return order

            verification = self._verify_wallet(capture.payment_id)
            if not verification.verified:
                raise PaymentNotVerified("Payment not verified")

            expected = expected_wallet_amount(
                order.total_price,
                self.settings.wallet_exchange_rate,
                self.settings.wallet_minor_unit_exponent,
            )
            # Compared as text: "10.0" or "1E+1" is not "10.00".
            if verification.amount != format(expected, "f"):
                raise AmountMismatch(f"Incorrect amount paid: expected {expected}, got {verification.amount}")
            if verification.currency != self.settings.wallet_currency:
                raise AmountMismatch(
                    f"Incorrect currency paid: expected {self.settings.wallet_currency}, got {verification.currency}"
                )

            if not self.replay_guard.is_first_use(capture.payment_id, order.order_id):
                raise ReplayDetected("Transaction has been used before")

            now = datetime.now(timezone.utc)
            raw: dict[str, Any] = {
                "status": capture.status,
                "update_time": capture.update_time,
                "provider_status": verification.status,
                "amount": verification.amount,
                "currency": verification.currency,
            }
            result = PaymentResult(
                id=capture.payment_id,
                channel="wallet_checkout",
                status=capture.status or str(verification.status or ""),
                update_time=capture.update_time or iso_utc(now),
                email_address=capture.payer_email,
                raw=raw,
            )
            return self._mark_paid(order, result, now)

    # cash on delivery

    def settle_cash_on_delivery(self, order_id: str, actor_id: str) -> Order:
        # Paid here means the cash obligation was accepted, not that cash was collected.
        with self.locks.hold(order_id):
            order = self._load(order_id, for_update=True)
            if order.is_paid:
                logger.info("cash on delivery for paid order ignored: order=%s", order_id)
                return order
            now = datetime.now(timezone.utc)
            result = PaymentResult(
                channel="cash_on_delivery",
                status=COD_ACCEPTED,
                update_time=iso_utc(now),
                raw={"accepted_by": actor_id},
            )
            return self._mark_paid(replace(order, payment_method="cash_on_delivery"), result, now)


def build_settlement_engine(
    session: Session,
    verifier: WalletVerifier | None = None,
    receipts: ReceiptStore | None = None,
    settings: Settings | None = None,
) -> SettlementEngine:
    settings = settings or get_settings()
    return SettlementEngine(
        session=session,
        gateway=RedirectGateway(GatewayConfig.from_settings(settings)),
        verifier=verifier,
        receipts=receipts,
        settings=settings,
    )
