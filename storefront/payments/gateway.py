from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping

from storefront.core.config import Settings, get_settings
from storefront.payments.canonical import canonical_query, format_gateway_timestamp, percent_encode
from storefront.payments.signing import HASH_FIELD, HASH_TYPE_FIELD, sign, verify

logger = logging.getLogger(__name__)

SUCCESS_RESPONSE_CODE = "00"


@dataclass(frozen=True)
class GatewayConfig:
    merchant_code: str
    hash_secret: str
    payment_url: str
    return_url: str
    version: str = "2.1.0"
    command: str = "pay"
    bank_code: str = "NCB"
    currency: str = "VND"
    locale: str = "vn"
    order_type: str = "billpayment"
    amount_factor: int = 100
    utc_offset_hours: int = 7

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "GatewayConfig":
        settings = settings or get_settings()
        return cls(
            merchant_code=settings.gateway_merchant_code,
            hash_secret=settings.gateway_hash_secret,
            payment_url=settings.gateway_payment_url,
            return_url=settings.gateway_return_url,
            version=settings.gateway_version,
            command=settings.gateway_command,
            bank_code=settings.gateway_bank_code,
            currency=settings.gateway_currency,
            locale=settings.gateway_locale,
            order_type=settings.gateway_order_type,
            amount_factor=settings.gateway_amount_factor,
            utc_offset_hours=settings.gateway_utc_offset_hours,
        )

    @property
    def tz(self) -> timezone:
        return timezone(timedelta(hours=self.utc_offset_hours))

    def scaled_amount(self, amount: int | Decimal) -> int:
        scaled = Decimal(amount) * self.amount_factor
        return int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class GatewayPaymentRequest:
    version: str
    command: str
    merchant_code: str
    amount: int
    bank_code: str
    create_date: str
    currency: str
    ip_addr: str
    locale: str
    order_info: str
    order_type: str
    return_url: str
    txn_ref: str

    def to_params(self) -> dict[str, str | int]:
        return {
            "vnp_Version": self.version,
            "vnp_Command": self.command,
            "vnp_TmnCode": self.merchant_code,
            "vnp_Amount": self.amount,
            "vnp_BankCode": self.bank_code,
            "vnp_CreateDate": self.create_date,
            "vnp_CurrCode": self.currency,
            "vnp_IpAddr": self.ip_addr,
            "vnp_Locale": self.locale,
            "vnp_OrderInfo": self.order_info,
            "vnp_OrderType": self.order_type,
            "vnp_ReturnUrl": self.return_url,
            "vnp_TxnRef": self.txn_ref,
        }


@dataclass(frozen=True)
class CallbackResult:
    valid: bool
    order_id: str | None
    response_code: str | None
    raw: dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.valid and self.response_code == SUCCESS_RESPONSE_CODE

    @property
    def transaction_no(self) -> str | None:
        return self.raw.get("vnp_TransactionNo") or None

    @property
    def signed_amount(self) -> int | None:
        value = self.raw.get("vnp_Amount")
        if value is None or not value.isdigit():
            return None
        return int(value)


class RedirectGateway:
    def __init__(self, config: GatewayConfig):
        self.config = config

    def build_payment_request(
        self,
        order_id: str,
        amount: int | Decimal,
        description: str,
        caller_ip: str,
        now: datetime | None = None,
    ) -> GatewayPaymentRequest:
        created = (now or datetime.now(timezone.utc)).astimezone(self.config.tz)
        create_date = format_gateway_timestamp(created)
        return GatewayPaymentRequest(
            version=self.config.version,
            command=self.config.command,
            merchant_code=self.config.merchant_code,
            amount=self.config.scaled_amount(amount),
            bank_code=self.config.bank_code,
            create_date=create_date,
            currency=self.config.currency,
            ip_addr=caller_ip,
            locale=self.config.locale,
            order_info=description,
            order_type=self.config.order_type,
            return_url=self.config.return_url,
            txn_ref=f"{order_id}_{create_date}",
        )

    def build_redirect_url(
        self,
        order_id: str,
        amount: int | Decimal,
        description: str,
        caller_ip: str,
        now: datetime | None = None,
    ) -> str:
        request = self.build_payment_request(order_id, amount, description, caller_ip, now=now)
        params = request.to_params()
        digest = sign(params, self.config.hash_secret)
        query = canonical_query(params).decode("ascii")
        logger.info("gateway redirect built: order=%s txn_ref=%s", order_id, request.txn_ref)
        return f"{self.config.payment_url}?{query}&{percent_encode(HASH_FIELD)}={digest}"

    def validate_callback(self, params: Mapping[str, str]) -> CallbackResult:
        raw = {str(key): str(value) for key, value in params.items()}
        claimed = raw.pop(HASH_FIELD, None)
        raw.pop(HASH_TYPE_FIELD, None)

        if not verify(raw, self.config.hash_secret, claimed):
            return CallbackResult(valid=False, order_id=None, response_code=None, raw=raw)

        order_id = raw.get("vnp_TxnRef", "").split("_")[0] or None
        return CallbackResult(
            valid=True,
            order_id=order_id,
            response_code=raw.get("vnp_ResponseCode"),
            raw=raw,
        )
