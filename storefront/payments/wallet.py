from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from storefront.core.config import Settings, get_settings
from storefront.core.errors import VerificationUnavailable

logger = logging.getLogger(__name__)

CAPTURE_COMPLETED = "COMPLETED"


@dataclass(frozen=True)
class WalletVerification:
    verified: bool
    amount: str | None = None
    currency: str | None = None
    status: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


class WalletVerifier(Protocol):
    def verify(self, payment_id: str) -> WalletVerification:
        ...


def expected_wallet_amount(total: int | Decimal, exchange_rate: Decimal, minor_unit_exponent: int = 2) -> Decimal:
    """Convert a native-currency total into the wallet currency at the fixed rate."""
    if exchange_rate <= 0:
        raise ValueError("exchange rate must be positive")
    quantum = Decimal(1).scaleb(-minor_unit_exponent)
    return (Decimal(total) / exchange_rate).quantize(quantum, rounding=ROUND_HALF_UP)


class CheckoutApiVerifier:
    """Confirms a capture against the wallet provider's checkout orders API."""

    def __init__(self, settings: Settings | None = None, transport: httpx.BaseTransport | None = None):
        self.settings = settings or get_settings()
        self.base_url = self.settings.wallet_api_url.rstrip("/")
        self.timeout = self.settings.wallet_timeout_seconds
        self.transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    def _access_token(self, client: httpx.Client) -> str:
        response = client.post(
            "/v1/oauth2/token",
            auth=(self.settings.wallet_client_id, self.settings.wallet_client_secret),
            data={"grant_type": "client_credentials"},
            headers={"Accept": "application/json"},
        )
        if response.is_error:
            raise VerificationUnavailable(f"wallet provider refused credentials: {response.status_code}")
        token = response.json().get("access_token")
        if not token:
            raise VerificationUnavailable("wallet provider returned no access token")
        return str(token)

    def _fetch_order(self, payment_id: str) -> dict[str, Any] | None:
        with self._client() as client:
            token = self._access_token(client)
            response = client.get(
                f"/v2/checkout/orders/{quote(payment_id, safe='')}",
                headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            )
        if response.status_code == 404:
            return None
        response.raise_for_status()
        payload = response.json()
        return payload if isinstance(payload, dict) else None

    @staticmethod
    def _captured_amount(payload: dict[str, Any]) -> dict[str, Any]:
        units = payload.get("purchase_units") or []
        if not units:
            return {}
        unit = units[0] or {}
        captures = (unit.get("payments") or {}).get("captures") or []
        if captures:
            return (captures[0] or {}).get("amount") or {}
        return unit.get("amount") or {}

    def verify(self, payment_id: str) -> WalletVerification:
        try:
            payload = self._fetch_order(payment_id)
        except httpx.TimeoutException as exc:
            raise VerificationUnavailable(f"wallet verification timed out after {self.timeout}s") from exc
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code < 500:
                logger.warning("wallet provider rejected lookup: status=%s", exc.response.status_code)
                return WalletVerification(verified=False, status=f"http_{exc.response.status_code}")
            raise VerificationUnavailable(f"wallet provider error: {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise VerificationUnavailable(f"wallet provider unreachable: {exc}") from exc

        if payload is None:
            return WalletVerification(verified=False, status="not_found")

        status = payload.get("status")
        amount = self._captured_amount(payload)
        return WalletVerification(
            verified=status == CAPTURE_COMPLETED,
            amount=amount.get("value"),
            currency=amount.get("currency_code"),
            status=status,
            raw=payload,
        )
