from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_GATEWAY_HASH_SECRET = "storefront-dev-gateway-secret-change-me"
DEFAULT_WALLET_CLIENT_SECRET = "storefront-dev-wallet-secret"
DEFAULT_CUSTOMER_API_KEY = "sf-customer-dev-key"
DEFAULT_STAFF_API_KEY = "sf-staff-dev-key"
DEFAULT_SYSTEM_API_KEY = "sf-system-dev-key"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="SF_", extra="ignore")

    app_name: str = "Storefront Order Settlement"
    env: str = "dev"
    api_host: str = "0.0.0.0"
    api_port: int = 5000
    log_level: str = "INFO"

    database_url: str = "sqlite+pysqlite:///./storefront.db"
    frontend_url: str = "http://localhost:3000"

    auth_enabled: bool = True
    customer_api_key: str = DEFAULT_CUSTOMER_API_KEY
    staff_api_key: str = DEFAULT_STAFF_API_KEY
    system_api_key: str = DEFAULT_SYSTEM_API_KEY
    customer_actor_id: str = "customer-001"
    staff_actor_id: str = "staff-001"
    system_actor_id: str = "system-001"

    # Redirect gateway
    gateway_merchant_code: str = "STOREDEV"
    gateway_hash_secret: str = DEFAULT_GATEWAY_HASH_SECRET
    gateway_payment_url: str = "https://sandbox.vnpayment.vn/paymentv2/vpcpay.html"
    gateway_return_url: str = "http://localhost:5000/api/orders/gateway-return"
    gateway_version: str = "2.1.0"
    gateway_command: str = "pay"
    gateway_bank_code: str = "NCB"
    gateway_currency: str = "VND"
    gateway_locale: str = "vn"
    gateway_order_type: str = "billpayment"
    gateway_amount_factor: int = 100
    gateway_utc_offset_hours: int = Field(default=7, description="timezone of the CreateDate field")

    # Wallet checkout
    wallet_api_url: str = "https://api-m.sandbox.paypal.com"
    wallet_client_id: str = "storefront-dev-client"
    wallet_client_secret: str = DEFAULT_WALLET_CLIENT_SECRET
    wallet_currency: str = "USD"
    wallet_exchange_rate: Decimal = Field(
        default=Decimal("25000"),
        description="native currency units per one wallet currency unit",
    )
    wallet_minor_unit_exponent: int = 2
    wallet_timeout_seconds: float = 10.0

    # Pricing, in native currency units
    tax_rate: Decimal = Decimal("0.10")
    shipping_fee: int = 30000
    free_shipping_threshold: int = 500000

    # Settlement receipts: local | minio
    receipt_backend: str = "local"
    receipts_dir: Path = Path("/tmp/storefront/receipts")
    minio_endpoint: str = "minio:9000"
    minio_access_key: str = "minioadmin"
    minio_secret_key: str = "minioadmin"
    minio_bucket: str = "settlement-receipts"
    minio_secure: bool = False

    def model_post_init(self, __context) -> None:
        if self.env.lower() == "dev":
            return

        insecure_items: list[str] = []
        if self.gateway_hash_secret == DEFAULT_GATEWAY_HASH_SECRET:
            insecure_items.append("SF_GATEWAY_HASH_SECRET")
        if self.wallet_client_secret == DEFAULT_WALLET_CLIENT_SECRET:
            insecure_items.append("SF_WALLET_CLIENT_SECRET")
        if self.customer_api_key == DEFAULT_CUSTOMER_API_KEY:
            insecure_items.append("SF_CUSTOMER_API_KEY")
        if self.staff_api_key == DEFAULT_STAFF_API_KEY:
            insecure_items.append("SF_STAFF_API_KEY")
        if self.system_api_key == DEFAULT_SYSTEM_API_KEY:
            insecure_items.append("SF_SYSTEM_API_KEY")

        if insecure_items:
            raise ValueError(
                "insecure default secrets are not allowed outside dev mode; set env vars: "
                + ", ".join(sorted(insecure_items))
            )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
