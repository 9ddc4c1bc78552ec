from __future__ import annotations

import io
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from hashlib import sha256
from pathlib import Path

from minio import Minio
from minio.error import S3Error
from urllib3.exceptions import HTTPError as TransportError

from storefront.core.config import get_settings
from storefront.domain.orders.aggregates import Order, PaymentResult, iso_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettlementReceipt:
    """Audit copy of the channel fields behind one accepted settlement."""

    object_key: str
    body: bytes
    receipt_hash: str

    @classmethod
    def for_settlement(cls, order: Order, result: PaymentResult, settled_at: datetime) -> "SettlementReceipt":
        document = {
            "order_id": order.order_id,
            "customer_ref": order.customer_ref,
            "channel": result.channel,
            "external_id": result.id,
            "status": result.status,
            "amount": order.total_price,
            "settled_at": iso_utc(settled_at),
            "channel_fields": result.raw,
        }
        body = json.dumps(document, sort_keys=True, separators=(",", ":"), ensure_ascii=True, default=str).encode("utf-8")
        object_key = (
            f"settlements/{result.channel}/{settled_at:%Y/%m/%d}/"
            f"{order.order_id}-{settled_at:%H%M%S%f}.json"
        )
        return cls(object_key=object_key, body=body, receipt_hash=sha256(body).hexdigest())


class ReceiptStore:
    backend = "none"

    def save(self, receipt: SettlementReceipt) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def discard(self, object_key: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class LocalReceiptStore(ReceiptStore):
    backend = "local"

    def __init__(self, root: Path):
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def save(self, receipt: SettlementReceipt) -> None:
        path = self.root / receipt.object_key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(receipt.body)

    def discard(self, object_key: str) -> None:
        (self.root / object_key).unlink(missing_ok=True)


class MinioReceiptStore(ReceiptStore):
    backend = "minio"

    def __init__(self, endpoint: str, access_key: str, secret_key: str, bucket: str, secure: bool = False):
        self.client = Minio(endpoint, access_key=access_key, secret_key=secret_key, secure=secure)
        self.bucket = bucket
        if not self.client.bucket_exists(self.bucket):
            self.client.make_bucket(self.bucket)

    def save(self, receipt: SettlementReceipt) -> None:
        self.client.put_object(
            bucket_name=self.bucket,
            object_name=receipt.object_key,
            data=io.BytesIO(receipt.body),
            length=len(receipt.body),
            content_type="application/json",
        )

    def discard(self, object_key: str) -> None:
        self.client.remove_object(self.bucket, object_key)


def build_receipt_store() -> ReceiptStore:
    settings = get_settings()
    if settings.receipt_backend == "minio":
        try:
            return MinioReceiptStore(
                endpoint=settings.minio_endpoint,
                access_key=settings.minio_access_key,
                secret_key=settings.minio_secret_key,
                bucket=settings.minio_bucket,
                secure=settings.minio_secure,
            )
        except (S3Error, TransportError, OSError) as exc:
            logger.warning("minio receipt store unavailable, falling back to local: %s", exc)
    return LocalReceiptStore(settings.receipts_dir)
