from __future__ import annotations

import logging
from datetime import timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.domain.orders.aggregates import DELIVERED, NOT_PROCESSED, StatusHistoryEntry
from storefront.persistence.models import OrderModel

logger = logging.getLogger(__name__)

MIGRATION_COMMENT = "Auto-migrated status"


def backfill_delivery_status(session: Session) -> int:
    """Give orders stored before delivery tracking a status and a first history entry."""
    rows = list(session.scalars(select(OrderModel).order_by(OrderModel.created_at.asc())).all())
    migrated = 0
    for row in rows:
        if row.status_history:
            continue
        status = DELIVERED if row.is_delivered else NOT_PROCESSED
        dated = row.delivered_at if row.is_delivered and row.delivered_at else row.created_at
        if dated.tzinfo is None:
            dated = dated.replace(tzinfo=timezone.utc)
        entry = StatusHistoryEntry(status=status, date=dated, comment=MIGRATION_COMMENT, updated_by=None)
        row.delivery_status = status
        row.status_history = [entry.as_dict()]
        migrated += 1
    session.flush()
    logger.info("delivery status backfill: scanned=%s migrated=%s", len(rows), migrated)
    return migrated
