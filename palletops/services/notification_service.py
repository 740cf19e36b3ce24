from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from palletops.models import OrderEvent, OrderKind

logger = logging.getLogger(__name__)

CARGO_RECEIVED = 'cargo_received'
ORDER_COMPLETED = 'order_completed'


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def publish_order_status(
    db: Session,
    *,
    order_kind: OrderKind,
    order_id: int,
    status: str,
    actor: str | None,
    payload: dict | None = None,
) -> None:
    db.add(
        OrderEvent(
            order_kind=order_kind,
            order_id=order_id,
            status=status,
            actor=actor,
            payload=payload or {},
        )
    )
    logger.info('Queued %s order %s status event: %s', order_kind.value, order_id, status)


def list_undelivered_events(db: Session, *, limit: int = 100) -> list[OrderEvent]:
    return list(
        db.execute(
            select(OrderEvent)
            .where(OrderEvent.delivered_at.is_(None))
            .order_by(OrderEvent.id.asc())
            .limit(limit)
        ).scalars()
    )


def mark_event_delivered(db: Session, *, event_id: int) -> OrderEvent:
    event = db.get(OrderEvent, event_id)
    if event is None:
        raise ValueError('Order event not found')
    if event.delivered_at is None:
        event.delivered_at = _now()
        db.flush()
    return event
