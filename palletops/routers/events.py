from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from palletops.db import get_db
from palletops.services.notification_service import list_undelivered_events, mark_event_delivered

router = APIRouter(prefix='/order-events', tags=['notifications'])


def _event_out(event) -> dict:
    return {
        'id': event.id,
        'order_kind': event.order_kind.value,
        'order_id': event.order_id,
        'status': event.status,
        'actor': event.actor,
        'payload': event.payload,
        'delivered_at': event.delivered_at.isoformat() if event.delivered_at else None,
    }


@router.get('')
def undelivered_events(limit: int = 100, db: Session = Depends(get_db)):
    return [_event_out(event) for event in list_undelivered_events(db, limit=limit)]


@router.post('/{event_id}/delivered')
def event_delivered(event_id: int, db: Session = Depends(get_db)):
    try:
        event = mark_event_delivered(db, event_id=event_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    db.commit()
    return _event_out(event)
