from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from palletops.models import PalletEvent, PalletEventType, PalletStatus


def log_pallet_event(
    db: Session,
    *,
    pallet_id: int,
    event_type: PalletEventType,
    actor: str | None,
    from_status: PalletStatus | None = None,
    to_status: PalletStatus | None = None,
    from_location_id: int | None = None,
    to_location_id: int | None = None,
    reason: str | None = None,
    metadata: dict | None = None,
) -> None:
    db.add(
        PalletEvent(
            pallet_id=pallet_id,
            event_type=event_type,
            from_status=from_status,
            to_status=to_status,
            from_location_id=from_location_id,
            to_location_id=to_location_id,
            reason=reason,
            actor=actor,
            meta=metadata or {},
        )
    )


def list_pallet_events(db: Session, *, pallet_id: int) -> list[PalletEvent]:
    return list(
        db.execute(
            select(PalletEvent).where(PalletEvent.pallet_id == pallet_id).order_by(PalletEvent.id.asc())
        ).scalars()
    )
