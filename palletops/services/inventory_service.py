from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from palletops.models import Location, Pallet, PalletStatus, Product, WriteOffReason
from palletops.services.location_service import location_conflict_warning
from palletops.services.pallet_lifecycle_service import Trigger, create_pallet, get_pallet, transition_pallet
from palletops.services.results import ConcurrentModification, InvalidTransition, NotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlacementResult:
    pallet: Pallet
    location_code: str
    warning: str | None


def _get_location(db: Session, location_id: int) -> Location | NotFound:
    location = db.get(Location, location_id)
    if location is None:
        return NotFound(entity='location', key=str(location_id))
    return location


def _place(
    db: Session,
    *,
    pallet_id: int,
    location_id: int,
    trigger: Trigger,
    actor: str | None,
) -> PlacementResult | InvalidTransition | NotFound | ConcurrentModification:
    pallet = get_pallet(db, pallet_id)
    if isinstance(pallet, NotFound):
        return pallet
    location = _get_location(db, location_id)
    if isinstance(location, NotFound):
        return location

    # Shared slots are allowed; the operator only gets told about them.
    warning = location_conflict_warning(db, location_id=location.id, exclude_pallet_id=pallet.id)
    moved = transition_pallet(
        db,
        pallet,
        trigger,
        actor=actor,
        location_id=location.id,
        metadata={'location_code': location.code},
    )
    if isinstance(moved, (InvalidTransition, ConcurrentModification)):
        return moved
    if warning:
        logger.warning('Pallet %s placed at %s: %s', pallet.id, location.code, warning)
    return PlacementResult(pallet=moved, location_code=location.code, warning=warning)


def put_away(
    db: Session,
    *,
    pallet_id: int,
    location_id: int,
    actor: str | None,
) -> PlacementResult | InvalidTransition | NotFound | ConcurrentModification:
    return _place(db, pallet_id=pallet_id, location_id=location_id, trigger=Trigger.PUT_AWAY, actor=actor)


def move_pallet(
    db: Session,
    *,
    pallet_id: int,
    location_id: int,
    actor: str | None,
) -> PlacementResult | InvalidTransition | NotFound | ConcurrentModification:
    return _place(db, pallet_id=pallet_id, location_id=location_id, trigger=Trigger.MOVE, actor=actor)


def write_off(
    db: Session,
    *,
    pallet_id: int,
    reason: WriteOffReason | str,
    actor: str | None,
    note: str | None = None,
) -> Pallet | InvalidTransition | NotFound | ConcurrentModification:
    reason = WriteOffReason(reason)
    pallet = get_pallet(db, pallet_id)
    if isinstance(pallet, NotFound):
        return pallet
    return transition_pallet(
        db,
        pallet,
        Trigger.WRITE_OFF,
        actor=actor,
        reason=reason.value,
        metadata={'note': note} if note else None,
    )


def create_admin_pallet(
    db: Session,
    *,
    item_id: str,
    qty: int,
    actor: str | None,
    note: str | None = None,
) -> Pallet | NotFound:
    """Create a pallet outside any receiving order, for corrections after a write-off."""
    product = db.execute(select(Product).where(Product.item_id == item_id)).scalar_one_or_none()
    if product is None:
        return NotFound(entity='product', key=item_id)
    return create_pallet(db, item_id=item_id, qty=qty, actor=actor, metadata={'note': note} if note else None)


def list_inventory(
    db: Session,
    *,
    item_id: str | None = None,
    statuses: tuple[PalletStatus, ...] = (PalletStatus.RECEIVED, PalletStatus.STORED),
) -> list[tuple[Pallet, str | None]]:
    stmt = (
        select(Pallet, Location.code)
        .outerjoin(Location, Location.id == Pallet.location_id)
        .where(Pallet.status.in_(statuses))
        .order_by(Pallet.item_id.asc(), Pallet.id.asc())
    )
    if item_id:
        stmt = stmt.where(Pallet.item_id == item_id)
    return [(pallet, code) for pallet, code in db.execute(stmt).all()]
