from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from palletops.models import Pallet, PalletEventType, PalletStatus
from palletops.services.audit_service import log_pallet_event
from palletops.services.results import ConcurrentModification, InvalidTransition, NotFound

logger = logging.getLogger(__name__)


class Trigger(str, Enum):
    PUT_AWAY = 'put_away'
    MOVE = 'move'
    PICK = 'pick'
    LOAD = 'load'
    UNLOAD = 'unload'
    SHIP = 'ship'
    WRITE_OFF = 'write_off'


TRANSITIONS: dict[Trigger, dict[PalletStatus, PalletStatus]] = {
    Trigger.PUT_AWAY: {PalletStatus.RECEIVED: PalletStatus.STORED},
    Trigger.MOVE: {PalletStatus.STORED: PalletStatus.STORED},
    Trigger.PICK: {PalletStatus.STORED: PalletStatus.STAGED},
    Trigger.LOAD: {PalletStatus.STAGED: PalletStatus.LOADED},
    Trigger.UNLOAD: {PalletStatus.LOADED: PalletStatus.STAGED},
    Trigger.SHIP: {
        PalletStatus.STAGED: PalletStatus.SHIPPED,
        PalletStatus.LOADED: PalletStatus.SHIPPED,
    },
    Trigger.WRITE_OFF: {
        PalletStatus.RECEIVED: PalletStatus.WRITE_OFF,
        PalletStatus.STORED: PalletStatus.WRITE_OFF,
        PalletStatus.STAGED: PalletStatus.WRITE_OFF,
        PalletStatus.LOADED: PalletStatus.WRITE_OFF,
    },
}

_EVENT_BY_TRIGGER = {
    Trigger.PUT_AWAY: PalletEventType.PUT_AWAY,
    Trigger.MOVE: PalletEventType.MOVED,
    Trigger.PICK: PalletEventType.PICKED,
    Trigger.LOAD: PalletEventType.LOADED,
    Trigger.UNLOAD: PalletEventType.UNLOADED,
    Trigger.SHIP: PalletEventType.SHIPPED,
    Trigger.WRITE_OFF: PalletEventType.WRITTEN_OFF,
}

# Target status of a trigger, used to describe rejected attempts.
_TARGET_BY_TRIGGER = {trigger: next(iter(edges.values())) for trigger, edges in TRANSITIONS.items()}


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def next_status(trigger: Trigger, current: PalletStatus) -> PalletStatus | None:
    return TRANSITIONS[trigger].get(current)


def get_pallet(db: Session, pallet_id: int) -> Pallet | NotFound:
    pallet = db.get(Pallet, pallet_id)
    if pallet is None:
        return NotFound(entity='pallet', key=str(pallet_id))
    return pallet


def flush_pallet_changes(db: Session, pallet_id: int | None) -> ConcurrentModification | None:
    try:
        db.flush()
    except StaleDataError:
        logger.warning('Pallet %s was changed by another transaction', pallet_id)
        return ConcurrentModification(entity='pallet', key=str(pallet_id))
    return None


def create_pallet(
    db: Session,
    *,
    item_id: str,
    qty: int,
    actor: str | None,
    receiving_order_id: int | None = None,
    shipping_order_id: int | None = None,
    cross_dock: bool = False,
    metadata: dict | None = None,
) -> Pallet:
    """Create a pallet at one of the two lifecycle entry points.

    Normal receipts start in Received. Cross-dock receipts start in Staged, already
    assigned to their shipping order, and count as received on arrival.
    """
    if qty <= 0:
        raise ValueError('Pallet quantity must be greater than zero')
    if cross_dock and (shipping_order_id is None or receiving_order_id is None):
        raise ValueError('Cross-dock pallets require a receiving and a shipping order')

    if cross_dock:
        pallet = Pallet(
            item_id=item_id,
            qty=qty,
            status=PalletStatus.STAGED,
            receiving_order_id=receiving_order_id,
            shipping_order_id=shipping_order_id,
            is_cross_dock=True,
            received_at=_now(),
        )
        event_type = PalletEventType.CROSS_DOCKED
    else:
        pallet = Pallet(
            item_id=item_id,
            qty=qty,
            status=PalletStatus.RECEIVED,
            receiving_order_id=receiving_order_id,
            is_cross_dock=False,
        )
        event_type = PalletEventType.RECEIVED if receiving_order_id is not None else PalletEventType.ADMIN_CREATED

    db.add(pallet)
    db.flush()
    log_pallet_event(
        db,
        pallet_id=pallet.id,
        event_type=event_type,
        actor=actor,
        to_status=pallet.status,
        metadata={
            'item_id': item_id,
            'qty': qty,
            'receiving_order_id': receiving_order_id,
            'shipping_order_id': shipping_order_id,
            **(metadata or {}),
        },
    )
    db.flush()
    logger.info('Created %s pallet %s: %s x %s', pallet.status.value, pallet.id, item_id, qty)
    return pallet


def transition_pallet(
    db: Session,
    pallet: Pallet,
    trigger: Trigger,
    *,
    actor: str | None,
    location_id: int | None = None,
    shipping_order_id: int | None = None,
    manifest_id: int | None = None,
    reason: str | None = None,
    metadata: dict | None = None,
) -> Pallet | InvalidTransition | ConcurrentModification:
    """Move a pallet along one edge of the lifecycle and record the audit event.

    Rejected attempts leave the pallet untouched.
    """
    current = pallet.status
    target = next_status(trigger, current)
    if target is None:
        rejection = InvalidTransition(
            entity='pallet',
            entity_id=pallet.id,
            from_status=current.value,
            to_status=_TARGET_BY_TRIGGER[trigger].value,
            reason=f'{trigger.value} is not allowed from {current.value}',
        )
        logger.warning(rejection.message)
        return rejection

    if trigger in (Trigger.PUT_AWAY, Trigger.MOVE) and location_id is None:
        raise ValueError('A location is required')
    if trigger == Trigger.PICK and shipping_order_id is None:
        raise ValueError('A shipping order is required')
    if trigger == Trigger.WRITE_OFF and not reason:
        raise ValueError('A write-off reason is required')

    from_location_id = pallet.location_id
    if trigger == Trigger.PUT_AWAY:
        pallet.location_id = location_id
        pallet.received_at = _now()
    elif trigger == Trigger.MOVE:
        pallet.location_id = location_id
    elif trigger == Trigger.PICK:
        pallet.shipping_order_id = shipping_order_id
        pallet.location_id = None
    elif trigger == Trigger.LOAD:
        pallet.manifest_id = manifest_id
    elif trigger == Trigger.UNLOAD:
        pallet.manifest_id = None
        pallet.location_id = None
    elif trigger == Trigger.SHIP:
        pallet.shipped_at = _now()

    pallet.status = target
    pallet.updated_at = _now()
    log_pallet_event(
        db,
        pallet_id=pallet.id,
        event_type=_EVENT_BY_TRIGGER[trigger],
        actor=actor,
        from_status=current,
        to_status=target,
        from_location_id=from_location_id,
        to_location_id=pallet.location_id,
        reason=reason,
        metadata=metadata,
    )
    conflict = flush_pallet_changes(db, pallet.id)
    if conflict is not None:
        return conflict

    logger.info('Pallet %s %s: %s -> %s', pallet.id, trigger.value, current.value, target.value)
    return pallet
