from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from palletops.models import (
    Pallet,
    PalletEventType,
    PalletStatus,
    ReceivingOrder,
    ReceivingOrderLine,
    ReceivingOrderStatus,
)
from palletops.services.audit_service import log_pallet_event
from palletops.services.cross_dock_service import CrossDockAllocation, CrossDockPool, allocate_ship_now
from palletops.services.pallet_lifecycle_service import create_pallet, flush_pallet_changes
from palletops.services.product_service import OrderLineInput, validate_order_lines
from palletops.services.quantity_ledger_service import ReceivingScope, check_and_reserve
from palletops.services.results import (
    ConcurrentModification,
    InvalidTransition,
    NoEligibleOrder,
    NotFound,
    QuantityExceeded,
)

logger = logging.getLogger(__name__)


def create_receiving_order(
    db: Session,
    *,
    container_num: str,
    lines: list[OrderLineInput],
    actor: str | None,
    seal_num: str | None = None,
) -> ReceivingOrder:
    container_num = container_num.strip()
    if not container_num:
        raise ValueError('Container number is required')
    normalized = validate_order_lines(db, lines)

    order = ReceivingOrder(
        container_num=container_num,
        seal_num=(seal_num or '').strip() or None,
        status=ReceivingOrderStatus.PENDING,
        container_photos=[],
        created_by=actor,
    )
    db.add(order)
    db.flush()
    for line in normalized:
        db.add(ReceivingOrderLine(receiving_order_id=order.id, item_id=line.item_id, expected_qty=line.qty))
    db.flush()
    logger.info('Created receiving order %s for container %s', order.id, container_num)
    return order


def get_receiving_order(db: Session, *, receiving_order_id: int) -> ReceivingOrder | None:
    return db.get(ReceivingOrder, receiving_order_id)


def list_receiving_orders(db: Session, *, status: ReceivingOrderStatus | None = None) -> list[ReceivingOrder]:
    stmt = select(ReceivingOrder).order_by(ReceivingOrder.created_at.asc(), ReceivingOrder.id.asc())
    if status is not None:
        stmt = stmt.where(ReceivingOrder.status == status)
    return list(db.execute(stmt).scalars())


def list_order_pallets(db: Session, *, receiving_order_id: int) -> list[Pallet]:
    return list(
        db.execute(
            select(Pallet).where(Pallet.receiving_order_id == receiving_order_id).order_by(Pallet.id.asc())
        ).scalars()
    )


def _require_unloading(db: Session, receiving_order_id: int) -> ReceivingOrder | NotFound | InvalidTransition:
    order = db.get(ReceivingOrder, receiving_order_id)
    if order is None:
        return NotFound(entity='receiving_order', key=str(receiving_order_id))
    if order.status != ReceivingOrderStatus.UNLOADING:
        return InvalidTransition(
            entity='receiving_order',
            entity_id=receiving_order_id,
            from_status=order.status.value,
            to_status=order.status.value,
            reason='pallets can only be tallied while the order is Unloading',
        )
    return order


def confirm_tally_pallet(
    db: Session,
    *,
    receiving_order_id: int,
    item_id: str,
    qty: int,
    actor: str | None,
) -> Pallet | QuantityExceeded | InvalidTransition | NotFound | ConcurrentModification:
    if qty <= 0:
        raise ValueError('Pallet quantity must be greater than zero')

    order = _require_unloading(db, receiving_order_id)
    if isinstance(order, (NotFound, InvalidTransition)):
        return order

    reservation = check_and_reserve(db, ReceivingScope(receiving_order_id, item_id), qty)
    if isinstance(reservation, (QuantityExceeded, NotFound, ConcurrentModification)):
        return reservation

    return create_pallet(db, item_id=item_id, qty=qty, actor=actor, receiving_order_id=receiving_order_id)


def tally_pallet_row(
    db: Session,
    *,
    receiving_order_id: int,
    item_id: str,
    qty: int,
    actor: str | None,
    pool: CrossDockPool | None = None,
) -> CrossDockAllocation | Pallet | QuantityExceeded | InvalidTransition | NotFound | ConcurrentModification:
    """Try SHIP-NOW first and receive the row normally when no shipping order can take it."""
    allocation = allocate_ship_now(
        db,
        receiving_order_id=receiving_order_id,
        item_id=item_id,
        qty=qty,
        actor=actor,
        pool=pool,
    )
    if not isinstance(allocation, NoEligibleOrder):
        return allocation
    return confirm_tally_pallet(db, receiving_order_id=receiving_order_id, item_id=item_id, qty=qty, actor=actor)


def undo_tally_pallet(
    db: Session,
    *,
    pallet_id: int,
    actor: str | None,
) -> int | InvalidTransition | NotFound | ConcurrentModification:
    pallet = db.get(Pallet, pallet_id)
    if pallet is None:
        return NotFound(entity='pallet', key=str(pallet_id))
    if pallet.receiving_order_id is None:
        return InvalidTransition(
            entity='pallet',
            entity_id=pallet_id,
            from_status=pallet.status.value,
            to_status='Undone',
            reason='only pallets created during a tally can be undone',
        )

    order = _require_unloading(db, pallet.receiving_order_id)
    if isinstance(order, (NotFound, InvalidTransition)):
        return order

    undoable = (pallet.status == PalletStatus.RECEIVED and not pallet.is_cross_dock) or (
        pallet.status == PalletStatus.STAGED and pallet.is_cross_dock
    )
    if not undoable:
        return InvalidTransition(
            entity='pallet',
            entity_id=pallet_id,
            from_status=pallet.status.value,
            to_status='Undone',
            reason='the pallet has already moved on from the tally',
        )

    log_pallet_event(
        db,
        pallet_id=pallet.id,
        event_type=PalletEventType.UNDONE,
        actor=actor,
        from_status=pallet.status,
        metadata={
            'item_id': pallet.item_id,
            'qty': pallet.qty,
            'receiving_order_id': pallet.receiving_order_id,
            'shipping_order_id': pallet.shipping_order_id,
        },
    )
    db.delete(pallet)
    conflict = flush_pallet_changes(db, pallet_id)
    if conflict is not None:
        return conflict
    logger.info('Undid tally pallet %s on receiving order %s', pallet_id, order.id)
    return pallet_id
