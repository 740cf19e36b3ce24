from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from palletops.config import settings
from palletops.models import (
    Manifest,
    ManifestStatus,
    OrderKind,
    Pallet,
    PalletStatus,
    ReceivingOrder,
    ReceivingOrderLine,
    ReceivingOrderStatus,
    ShippingOrder,
    ShippingOrderLine,
    ShippingOrderStatus,
)
from palletops.services.notification_service import CARGO_RECEIVED, ORDER_COMPLETED, publish_order_status
from palletops.services.pallet_lifecycle_service import Trigger, transition_pallet
from palletops.services.results import ConcurrentModification, InvalidTransition, NotFound

logger = logging.getLogger(__name__)

PRE_COMPLETED_STATUSES = (
    ShippingOrderStatus.PENDING,
    ShippingOrderStatus.PICKING,
    ShippingOrderStatus.LOADING,
)


@dataclass(frozen=True)
class ReceivingSummaryLine:
    item_id: str
    expected_qty: int
    received_qty: int
    difference: int
    pallet_count: int
    cross_dock_qty: int


@dataclass(frozen=True)
class FinishTallyResult:
    receiving_order: ReceivingOrder
    pallet_count: int
    loading_shipping_order_ids: list[int]


@dataclass(frozen=True)
class FinishLoadingResult:
    shipping_order: ShippingOrder
    completed: bool
    staged_remaining: int


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _status_rejection(entity: str, entity_id: int, current: str, target: str, reason: str) -> InvalidTransition:
    rejection = InvalidTransition(
        entity=entity,
        entity_id=entity_id,
        from_status=current,
        to_status=target,
        reason=reason,
    )
    logger.warning(rejection.message)
    return rejection


def set_receiving_status(
    db: Session,
    order: ReceivingOrder,
    status: ReceivingOrderStatus,
    *,
    actor: str | None,
    event: str | None = None,
    payload: dict | None = None,
) -> None:
    previous = order.status
    order.status = status
    order.updated_at = _now()
    publish_order_status(
        db,
        order_kind=OrderKind.RECEIVING,
        order_id=order.id,
        status=event or status.value,
        actor=actor,
        payload={'from_status': previous.value, 'to_status': status.value, **(payload or {})},
    )
    db.flush()
    logger.info('Receiving order %s: %s -> %s', order.id, previous.value, status.value)


def set_shipping_status(
    db: Session,
    order: ShippingOrder,
    status: ShippingOrderStatus,
    *,
    actor: str | None,
    event: str | None = None,
    payload: dict | None = None,
) -> None:
    previous = order.status
    order.status = status
    order.updated_at = _now()
    publish_order_status(
        db,
        order_kind=OrderKind.SHIPPING,
        order_id=order.id,
        status=event or status.value,
        actor=actor,
        payload={'from_status': previous.value, 'to_status': status.value, **(payload or {})},
    )
    db.flush()
    logger.info('Shipping order %s: %s -> %s', order.id, previous.value, status.value)


def _receiving_order(db: Session, receiving_order_id: int) -> ReceivingOrder | NotFound:
    order = db.get(ReceivingOrder, receiving_order_id)
    if order is None:
        return NotFound(entity='receiving_order', key=str(receiving_order_id))
    return order


def _shipping_order(db: Session, shipping_order_id: int) -> ShippingOrder | NotFound:
    order = db.get(ShippingOrder, shipping_order_id)
    if order is None:
        return NotFound(entity='shipping_order', key=str(shipping_order_id))
    return order


# Receiving side


def start_unloading(
    db: Session,
    *,
    receiving_order_id: int,
    photo_refs: list[str],
    actor: str | None,
) -> ReceivingOrder | NotFound | InvalidTransition:
    order = _receiving_order(db, receiving_order_id)
    if isinstance(order, NotFound):
        return order
    target = ReceivingOrderStatus.UNLOADING
    if order.status != ReceivingOrderStatus.PENDING:
        return _status_rejection(
            'receiving_order', order.id, order.status.value, target.value, 'unloading has already started'
        )
    refs = [ref.strip() for ref in photo_refs if ref and ref.strip()]
    if not refs:
        return _status_rejection(
            'receiving_order', order.id, order.status.value, target.value, 'at least one container photo is required'
        )

    order.container_photos = [*(order.container_photos or []), *refs]
    set_receiving_status(db, order, target, actor=actor, payload={'photo_count': len(refs)})
    return order


def _fully_cross_docked_orders(db: Session, receiving_order_id: int) -> list[ShippingOrder]:
    """Shipping orders fed by this tally whose every line is now covered by cross-dock pallets alone."""
    touched_ids = list(
        db.execute(
            select(Pallet.shipping_order_id)
            .where(
                Pallet.receiving_order_id == receiving_order_id,
                Pallet.is_cross_dock.is_(True),
                Pallet.shipping_order_id.is_not(None),
            )
            .distinct()
        ).scalars()
    )
    ready: list[ShippingOrder] = []
    for shipping_order_id in sorted(touched_ids):
        order = db.get(ShippingOrder, shipping_order_id)
        if order is None or order.status not in (ShippingOrderStatus.PENDING, ShippingOrderStatus.PICKING):
            continue
        if manual_pick_count(db, shipping_order_id=order.id) > 0:
            continue
        if total_remaining_qty(db, shipping_order_id=order.id) == 0:
            ready.append(order)
    return ready


def finish_tally(
    db: Session,
    *,
    receiving_order_id: int,
    actor: str | None,
) -> FinishTallyResult | NotFound | InvalidTransition:
    order = _receiving_order(db, receiving_order_id)
    if isinstance(order, NotFound):
        return order
    target = ReceivingOrderStatus.STAGED
    if order.status != ReceivingOrderStatus.UNLOADING:
        return _status_rejection(
            'receiving_order', order.id, order.status.value, target.value, 'the order is not being unloaded'
        )

    pallet_count = int(
        db.execute(select(func.count(Pallet.id)).where(Pallet.receiving_order_id == order.id)).scalar_one()
    )
    if pallet_count == 0:
        return _status_rejection(
            'receiving_order', order.id, order.status.value, target.value, 'confirm at least 1 pallet before finishing'
        )

    set_receiving_status(db, order, target, actor=actor, payload={'pallet_count': pallet_count})

    advanced: list[int] = []
    for shipping_order in _fully_cross_docked_orders(db, order.id):
        set_shipping_status(
            db,
            shipping_order,
            ShippingOrderStatus.LOADING,
            actor=actor,
            payload={'cross_dock_receiving_order_id': order.id},
        )
        advanced.append(shipping_order.id)
    return FinishTallyResult(receiving_order=order, pallet_count=pallet_count, loading_shipping_order_ids=advanced)


def receiving_summary(db: Session, *, receiving_order_id: int) -> list[ReceivingSummaryLine]:
    lines = db.execute(
        select(ReceivingOrderLine)
        .where(ReceivingOrderLine.receiving_order_id == receiving_order_id)
        .order_by(ReceivingOrderLine.id.asc())
    ).scalars()

    totals = {
        row.item_id: row
        for row in db.execute(
            select(
                Pallet.item_id,
                func.coalesce(func.sum(Pallet.qty), 0).label('received_qty'),
                func.count(Pallet.id).label('pallet_count'),
            )
            .where(Pallet.receiving_order_id == receiving_order_id)
            .group_by(Pallet.item_id)
        )
    }
    cross_dock = dict(
        db.execute(
            select(Pallet.item_id, func.sum(Pallet.qty))
            .where(Pallet.receiving_order_id == receiving_order_id, Pallet.is_cross_dock.is_(True))
            .group_by(Pallet.item_id)
        ).all()
    )

    summary: list[ReceivingSummaryLine] = []
    for line in lines:
        total = totals.get(line.item_id)
        received = int(total.received_qty) if total else 0
        summary.append(
            ReceivingSummaryLine(
                item_id=line.item_id,
                expected_qty=line.expected_qty,
                received_qty=received,
                difference=received - line.expected_qty,
                pallet_count=int(total.pallet_count) if total else 0,
                cross_dock_qty=int(cross_dock.get(line.item_id) or 0),
            )
        )
    return summary


def finalize_receipt(
    db: Session,
    *,
    receiving_order_id: int,
    receiving_form_ref: str,
    actor: str | None,
) -> ReceivingOrder | NotFound | InvalidTransition:
    order = _receiving_order(db, receiving_order_id)
    if isinstance(order, NotFound):
        return order
    target = ReceivingOrderStatus.RECEIVED
    if order.status != ReceivingOrderStatus.STAGED:
        return _status_rejection(
            'receiving_order', order.id, order.status.value, target.value, 'the tally has not been finished'
        )
    form_ref = (receiving_form_ref or '').strip()
    if not form_ref:
        return _status_rejection(
            'receiving_order', order.id, order.status.value, target.value, 'a signed receiving form is required'
        )

    order.receiving_form_ref = form_ref
    order.finalized_at = _now()
    set_receiving_status(
        db,
        order,
        target,
        actor=actor,
        event=CARGO_RECEIVED,
        payload={
            'container_num': order.container_num,
            'receiving_form_ref': form_ref,
            'lines': [
                {'item_id': line.item_id, 'expected_qty': line.expected_qty, 'received_qty': line.received_qty}
                for line in receiving_summary(db, receiving_order_id=order.id)
            ],
        },
    )
    return order


# Shipping side


def manual_pick_count(db: Session, *, shipping_order_id: int) -> int:
    return int(
        db.execute(
            select(func.count(Pallet.id)).where(
                Pallet.shipping_order_id == shipping_order_id,
                Pallet.is_cross_dock.is_(False),
                Pallet.status != PalletStatus.WRITE_OFF,
            )
        ).scalar_one()
    )


def total_remaining_qty(db: Session, *, shipping_order_id: int) -> int:
    requested = {
        line.item_id: line.requested_qty
        for line in db.execute(
            select(ShippingOrderLine).where(ShippingOrderLine.shipping_order_id == shipping_order_id)
        ).scalars()
    }
    committed = dict(
        db.execute(
            select(Pallet.item_id, func.sum(Pallet.qty))
            .where(Pallet.shipping_order_id == shipping_order_id, Pallet.status != PalletStatus.WRITE_OFF)
            .group_by(Pallet.item_id)
        ).all()
    )
    return sum(max(qty - int(committed.get(item_id) or 0), 0) for item_id, qty in requested.items())


def _count_pallets(db: Session, shipping_order_id: int, status: PalletStatus) -> int:
    return int(
        db.execute(
            select(func.count(Pallet.id)).where(Pallet.shipping_order_id == shipping_order_id, Pallet.status == status)
        ).scalar_one()
    )


def finish_picking(
    db: Session,
    *,
    shipping_order_id: int,
    actor: str | None,
) -> ShippingOrder | NotFound | InvalidTransition:
    order = _shipping_order(db, shipping_order_id)
    if isinstance(order, NotFound):
        return order
    target = ShippingOrderStatus.LOADING
    if order.status not in (ShippingOrderStatus.PENDING, ShippingOrderStatus.PICKING):
        return _status_rejection('shipping_order', order.id, order.status.value, target.value, 'picking is not open')

    picks = manual_pick_count(db, shipping_order_id=order.id)
    remaining = total_remaining_qty(db, shipping_order_id=order.id)
    if picks == 0 and remaining > 0:
        return _status_rejection(
            'shipping_order', order.id, order.status.value, target.value, 'pick at least 1 pallet before finishing'
        )

    set_shipping_status(db, order, target, actor=actor, payload={'manual_picks': picks, 'remaining_qty': remaining})
    return order


def finish_loading(
    db: Session,
    *,
    shipping_order_id: int,
    actor: str | None,
) -> FinishLoadingResult | NotFound | InvalidTransition:
    order = _shipping_order(db, shipping_order_id)
    if isinstance(order, NotFound):
        return order
    target = ShippingOrderStatus.COMPLETED
    if order.status != ShippingOrderStatus.LOADING:
        return _status_rejection('shipping_order', order.id, order.status.value, target.value, 'the order is not loading')
    if _count_pallets(db, order.id, PalletStatus.LOADED) == 0:
        return _status_rejection(
            'shipping_order', order.id, order.status.value, target.value, 'load at least 1 pallet before finishing'
        )

    staged = _count_pallets(db, order.id, PalletStatus.STAGED)
    if staged > 0 and settings.multi_truck_loading:
        logger.info('Shipping order %s stays in Loading with %s staged pallet(s) for another truck', order.id, staged)
        return FinishLoadingResult(shipping_order=order, completed=False, staged_remaining=staged)

    set_shipping_status(db, order, target, actor=actor, event=ORDER_COMPLETED, payload={'staged_remaining': staged})
    return FinishLoadingResult(shipping_order=order, completed=True, staged_remaining=staged)


def finalize_shipment(
    db: Session,
    *,
    shipping_order_id: int,
    signed_form_ref: str,
    actor: str | None,
) -> ShippingOrder | NotFound | InvalidTransition | ConcurrentModification:
    order = _shipping_order(db, shipping_order_id)
    if isinstance(order, NotFound):
        return order
    target = ShippingOrderStatus.SHIPPED
    if order.status != ShippingOrderStatus.COMPLETED:
        return _status_rejection('shipping_order', order.id, order.status.value, target.value, 'loading is not completed')
    form_ref = (signed_form_ref or '').strip()
    if not form_ref:
        return _status_rejection(
            'shipping_order', order.id, order.status.value, target.value, 'a signed customer form is required'
        )

    # Pallets left Staged by a single-truck completion leave with the order.
    outgoing = list(
        db.execute(
            select(Pallet)
            .where(
                Pallet.shipping_order_id == order.id,
                Pallet.status.in_((PalletStatus.LOADED, PalletStatus.STAGED)),
            )
            .order_by(Pallet.id.asc())
        ).scalars()
    )
    manifest_ids = {pallet.manifest_id for pallet in outgoing if pallet.manifest_id is not None}
    for pallet in outgoing:
        shipped = transition_pallet(db, pallet, Trigger.SHIP, actor=actor, metadata={'shipping_order_id': order.id})
        if isinstance(shipped, (InvalidTransition, ConcurrentModification)):
            return shipped

    now = _now()
    for manifest_id in sorted(manifest_ids):
        manifest = db.get(Manifest, manifest_id)
        if manifest is not None and manifest.status == ManifestStatus.OPEN:
            manifest.status = ManifestStatus.CLOSED
            manifest.closed_at = now

    order.signed_form_ref = form_ref
    order.shipped_at = now
    set_shipping_status(
        db,
        order,
        target,
        actor=actor,
        payload={
            'order_ref': order.order_ref,
            'signed_form_ref': form_ref,
            'pallet_count': len(outgoing),
            'manifest_ids': sorted(manifest_ids),
        },
    )
    return order


def cancel_shipping_order(
    db: Session,
    *,
    shipping_order_id: int,
    actor: str | None,
) -> ShippingOrder | NotFound | InvalidTransition:
    order = _shipping_order(db, shipping_order_id)
    if isinstance(order, NotFound):
        return order
    target = ShippingOrderStatus.CANCELLED
    if order.status not in PRE_COMPLETED_STATUSES:
        return _status_rejection(
            'shipping_order', order.id, order.status.value, target.value, 'only orders before completion can be cancelled'
        )

    order.cancelled_at = _now()
    set_shipping_status(db, order, target, actor=actor)
    return order
