from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from palletops.models import (
    Manifest,
    ManifestStatus,
    ManifestType,
    Pallet,
    PalletStatus,
    ShipmentType,
    ShippingOrder,
    ShippingOrderLine,
    ShippingOrderStatus,
)
from palletops.services.order_status_service import set_shipping_status
from palletops.services.pallet_lifecycle_service import Trigger, get_pallet, transition_pallet
from palletops.services.product_service import OrderLineInput, validate_order_lines
from palletops.services.quantity_ledger_service import ShippingScope, check_and_reserve
from palletops.services.results import ConcurrentModification, InvalidTransition, NotFound, QuantityExceeded

logger = logging.getLogger(__name__)

PICKABLE_ORDER_STATUSES = (ShippingOrderStatus.PENDING, ShippingOrderStatus.PICKING)


@dataclass(frozen=True)
class ManifestCancellation:
    manifest: Manifest
    unloaded_pallet_ids: list[int]
    reopened_shipping_order_ids: list[int]


def create_shipping_order(
    db: Session,
    *,
    order_ref: str,
    shipment_type: ShipmentType | str,
    lines: list[OrderLineInput],
    actor: str | None,
    seal_num: str | None = None,
) -> ShippingOrder:
    order_ref = order_ref.strip()
    if not order_ref:
        raise ValueError('Order reference is required')
    shipment_type = ShipmentType(shipment_type)
    normalized = validate_order_lines(db, lines)

    order = ShippingOrder(
        order_ref=order_ref,
        shipment_type=shipment_type,
        seal_num=(seal_num or '').strip() or None,
        status=ShippingOrderStatus.PENDING,
        created_by=actor,
    )
    db.add(order)
    db.flush()
    for line in normalized:
        db.add(ShippingOrderLine(shipping_order_id=order.id, item_id=line.item_id, requested_qty=line.qty))
    db.flush()
    logger.info('Created %s shipping order %s (%s)', shipment_type.value, order.id, order_ref)
    return order


def get_shipping_order(db: Session, *, shipping_order_id: int) -> ShippingOrder | None:
    return db.get(ShippingOrder, shipping_order_id)


def list_shipping_orders(db: Session, *, status: ShippingOrderStatus | None = None) -> list[ShippingOrder]:
    stmt = select(ShippingOrder).order_by(ShippingOrder.created_at.asc(), ShippingOrder.id.asc())
    if status is not None:
        stmt = stmt.where(ShippingOrder.status == status)
    return list(db.execute(stmt).scalars())


def list_order_pallets(db: Session, *, shipping_order_id: int) -> list[Pallet]:
    return list(
        db.execute(
            select(Pallet).where(Pallet.shipping_order_id == shipping_order_id).order_by(Pallet.id.asc())
        ).scalars()
    )


def list_pickable_pallets(db: Session, *, item_id: str) -> list[Pallet]:
    return list(
        db.execute(
            select(Pallet)
            .where(
                Pallet.item_id == item_id,
                Pallet.status == PalletStatus.STORED,
                Pallet.is_cross_dock.is_(False),
                Pallet.shipping_order_id.is_(None),
            )
            .order_by(Pallet.received_at.asc(), Pallet.id.asc())
        ).scalars()
    )


def pick_pallet(
    db: Session,
    *,
    pallet_id: int,
    shipping_order_id: int,
    actor: str | None,
) -> Pallet | QuantityExceeded | InvalidTransition | NotFound | ConcurrentModification:
    order = db.get(ShippingOrder, shipping_order_id)
    if order is None:
        return NotFound(entity='shipping_order', key=str(shipping_order_id))
    if order.status not in PICKABLE_ORDER_STATUSES:
        return InvalidTransition(
            entity='shipping_order',
            entity_id=order.id,
            from_status=order.status.value,
            to_status=ShippingOrderStatus.PICKING.value,
            reason='picking is not open for this order',
        )

    pallet = get_pallet(db, pallet_id)
    if isinstance(pallet, NotFound):
        return pallet
    if pallet.is_cross_dock or pallet.shipping_order_id is not None:
        return InvalidTransition(
            entity='pallet',
            entity_id=pallet.id,
            from_status=pallet.status.value,
            to_status=PalletStatus.STAGED.value,
            reason='the pallet is already assigned to a shipping order',
        )

    reservation = check_and_reserve(db, ShippingScope(order.id, pallet.item_id), pallet.qty)
    if isinstance(reservation, (QuantityExceeded, NotFound, ConcurrentModification)):
        return reservation

    picked = transition_pallet(db, pallet, Trigger.PICK, actor=actor, shipping_order_id=order.id)
    if isinstance(picked, (InvalidTransition, ConcurrentModification)):
        return picked

    if order.status == ShippingOrderStatus.PENDING:
        set_shipping_status(db, order, ShippingOrderStatus.PICKING, actor=actor, payload={'first_pallet_id': pallet.id})
    return picked


def _open_manifest(db: Session, manifest_id: int) -> Manifest | NotFound | InvalidTransition:
    manifest = db.get(Manifest, manifest_id)
    if manifest is None:
        return NotFound(entity='manifest', key=str(manifest_id))
    if manifest.status != ManifestStatus.OPEN:
        return InvalidTransition(
            entity='manifest',
            entity_id=manifest.id,
            from_status=manifest.status.value,
            to_status=manifest.status.value,
            reason='pallets can only be loaded onto an open manifest',
        )
    return manifest


def toggle_loaded(
    db: Session,
    *,
    pallet_id: int,
    loaded: bool,
    actor: str | None,
    manifest_id: int | None = None,
) -> Pallet | QuantityExceeded | InvalidTransition | NotFound | ConcurrentModification:
    pallet = get_pallet(db, pallet_id)
    if isinstance(pallet, NotFound):
        return pallet
    if pallet.shipping_order_id is None:
        return InvalidTransition(
            entity='pallet',
            entity_id=pallet.id,
            from_status=pallet.status.value,
            to_status=(PalletStatus.LOADED if loaded else PalletStatus.STAGED).value,
            reason='the pallet is not assigned to a shipping order',
        )
    order = db.get(ShippingOrder, pallet.shipping_order_id)

    if not loaded:
        return transition_pallet(db, pallet, Trigger.UNLOAD, actor=actor)

    if order.status != ShippingOrderStatus.LOADING:
        return InvalidTransition(
            entity='shipping_order',
            entity_id=order.id,
            from_status=order.status.value,
            to_status=order.status.value,
            reason='pallets can only be loaded while the order is Loading',
        )

    if manifest_id is not None:
        manifest = _open_manifest(db, manifest_id)
        if isinstance(manifest, (NotFound, InvalidTransition)):
            return manifest
        if order.shipment_type == ShipmentType.CONTAINER_LOADING and manifest.manifest_type != ManifestType.CONTAINER:
            return InvalidTransition(
                entity='manifest',
                entity_id=manifest.id,
                from_status=manifest.status.value,
                to_status=manifest.status.value,
                reason='container orders load onto a container manifest',
            )
    elif order.shipment_type == ShipmentType.CONTAINER_LOADING:
        return InvalidTransition(
            entity='pallet',
            entity_id=pallet.id,
            from_status=pallet.status.value,
            to_status=PalletStatus.LOADED.value,
            reason='a container manifest is required to load a container order',
        )

    reservation = check_and_reserve(
        db,
        ShippingScope(order.id, pallet.item_id),
        pallet.qty,
        exclude_pallet_id=pallet.id,
    )
    if isinstance(reservation, (QuantityExceeded, NotFound, ConcurrentModification)):
        return reservation

    return transition_pallet(db, pallet, Trigger.LOAD, actor=actor, manifest_id=manifest_id)


def create_manifest(
    db: Session,
    *,
    manifest_type: ManifestType | str,
    container_num: str | None = None,
    seal_num: str | None = None,
) -> Manifest:
    manifest_type = ManifestType(manifest_type)
    container_num = (container_num or '').strip() or None
    seal_num = (seal_num or '').strip() or None
    if manifest_type == ManifestType.CONTAINER and (container_num is None or seal_num is None):
        raise ValueError('Container manifests need a container number and a seal number')

    manifest = Manifest(
        manifest_type=manifest_type,
        container_num=container_num,
        seal_num=seal_num,
        status=ManifestStatus.OPEN,
    )
    db.add(manifest)
    db.flush()
    logger.info('Opened %s manifest %s', manifest_type.value, manifest.id)
    return manifest


def list_open_manifests(db: Session, *, manifest_type: ManifestType | None = None) -> list[Manifest]:
    stmt = select(Manifest).where(Manifest.status == ManifestStatus.OPEN).order_by(Manifest.id.asc())
    if manifest_type is not None:
        stmt = stmt.where(Manifest.manifest_type == manifest_type)
    return list(db.execute(stmt).scalars())


def cancel_manifest(
    db: Session,
    *,
    manifest_id: int,
    actor: str | None,
) -> ManifestCancellation | NotFound | InvalidTransition | ConcurrentModification:
    manifest = _open_manifest(db, manifest_id)
    if isinstance(manifest, (NotFound, InvalidTransition)):
        return manifest

    loaded = list(
        db.execute(
            select(Pallet)
            .where(Pallet.manifest_id == manifest.id, Pallet.status == PalletStatus.LOADED)
            .order_by(Pallet.id.asc())
        ).scalars()
    )
    order_ids = sorted({pallet.shipping_order_id for pallet in loaded if pallet.shipping_order_id is not None})
    for pallet in loaded:
        unloaded = transition_pallet(
            db, pallet, Trigger.UNLOAD, actor=actor, metadata={'cancelled_manifest_id': manifest.id}
        )
        if isinstance(unloaded, (InvalidTransition, ConcurrentModification)):
            return unloaded

    manifest.status = ManifestStatus.CANCELLED
    reopened: list[int] = []
    for order_id in order_ids:
        order = db.get(ShippingOrder, order_id)
        if order is not None and order.status == ShippingOrderStatus.COMPLETED:
            set_shipping_status(
                db, order, ShippingOrderStatus.LOADING, actor=actor, payload={'cancelled_manifest_id': manifest.id}
            )
            reopened.append(order.id)
    db.flush()
    logger.info('Cancelled manifest %s, %s pallet(s) back to Staged', manifest.id, len(loaded))
    return ManifestCancellation(
        manifest=manifest,
        unloaded_pallet_ids=[pallet.id for pallet in loaded],
        reopened_shipping_order_ids=reopened,
    )
