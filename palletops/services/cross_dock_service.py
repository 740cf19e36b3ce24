from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from palletops.models import (
    Pallet,
    PalletStatus,
    ReceivingOrder,
    ReceivingOrderStatus,
    ShipmentType,
    ShippingOrder,
    ShippingOrderLine,
    ShippingOrderStatus,
)
from palletops.services.pallet_lifecycle_service import create_pallet
from palletops.services.quantity_ledger_service import ReceivingScope, ShippingScope, check_and_reserve
from palletops.services.results import (
    ConcurrentModification,
    InvalidTransition,
    NoEligibleOrder,
    NotFound,
    QuantityExceeded,
)

logger = logging.getLogger(__name__)

ELIGIBLE_STATUSES = (ShippingOrderStatus.PENDING, ShippingOrderStatus.PICKING)


@dataclass
class EligibleOrder:
    shipping_order_id: int
    order_ref: str
    shipment_type: ShipmentType
    created_at: datetime
    remaining: int

    def sort_key(self) -> tuple:
        return (self.shipment_type != ShipmentType.CONTAINER_LOADING, self.created_at, self.shipping_order_id)


@dataclass
class CrossDockPool:
    """Running SHIP-NOW capacity for one item across every eligible shipping order.

    A tally session keeps one pool per item so that earlier rows reduce what later
    rows may claim.
    """

    item_id: str
    orders: list[EligibleOrder] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.orders = sorted((order for order in self.orders if order.remaining > 0), key=EligibleOrder.sort_key)

    @property
    def remaining(self) -> int:
        return sum(order.remaining for order in self.orders)

    def target(self, qty: int = 1) -> EligibleOrder | None:
        """First order in priority order with room for the whole pallet."""
        for order in self.orders:
            if order.remaining >= qty:
                return order
        return None

    def can_take(self, qty: int) -> bool:
        return self.target(qty) is not None

    def consume(self, qty: int, shipping_order_id: int) -> None:
        for order in self.orders:
            if order.shipping_order_id == shipping_order_id:
                order.remaining -= qty
                break
        self.orders = [order for order in self.orders if order.remaining > 0]


@dataclass(frozen=True)
class CrossDockAllocation:
    pallet: Pallet
    shipping_order_id: int
    order_ref: str
    pool_remaining: int


def build_cross_dock_pool(db: Session, *, item_id: str) -> CrossDockPool:
    lines = db.execute(
        select(ShippingOrder, ShippingOrderLine.requested_qty)
        .join(ShippingOrderLine, ShippingOrderLine.shipping_order_id == ShippingOrder.id)
        .where(
            ShippingOrder.status.in_(ELIGIBLE_STATUSES),
            ShippingOrderLine.item_id == item_id,
        )
    ).all()
    if not lines:
        return CrossDockPool(item_id=item_id)

    order_ids = [order.id for order, _ in lines]
    committed = {
        row.shipping_order_id: int(row.committed)
        for row in db.execute(
            select(Pallet.shipping_order_id, func.sum(Pallet.qty).label('committed'))
            .where(
                Pallet.shipping_order_id.in_(order_ids),
                Pallet.item_id == item_id,
                Pallet.status != PalletStatus.WRITE_OFF,
            )
            .group_by(Pallet.shipping_order_id)
        )
    }
    return CrossDockPool(
        item_id=item_id,
        orders=[
            EligibleOrder(
                shipping_order_id=order.id,
                order_ref=order.order_ref,
                shipment_type=order.shipment_type,
                created_at=order.created_at,
                remaining=requested_qty - committed.get(order.id, 0),
            )
            for order, requested_qty in lines
        ],
    )


def allocate_ship_now(
    db: Session,
    *,
    receiving_order_id: int,
    item_id: str,
    qty: int,
    actor: str | None,
    pool: CrossDockPool | None = None,
) -> CrossDockAllocation | NoEligibleOrder | QuantityExceeded | InvalidTransition | NotFound | ConcurrentModification:
    if qty <= 0:
        raise ValueError('Pallet quantity must be greater than zero')

    receiving_order = db.get(ReceivingOrder, receiving_order_id)
    if receiving_order is None:
        return NotFound(entity='receiving_order', key=str(receiving_order_id))
    if receiving_order.status != ReceivingOrderStatus.UNLOADING:
        return InvalidTransition(
            entity='receiving_order',
            entity_id=receiving_order_id,
            from_status=receiving_order.status.value,
            to_status=receiving_order.status.value,
            reason='pallets can only be tallied while the order is Unloading',
        )

    # Receiving line is always locked before the shipping line.
    inbound = check_and_reserve(db, ReceivingScope(receiving_order_id, item_id), qty)
    if isinstance(inbound, (QuantityExceeded, NotFound, ConcurrentModification)):
        return inbound

    if pool is None:
        pool = build_cross_dock_pool(db, item_id=item_id)
    target = pool.target(qty)
    if target is None:
        logger.info('SHIP-NOW not possible for %s x %s (pool remaining %s)', item_id, qty, pool.remaining)
        return NoEligibleOrder(item_id=item_id, qty=qty, pool_remaining=pool.remaining)

    outbound = check_and_reserve(db, ShippingScope(target.shipping_order_id, item_id), qty)
    if isinstance(outbound, QuantityExceeded):
        # Pool was stale for this order; the row is received normally instead.
        logger.warning(outbound.message)
        return NoEligibleOrder(item_id=item_id, qty=qty, pool_remaining=pool.remaining)
    if isinstance(outbound, (NotFound, ConcurrentModification)):
        return outbound

    pallet = create_pallet(
        db,
        item_id=item_id,
        qty=qty,
        actor=actor,
        receiving_order_id=receiving_order_id,
        shipping_order_id=target.shipping_order_id,
        cross_dock=True,
    )
    pool.consume(qty, target.shipping_order_id)
    logger.info(
        'Cross-docked pallet %s to shipping order %s (%s), pool remaining %s',
        pallet.id,
        target.shipping_order_id,
        target.order_ref,
        pool.remaining,
    )
    return CrossDockAllocation(
        pallet=pallet,
        shipping_order_id=target.shipping_order_id,
        order_ref=target.order_ref,
        pool_remaining=pool.remaining,
    )
