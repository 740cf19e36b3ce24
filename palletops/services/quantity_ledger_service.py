from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from palletops.models import Pallet, PalletStatus, ReceivingOrderLine, ShippingOrderLine
from palletops.services.results import ConcurrentModification, NotFound, QuantityExceeded

logger = logging.getLogger(__name__)

LOCK_NOT_AVAILABLE = '55P03'


@dataclass(frozen=True)
class ReceivingScope:
    receiving_order_id: int
    item_id: str

    kind = 'receiving'

    @property
    def order_id(self) -> int:
        return self.receiving_order_id


@dataclass(frozen=True)
class ShippingScope:
    shipping_order_id: int
    item_id: str

    kind = 'shipping'

    @property
    def order_id(self) -> int:
        return self.shipping_order_id


LedgerScope = ReceivingScope | ShippingScope


@dataclass(frozen=True)
class Reservation:
    scope_kind: str
    order_id: int
    item_id: str
    ceiling: int
    committed: int
    proposed_qty: int

    @property
    def headroom_after(self) -> int:
        return self.ceiling - self.committed - self.proposed_qty


def _line_query(scope: LedgerScope):
    if isinstance(scope, ReceivingScope):
        return select(ReceivingOrderLine).where(
            ReceivingOrderLine.receiving_order_id == scope.receiving_order_id,
            ReceivingOrderLine.item_id == scope.item_id,
        )
    return select(ShippingOrderLine).where(
        ShippingOrderLine.shipping_order_id == scope.shipping_order_id,
        ShippingOrderLine.item_id == scope.item_id,
    )


def _ceiling(line: ReceivingOrderLine | ShippingOrderLine) -> int:
    if isinstance(line, ReceivingOrderLine):
        return line.expected_qty
    return line.requested_qty


def is_lock_not_available(exc: OperationalError) -> bool:
    return getattr(exc.orig, 'sqlstate', None) == LOCK_NOT_AVAILABLE


def lock_order_line(
    db: Session, scope: LedgerScope
) -> ReceivingOrderLine | ShippingOrderLine | NotFound | ConcurrentModification:
    """Row-lock the order line that carries the ceiling for this scope.

    The lock is held until the caller's transaction ends, so the committed total
    read afterwards cannot change underneath the pallet write that follows.
    """
    try:
        line = db.execute(_line_query(scope).with_for_update(nowait=True)).scalar_one_or_none()
    except OperationalError as exc:
        if not is_lock_not_available(exc):
            raise
        logger.warning('Order line %s/%s/%s is locked by another transaction', scope.kind, scope.order_id, scope.item_id)
        return ConcurrentModification(entity=f'{scope.kind}_order_line', key=f'{scope.order_id}/{scope.item_id}')
    if line is None:
        return NotFound(entity=f'{scope.kind}_order_line', key=f'{scope.order_id}/{scope.item_id}')
    return line


def committed_qty(db: Session, scope: LedgerScope, *, exclude_pallet_id: int | None = None) -> int:
    stmt = select(func.coalesce(func.sum(Pallet.qty), 0)).where(Pallet.item_id == scope.item_id)
    if isinstance(scope, ReceivingScope):
        stmt = stmt.where(Pallet.receiving_order_id == scope.receiving_order_id)
    else:
        stmt = stmt.where(
            Pallet.shipping_order_id == scope.shipping_order_id,
            Pallet.status != PalletStatus.WRITE_OFF,
        )
    if exclude_pallet_id is not None:
        stmt = stmt.where(Pallet.id != exclude_pallet_id)
    return int(db.execute(stmt).scalar_one())


def remaining_qty(db: Session, scope: LedgerScope) -> int:
    line = db.execute(_line_query(scope)).scalar_one_or_none()
    if line is None:
        raise ValueError('Order line not found')
    return max(_ceiling(line) - committed_qty(db, scope), 0)


def check_and_reserve(
    db: Session,
    scope: LedgerScope,
    proposed_qty: int,
    *,
    exclude_pallet_id: int | None = None,
) -> Reservation | QuantityExceeded | NotFound | ConcurrentModification:
    if proposed_qty <= 0:
        raise ValueError('Proposed quantity must be greater than zero')

    line = lock_order_line(db, scope)
    if isinstance(line, (NotFound, ConcurrentModification)):
        return line

    ceiling = _ceiling(line)
    committed = committed_qty(db, scope, exclude_pallet_id=exclude_pallet_id)
    if committed + proposed_qty > ceiling:
        rejection = QuantityExceeded(
            scope_kind=scope.kind,
            order_id=scope.order_id,
            item_id=scope.item_id,
            ceiling=ceiling,
            committed=committed,
            proposed_qty=proposed_qty,
        )
        logger.warning(rejection.message)
        return rejection

    return Reservation(
        scope_kind=scope.kind,
        order_id=scope.order_id,
        item_id=scope.item_id,
        ceiling=ceiling,
        committed=committed,
        proposed_qty=proposed_qty,
    )
