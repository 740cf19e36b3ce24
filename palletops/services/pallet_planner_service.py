from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from palletops.models import Product, ReceivingOrder, ReceivingOrderLine
from palletops.services.cross_dock_service import build_cross_dock_pool
from palletops.services.quantity_ledger_service import ReceivingScope, remaining_qty


@dataclass(frozen=True)
class PlannedRow:
    item_id: str
    row_number: int
    qty: int
    ship_now_eligible: bool


@dataclass(frozen=True)
class PlannedLine:
    item_id: str
    expected_qty: int
    units_per_pallet: int
    already_received_qty: int
    rows: list[PlannedRow]


def plan_pallet_rows(expected_qty: int, units_per_pallet: int) -> list[int]:
    """Split an expected line quantity into full pallets plus one remainder pallet."""
    if expected_qty <= 0:
        raise ValueError('Expected quantity must be greater than zero')
    if units_per_pallet <= 0:
        raise ValueError('Units per pallet must be greater than zero')

    expected_pallets = -(-expected_qty // units_per_pallet)
    rows = [units_per_pallet] * (expected_pallets - 1)
    rows.append(expected_qty - (expected_pallets - 1) * units_per_pallet)
    return rows


def plan_receiving_tally(db: Session, *, receiving_order_id: int) -> list[PlannedLine]:
    order = db.get(ReceivingOrder, receiving_order_id)
    if order is None:
        raise ValueError('Receiving order not found')

    lines = db.execute(
        select(ReceivingOrderLine, Product)
        .join(Product, Product.item_id == ReceivingOrderLine.item_id)
        .where(ReceivingOrderLine.receiving_order_id == receiving_order_id)
        .order_by(ReceivingOrderLine.id.asc())
    ).all()

    planned: list[PlannedLine] = []
    for line, product in lines:
        pool = build_cross_dock_pool(db, item_id=line.item_id)
        remaining = remaining_qty(db, ReceivingScope(receiving_order_id, line.item_id))
        rows: list[PlannedRow] = []
        for index, qty in enumerate(plan_pallet_rows(line.expected_qty, product.units_per_pallet), start=1):
            target = pool.target(qty)
            eligible = target is not None
            if eligible:
                pool.consume(qty, target.shipping_order_id)
            rows.append(PlannedRow(item_id=line.item_id, row_number=index, qty=qty, ship_now_eligible=eligible))
        planned.append(
            PlannedLine(
                item_id=line.item_id,
                expected_qty=line.expected_qty,
                units_per_pallet=product.units_per_pallet,
                already_received_qty=line.expected_qty - remaining,
                rows=rows,
            )
        )
    return planned
