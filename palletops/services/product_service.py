from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from palletops.models import Product


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _normalize_item_id(item_id: str) -> str:
    normalized = item_id.strip()
    if not normalized:
        raise ValueError('Item ID is required')
    return normalized


def _validate_sizes(units_per_pallet: int, pallet_positions: int) -> None:
    if units_per_pallet <= 0:
        raise ValueError('Units per pallet must be greater than zero')
    if pallet_positions < 1:
        raise ValueError('Pallet positions must be at least 1')


def list_products(db: Session, *, include_inactive: bool = False) -> list[Product]:
    stmt = select(Product).order_by(Product.item_id.asc())
    if not include_inactive:
        stmt = stmt.where(Product.active.is_(True))
    return list(db.execute(stmt).scalars())


def get_product(db: Session, *, item_id: str) -> Product | None:
    return db.execute(select(Product).where(Product.item_id == item_id)).scalar_one_or_none()


def upsert_product(
    db: Session,
    *,
    item_id: str,
    units_per_pallet: int,
    pallet_positions: int = 1,
    description: str = '',
    active: bool = True,
) -> Product:
    item_id = _normalize_item_id(item_id)
    _validate_sizes(units_per_pallet, pallet_positions)

    product = get_product(db, item_id=item_id)
    if product is None:
        product = Product(item_id=item_id)
        db.add(product)
    product.description = description.strip()
    product.units_per_pallet = units_per_pallet
    product.pallet_positions = pallet_positions
    product.active = active
    product.updated_at = _now()
    db.flush()
    return product


def deactivate_product(db: Session, *, item_id: str) -> Product:
    # Existing pallets keep referencing the product.
    product = get_product(db, item_id=item_id)
    if product is None:
        raise ValueError('Product not found')
    product.active = False
    product.updated_at = _now()
    db.flush()
    return product


@dataclass(frozen=True)
class OrderLineInput:
    item_id: str
    qty: int


def validate_order_lines(db: Session, lines: list[OrderLineInput]) -> list[OrderLineInput]:
    """Normalize order lines and check every item is a known, active product."""
    if not lines:
        raise ValueError('At least one order line is required')

    normalized: list[OrderLineInput] = []
    seen: set[str] = set()
    for line in lines:
        item_id = _normalize_item_id(line.item_id)
        if line.qty <= 0:
            raise ValueError(f'Quantity for {item_id} must be greater than zero')
        if item_id in seen:
            raise ValueError(f'Item {item_id} appears more than once')
        seen.add(item_id)
        normalized.append(OrderLineInput(item_id=item_id, qty=line.qty))

    active_ids = set(
        db.execute(
            select(Product.item_id).where(Product.item_id.in_(seen), Product.active.is_(True))
        ).scalars()
    )
    missing = sorted(seen - active_ids)
    if missing:
        raise ValueError(f'Unknown or inactive products: {", ".join(missing)}')
    return normalized
