from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from palletops.models import Base, ShipmentType
from palletops.services.order_status_service import start_unloading
from palletops.services.product_service import OrderLineInput, upsert_product
from palletops.services.receiving_service import create_receiving_order
from palletops.services.shipping_service import create_shipping_order


def make_engine():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return engine


def make_session() -> Session:
    return sessionmaker(bind=make_engine(), autoflush=False, expire_on_commit=False)()


def add_product(db: Session, item_id: str = 'SKU-1', units_per_pallet: int = 100, pallet_positions: int = 1):
    return upsert_product(db, item_id=item_id, units_per_pallet=units_per_pallet, pallet_positions=pallet_positions)


def unloading_order(db: Session, lines: dict[str, int], container_num: str = 'CONT-1'):
    order = create_receiving_order(
        db,
        container_num=container_num,
        lines=[OrderLineInput(item_id, qty) for item_id, qty in lines.items()],
        actor='tester',
    )
    start_unloading(db, receiving_order_id=order.id, photo_refs=['photos/door.jpg'], actor='tester')
    return order


def shipping_order(
    db: Session,
    lines: dict[str, int],
    order_ref: str = 'SO-1',
    shipment_type: ShipmentType = ShipmentType.CONTAINER_LOADING,
):
    return create_shipping_order(
        db,
        order_ref=order_ref,
        shipment_type=shipment_type,
        lines=[OrderLineInput(item_id, qty) for item_id, qty in lines.items()],
        actor='tester',
    )
