from sqlalchemy import select

from palletops.db import SessionLocal, engine
from palletops.models import Base, LocationType, ReceivingOrder, ShipmentType, ShippingOrder
from palletops.services.location_service import resolve_location
from palletops.services.product_service import OrderLineInput, upsert_product
from palletops.services.receiving_service import create_receiving_order
from palletops.services.shipping_service import create_shipping_order

DEMO_PRODUCTS = [
    ('SKU-1001', 'Bottled water 24pk', 100, 1),
    ('SKU-1002', 'Paper towels 12ct', 60, 2),
    ('SKU-1003', 'Canned tomatoes 6pk', 150, 1),
]


def seed() -> None:
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        for item_id, description, units_per_pallet, pallet_positions in DEMO_PRODUCTS:
            upsert_product(
                db,
                item_id=item_id,
                description=description,
                units_per_pallet=units_per_pallet,
                pallet_positions=pallet_positions,
            )

        for zone in range(1, 3):
            resolve_location(db, location_type=LocationType.AISLE, zone=zone)
        resolve_location(db, location_type=LocationType.RACK, rack=1, level=1, position='A')

        receiving = db.execute(
            select(ReceivingOrder).where(ReceivingOrder.container_num == 'MSCU1234567')
        ).scalar_one_or_none()
        if not receiving:
            create_receiving_order(
                db,
                container_num='MSCU1234567',
                seal_num='SEAL-0001',
                lines=[OrderLineInput('SKU-1001', 250), OrderLineInput('SKU-1002', 120)],
                actor='seed',
            )

        shipping = db.execute(select(ShippingOrder).where(ShippingOrder.order_ref == 'SO-0001')).scalar_one_or_none()
        if not shipping:
            create_shipping_order(
                db,
                order_ref='SO-0001',
                shipment_type=ShipmentType.CONTAINER_LOADING,
                lines=[OrderLineInput('SKU-1001', 80)],
                actor='seed',
            )

        db.commit()


if __name__ == '__main__':
    seed()
    print('Seed data inserted/verified.')
