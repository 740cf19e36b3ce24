from __future__ import annotations

import unittest
from datetime import datetime, timezone

from engine_fixtures import add_product, make_session, shipping_order, unloading_order

from palletops.models import Pallet, PalletStatus, ShipmentType, ShippingOrderStatus
from palletops.services.cross_dock_service import (
    CrossDockAllocation,
    CrossDockPool,
    EligibleOrder,
    allocate_ship_now,
    build_cross_dock_pool,
)
from palletops.services.receiving_service import tally_pallet_row
from palletops.services.results import NoEligibleOrder, QuantityExceeded


def _eligible(order_id: int, shipment_type: ShipmentType, created_at: datetime, remaining: int) -> EligibleOrder:
    return EligibleOrder(
        shipping_order_id=order_id,
        order_ref=f'SO-{order_id}',
        shipment_type=shipment_type,
        created_at=created_at,
        remaining=remaining,
    )


class CrossDockPoolTests(unittest.TestCase):
    def test_container_orders_first_then_oldest_then_lowest_id(self) -> None:
        early = datetime(2025, 1, 1, tzinfo=timezone.utc)
        late = datetime(2025, 1, 2, tzinfo=timezone.utc)
        pool = CrossDockPool(
            item_id='SKU-1',
            orders=[
                _eligible(1, ShipmentType.HAND_DELIVERY, early, 10),
                _eligible(4, ShipmentType.CONTAINER_LOADING, late, 10),
                _eligible(3, ShipmentType.CONTAINER_LOADING, early, 10),
                _eligible(2, ShipmentType.CONTAINER_LOADING, early, 10),
            ],
        )

        self.assertEqual([order.shipping_order_id for order in pool.orders], [2, 3, 4, 1])
        self.assertEqual(pool.target().shipping_order_id, 2)
        self.assertEqual(pool.remaining, 40)

    def test_consume_reduces_pool_and_drops_exhausted_orders(self) -> None:
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        pool = CrossDockPool(
            item_id='SKU-1',
            orders=[
                _eligible(1, ShipmentType.CONTAINER_LOADING, now, 50),
                _eligible(2, ShipmentType.HAND_DELIVERY, now, 30),
            ],
        )

        pool.consume(50, 1)

        self.assertEqual(pool.remaining, 30)
        self.assertEqual(pool.target().shipping_order_id, 2)
        self.assertFalse(pool.can_take(31))
        self.assertTrue(pool.can_take(30))

    def test_target_skips_orders_too_small_for_the_pallet(self) -> None:
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        pool = CrossDockPool(
            item_id='SKU-1',
            orders=[
                _eligible(1, ShipmentType.CONTAINER_LOADING, now, 30),
                _eligible(2, ShipmentType.HAND_DELIVERY, now, 100),
            ],
        )

        self.assertEqual(pool.target(50).shipping_order_id, 2)
        self.assertEqual(pool.target(30).shipping_order_id, 1)
        self.assertIsNone(pool.target(101))
        self.assertFalse(pool.can_take(101))

    def test_empty_pool_takes_nothing(self) -> None:
        pool = CrossDockPool(item_id='SKU-1', orders=[_eligible(1, ShipmentType.HAND_DELIVERY, datetime.now(), 0)])
        self.assertEqual(pool.orders, [])
        self.assertFalse(pool.can_take(1))


class CrossDockServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        add_product(self.db, 'SKU-1', units_per_pallet=50)

    def test_second_row_falls_back_when_pool_is_short(self) -> None:
        outbound = shipping_order(self.db, {'SKU-1': 80})
        inbound = unloading_order(self.db, {'SKU-1': 100})

        first = tally_pallet_row(self.db, receiving_order_id=inbound.id, item_id='SKU-1', qty=50, actor='op')
        second = tally_pallet_row(self.db, receiving_order_id=inbound.id, item_id='SKU-1', qty=50, actor='op')

        self.assertIsInstance(first, CrossDockAllocation)
        self.assertEqual(first.shipping_order_id, outbound.id)
        self.assertEqual(first.pool_remaining, 30)
        self.assertEqual(first.pallet.status, PalletStatus.STAGED)
        self.assertTrue(first.pallet.is_cross_dock)
        self.assertIsNotNone(first.pallet.received_at)

        self.assertIsInstance(second, Pallet)
        self.assertEqual(second.status, PalletStatus.RECEIVED)
        self.assertFalse(second.is_cross_dock)
        self.assertIsNone(second.shipping_order_id)

    def test_session_pool_carries_decrements_between_rows(self) -> None:
        shipping_order(self.db, {'SKU-1': 80})
        inbound = unloading_order(self.db, {'SKU-1': 100})
        pool = build_cross_dock_pool(self.db, item_id='SKU-1')

        allocate_ship_now(self.db, receiving_order_id=inbound.id, item_id='SKU-1', qty=50, actor='op', pool=pool)
        result = allocate_ship_now(
            self.db, receiving_order_id=inbound.id, item_id='SKU-1', qty=50, actor='op', pool=pool
        )

        self.assertIsInstance(result, NoEligibleOrder)
        self.assertEqual(result.pool_remaining, 30)

    def test_container_order_is_preferred_over_older_hand_delivery(self) -> None:
        hand = shipping_order(self.db, {'SKU-1': 50}, order_ref='HD-1', shipment_type=ShipmentType.HAND_DELIVERY)
        container = shipping_order(self.db, {'SKU-1': 50}, order_ref='CL-1')
        hand.created_at = datetime(2025, 1, 1)
        container.created_at = datetime(2025, 3, 1)
        self.db.flush()
        inbound = unloading_order(self.db, {'SKU-1': 100})

        first = allocate_ship_now(self.db, receiving_order_id=inbound.id, item_id='SKU-1', qty=50, actor='op')
        second = allocate_ship_now(self.db, receiving_order_id=inbound.id, item_id='SKU-1', qty=50, actor='op')

        self.assertEqual(first.shipping_order_id, container.id)
        self.assertEqual(second.shipping_order_id, hand.id)

    def test_same_timestamp_ties_break_on_order_id(self) -> None:
        first_order = shipping_order(self.db, {'SKU-1': 50}, order_ref='CL-1')
        second_order = shipping_order(self.db, {'SKU-1': 50}, order_ref='CL-2')
        same = datetime(2025, 2, 1)
        first_order.created_at = same
        second_order.created_at = same
        self.db.flush()
        inbound = unloading_order(self.db, {'SKU-1': 50})

        result = allocate_ship_now(self.db, receiving_order_id=inbound.id, item_id='SKU-1', qty=50, actor='op')

        self.assertEqual(result.shipping_order_id, min(first_order.id, second_order.id))

    def test_orders_past_picking_are_not_eligible(self) -> None:
        outbound = shipping_order(self.db, {'SKU-1': 80})
        outbound.status = ShippingOrderStatus.LOADING
        self.db.flush()
        inbound = unloading_order(self.db, {'SKU-1': 100})

        result = allocate_ship_now(self.db, receiving_order_id=inbound.id, item_id='SKU-1', qty=50, actor='op')

        self.assertIsInstance(result, NoEligibleOrder)
        self.assertEqual(result.pool_remaining, 0)

    def test_pallet_goes_to_first_order_with_room_for_it(self) -> None:
        shipping_order(self.db, {'SKU-1': 30}, order_ref='CL-1')
        hand = shipping_order(self.db, {'SKU-1': 100}, order_ref='HD-1', shipment_type=ShipmentType.HAND_DELIVERY)
        inbound = unloading_order(self.db, {'SKU-1': 150})

        results = [
            tally_pallet_row(self.db, receiving_order_id=inbound.id, item_id='SKU-1', qty=50, actor='op')
            for _ in range(3)
        ]

        self.assertEqual([result.shipping_order_id for result in results[:2]], [hand.id, hand.id])
        self.assertIsInstance(results[2], Pallet)
        self.assertEqual(results[2].status, PalletStatus.RECEIVED)

    def test_stale_pool_falls_back_to_normal_receipt(self) -> None:
        outbound = shipping_order(self.db, {'SKU-1': 50})
        inbound = unloading_order(self.db, {'SKU-1': 100})
        stale = build_cross_dock_pool(self.db, item_id='SKU-1')
        allocate_ship_now(self.db, receiving_order_id=inbound.id, item_id='SKU-1', qty=50, actor='op')

        result = tally_pallet_row(
            self.db, receiving_order_id=inbound.id, item_id='SKU-1', qty=50, actor='op', pool=stale
        )

        self.assertIsInstance(result, Pallet)
        self.assertFalse(result.is_cross_dock)
        self.assertEqual(stale.target(50).shipping_order_id, outbound.id)

    def test_ship_now_cannot_over_receive(self) -> None:
        shipping_order(self.db, {'SKU-1': 80})
        inbound = unloading_order(self.db, {'SKU-1': 40})

        result = allocate_ship_now(self.db, receiving_order_id=inbound.id, item_id='SKU-1', qty=50, actor='op')

        self.assertIsInstance(result, QuantityExceeded)
        self.assertEqual(result.scope_kind, 'receiving')
        self.assertEqual(result.headroom, 40)


if __name__ == '__main__':
    unittest.main()
