from __future__ import annotations

import unittest
from unittest.mock import patch

from engine_fixtures import add_product, make_session, shipping_order, unloading_order
from sqlalchemy import select

from palletops.config import settings
from palletops.models import (
    LocationType,
    ManifestStatus,
    ManifestType,
    OrderEvent,
    OrderKind,
    PalletStatus,
    ReceivingOrderStatus,
    ShipmentType,
    ShippingOrderStatus,
)
from palletops.services.inventory_service import create_admin_pallet, put_away
from palletops.services.location_service import resolve_location
from palletops.services.notification_service import CARGO_RECEIVED, ORDER_COMPLETED
from palletops.services.order_status_service import (
    FinishLoadingResult,
    FinishTallyResult,
    cancel_shipping_order,
    finalize_receipt,
    finalize_shipment,
    finish_loading,
    finish_picking,
    finish_tally,
    receiving_summary,
    start_unloading,
)
from palletops.services.product_service import OrderLineInput
from palletops.services.receiving_service import confirm_tally_pallet, create_receiving_order, tally_pallet_row
from palletops.services.results import InvalidTransition
from palletops.services.shipping_service import cancel_manifest, create_manifest, pick_pallet, toggle_loaded


class ReceivingStatusTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        add_product(self.db, 'SKU-1', units_per_pallet=50)
        add_product(self.db, 'SKU-2', units_per_pallet=50)

    def test_unloading_needs_a_container_photo(self) -> None:
        order = create_receiving_order(
            self.db, container_num='CONT-9', lines=[OrderLineInput('SKU-1', 100)], actor='op'
        )

        rejected = start_unloading(self.db, receiving_order_id=order.id, photo_refs=['  '], actor='op')
        started = start_unloading(self.db, receiving_order_id=order.id, photo_refs=['photos/a.jpg'], actor='op')

        self.assertIsInstance(rejected, InvalidTransition)
        self.assertIs(started, order)
        self.assertEqual(order.status, ReceivingOrderStatus.UNLOADING)
        self.assertEqual(order.container_photos, ['photos/a.jpg'])

    def test_finish_tally_needs_at_least_one_pallet(self) -> None:
        order = unloading_order(self.db, {'SKU-1': 100})

        self.assertIsInstance(finish_tally(self.db, receiving_order_id=order.id, actor='op'), InvalidTransition)

        confirm_tally_pallet(self.db, receiving_order_id=order.id, item_id='SKU-1', qty=50, actor='op')
        result = finish_tally(self.db, receiving_order_id=order.id, actor='op')

        self.assertIsInstance(result, FinishTallyResult)
        self.assertEqual(order.status, ReceivingOrderStatus.STAGED)
        self.assertEqual(result.pallet_count, 1)
        self.assertEqual(result.loading_shipping_order_ids, [])

    def test_fully_cross_docked_shipping_order_goes_straight_to_loading(self) -> None:
        outbound = shipping_order(self.db, {'SKU-1': 50})
        inbound = unloading_order(self.db, {'SKU-1': 100})
        tally_pallet_row(self.db, receiving_order_id=inbound.id, item_id='SKU-1', qty=50, actor='op')
        tally_pallet_row(self.db, receiving_order_id=inbound.id, item_id='SKU-1', qty=50, actor='op')

        result = finish_tally(self.db, receiving_order_id=inbound.id, actor='op')

        self.assertEqual(result.loading_shipping_order_ids, [outbound.id])
        self.assertEqual(outbound.status, ShippingOrderStatus.LOADING)

    def test_partly_cross_docked_shipping_order_still_needs_picking(self) -> None:
        outbound = shipping_order(self.db, {'SKU-1': 50, 'SKU-2': 50})
        inbound = unloading_order(self.db, {'SKU-1': 50})
        tally_pallet_row(self.db, receiving_order_id=inbound.id, item_id='SKU-1', qty=50, actor='op')

        result = finish_tally(self.db, receiving_order_id=inbound.id, actor='op')

        self.assertEqual(result.loading_shipping_order_ids, [])
        self.assertEqual(outbound.status, ShippingOrderStatus.PENDING)

    def test_summary_and_finalize_emit_cargo_received(self) -> None:
        order = unloading_order(self.db, {'SKU-1': 100, 'SKU-2': 60})
        confirm_tally_pallet(self.db, receiving_order_id=order.id, item_id='SKU-1', qty=50, actor='op')
        confirm_tally_pallet(self.db, receiving_order_id=order.id, item_id='SKU-1', qty=50, actor='op')
        confirm_tally_pallet(self.db, receiving_order_id=order.id, item_id='SKU-2', qty=40, actor='op')
        finish_tally(self.db, receiving_order_id=order.id, actor='op')

        summary = {line.item_id: line for line in receiving_summary(self.db, receiving_order_id=order.id)}
        self.assertEqual(summary['SKU-1'].difference, 0)
        self.assertEqual(summary['SKU-1'].pallet_count, 2)
        self.assertEqual(summary['SKU-2'].received_qty, 40)
        self.assertEqual(summary['SKU-2'].difference, -20)

        self.assertIsInstance(
            finalize_receipt(self.db, receiving_order_id=order.id, receiving_form_ref='', actor='op'),
            InvalidTransition,
        )
        finalize_receipt(self.db, receiving_order_id=order.id, receiving_form_ref='forms/rcv-1.pdf', actor='op')

        self.assertEqual(order.status, ReceivingOrderStatus.RECEIVED)
        self.assertIsNotNone(order.finalized_at)
        event = self.db.execute(
            select(OrderEvent)
            .where(OrderEvent.order_kind == OrderKind.RECEIVING, OrderEvent.order_id == order.id)
            .order_by(OrderEvent.id.desc())
        ).scalars().first()
        self.assertEqual(event.status, CARGO_RECEIVED)
        self.assertEqual(event.payload['receiving_form_ref'], 'forms/rcv-1.pdf')


class ShippingStatusTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        add_product(self.db, 'SKU-1', units_per_pallet=50)
        self.location = resolve_location(self.db, location_type=LocationType.RACK, rack=1, level=1, position='A')

    def _stored_pallet(self, qty: int = 50):
        pallet = create_admin_pallet(self.db, item_id='SKU-1', qty=qty, actor='op')
        put_away(self.db, pallet_id=pallet.id, location_id=self.location.id, actor='op')
        return pallet

    def _loading_order(self, requested: int, pallets: int, shipment_type=ShipmentType.HAND_DELIVERY):
        order = shipping_order(self.db, {'SKU-1': requested}, shipment_type=shipment_type)
        picked = []
        for _ in range(pallets):
            pallet = self._stored_pallet()
            pick_pallet(self.db, pallet_id=pallet.id, shipping_order_id=order.id, actor='op')
            picked.append(pallet)
        finish_picking(self.db, shipping_order_id=order.id, actor='op')
        return order, picked

    def test_first_pick_moves_order_to_picking(self) -> None:
        order = shipping_order(self.db, {'SKU-1': 100})
        pallet = self._stored_pallet()

        pick_pallet(self.db, pallet_id=pallet.id, shipping_order_id=order.id, actor='op')

        self.assertEqual(order.status, ShippingOrderStatus.PICKING)
        self.assertEqual(pallet.status, PalletStatus.STAGED)

    def test_finish_picking_needs_a_pick_or_nothing_left(self) -> None:
        order = shipping_order(self.db, {'SKU-1': 100})

        self.assertIsInstance(finish_picking(self.db, shipping_order_id=order.id, actor='op'), InvalidTransition)

        pallet = self._stored_pallet()
        pick_pallet(self.db, pallet_id=pallet.id, shipping_order_id=order.id, actor='op')
        finish_picking(self.db, shipping_order_id=order.id, actor='op')

        self.assertEqual(order.status, ShippingOrderStatus.LOADING)

    def test_cross_dock_alone_can_finish_picking(self) -> None:
        order = shipping_order(self.db, {'SKU-1': 50})
        inbound = unloading_order(self.db, {'SKU-1': 50})
        tally_pallet_row(self.db, receiving_order_id=inbound.id, item_id='SKU-1', qty=50, actor='op')

        result = finish_picking(self.db, shipping_order_id=order.id, actor='op')

        self.assertIs(result, order)
        self.assertEqual(order.status, ShippingOrderStatus.LOADING)

    def test_staged_pallets_keep_order_loading_for_next_truck(self) -> None:
        order, pallets = self._loading_order(requested=100, pallets=2)
        toggle_loaded(self.db, pallet_id=pallets[0].id, loaded=True, actor='op')

        result = finish_loading(self.db, shipping_order_id=order.id, actor='op')

        self.assertIsInstance(result, FinishLoadingResult)
        self.assertFalse(result.completed)
        self.assertEqual(result.staged_remaining, 1)
        self.assertEqual(order.status, ShippingOrderStatus.LOADING)

        toggle_loaded(self.db, pallet_id=pallets[1].id, loaded=True, actor='op')
        result = finish_loading(self.db, shipping_order_id=order.id, actor='op')

        self.assertTrue(result.completed)
        self.assertEqual(order.status, ShippingOrderStatus.COMPLETED)

    def test_single_truck_mode_completes_with_staged_pallets(self) -> None:
        order, pallets = self._loading_order(requested=100, pallets=2)
        toggle_loaded(self.db, pallet_id=pallets[0].id, loaded=True, actor='op')

        with patch.object(settings, 'multi_truck_loading', False):
            result = finish_loading(self.db, shipping_order_id=order.id, actor='op')

        self.assertTrue(result.completed)
        self.assertEqual(order.status, ShippingOrderStatus.COMPLETED)
        events = self.db.execute(
            select(OrderEvent.status).where(OrderEvent.order_kind == OrderKind.SHIPPING, OrderEvent.order_id == order.id)
        ).scalars().all()
        self.assertIn(ORDER_COMPLETED, events)

    def test_single_truck_finalize_ships_pallets_left_staged(self) -> None:
        order, pallets = self._loading_order(requested=100, pallets=2)
        toggle_loaded(self.db, pallet_id=pallets[0].id, loaded=True, actor='op')
        with patch.object(settings, 'multi_truck_loading', False):
            finish_loading(self.db, shipping_order_id=order.id, actor='op')

        finalize_shipment(self.db, shipping_order_id=order.id, signed_form_ref='forms/pod.pdf', actor='cs')

        self.assertEqual(order.status, ShippingOrderStatus.SHIPPED)
        self.assertEqual([pallet.status for pallet in pallets], [PalletStatus.SHIPPED, PalletStatus.SHIPPED])

    def test_container_order_cannot_load_without_a_manifest(self) -> None:
        order, pallets = self._loading_order(requested=50, pallets=1, shipment_type=ShipmentType.CONTAINER_LOADING)

        result = toggle_loaded(self.db, pallet_id=pallets[0].id, loaded=True, actor='op')

        self.assertIsInstance(result, InvalidTransition)
        self.assertEqual(result.to_status, 'Loaded')
        self.assertEqual(pallets[0].status, PalletStatus.STAGED)

        hand_manifest = create_manifest(self.db, manifest_type=ManifestType.HAND_DELIVERY)
        result = toggle_loaded(self.db, pallet_id=pallets[0].id, loaded=True, manifest_id=hand_manifest.id, actor='op')
        self.assertIsInstance(result, InvalidTransition)
        self.assertEqual(order.status, ShippingOrderStatus.LOADING)

    def test_finish_loading_needs_a_loaded_pallet(self) -> None:
        order, _ = self._loading_order(requested=50, pallets=1)

        self.assertIsInstance(finish_loading(self.db, shipping_order_id=order.id, actor='op'), InvalidTransition)

    def test_finalize_ships_loaded_pallets_and_closes_manifest(self) -> None:
        manifest = create_manifest(
            self.db, manifest_type=ManifestType.CONTAINER, container_num='MSCU7654321', seal_num='S-9'
        )
        order, pallets = self._loading_order(
            requested=50, pallets=1, shipment_type=ShipmentType.CONTAINER_LOADING
        )
        toggle_loaded(self.db, pallet_id=pallets[0].id, loaded=True, manifest_id=manifest.id, actor='op')
        finish_loading(self.db, shipping_order_id=order.id, actor='op')

        result = finalize_shipment(self.db, shipping_order_id=order.id, signed_form_ref='forms/bol.pdf', actor='cs')

        self.assertIs(result, order)
        self.assertEqual(order.status, ShippingOrderStatus.SHIPPED)
        self.assertIsNotNone(order.shipped_at)
        self.assertEqual(pallets[0].status, PalletStatus.SHIPPED)
        self.assertIsNotNone(pallets[0].shipped_at)
        self.assertEqual(manifest.status, ManifestStatus.CLOSED)
        self.assertIsNotNone(manifest.closed_at)

    def test_cancelling_manifest_reopens_completed_order(self) -> None:
        manifest = create_manifest(self.db, manifest_type=ManifestType.HAND_DELIVERY)
        order, pallets = self._loading_order(requested=50, pallets=1)
        toggle_loaded(self.db, pallet_id=pallets[0].id, loaded=True, manifest_id=manifest.id, actor='op')
        finish_loading(self.db, shipping_order_id=order.id, actor='op')

        result = cancel_manifest(self.db, manifest_id=manifest.id, actor='cs')

        self.assertEqual(result.unloaded_pallet_ids, [pallets[0].id])
        self.assertEqual(result.reopened_shipping_order_ids, [order.id])
        self.assertEqual(manifest.status, ManifestStatus.CANCELLED)
        self.assertEqual(pallets[0].status, PalletStatus.STAGED)
        self.assertIsNone(pallets[0].manifest_id)
        self.assertEqual(order.status, ShippingOrderStatus.LOADING)

    def test_cancel_only_before_completion(self) -> None:
        order = shipping_order(self.db, {'SKU-1': 50})
        self.assertIs(cancel_shipping_order(self.db, shipping_order_id=order.id, actor='op'), order)
        self.assertEqual(order.status, ShippingOrderStatus.CANCELLED)
        self.assertIsNotNone(order.cancelled_at)

        done, pallets = self._loading_order(requested=50, pallets=1)
        toggle_loaded(self.db, pallet_id=pallets[0].id, loaded=True, actor='op')
        finish_loading(self.db, shipping_order_id=done.id, actor='op')
        self.assertIsInstance(cancel_shipping_order(self.db, shipping_order_id=done.id, actor='op'), InvalidTransition)


if __name__ == '__main__':
    unittest.main()
