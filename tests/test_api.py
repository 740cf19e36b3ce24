from __future__ import annotations

import unittest

from engine_fixtures import make_engine
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from palletops.db import get_db
from palletops.main import app


class ApiTests(unittest.TestCase):
    def setUp(self) -> None:
        session_factory = sessionmaker(bind=make_engine(), autoflush=False, expire_on_commit=False)

        def override_get_db():
            db = session_factory()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        self.client = TestClient(app, headers={'x-actor': 'dock-1'})

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def _receiving_order(self, qty: int = 100) -> int:
        self.client.put('/products', json={'item_id': 'SKU-1', 'units_per_pallet': 50, 'pallet_positions': 2})
        response = self.client.post(
            '/receiving-orders',
            json={'container_num': 'MSCU1234567', 'lines': [{'item_id': 'SKU-1', 'qty': qty}]},
        )
        self.assertEqual(response.status_code, 201)
        return response.json()['id']

    def test_health(self) -> None:
        response = self.client.get('/health')
        self.assertEqual(response.json(), {'status': 'ok', 'warehouse': 'W1'})

    def test_unloading_without_photos_is_a_conflict(self) -> None:
        order_id = self._receiving_order()

        response = self.client.post(f'/receiving-orders/{order_id}/start-unloading', json={'photo_refs': []})

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['detail']['code'], 'invalid_transition')

    def test_tally_flow_and_over_receipt(self) -> None:
        order_id = self._receiving_order()
        started = self.client.post(
            f'/receiving-orders/{order_id}/start-unloading', json={'photo_refs': ['photos/door.jpg']}
        )
        self.assertEqual(started.json()['status'], 'Unloading')

        plan = self.client.get(f'/receiving-orders/{order_id}/plan').json()
        self.assertEqual([row['qty'] for row in plan[0]['rows']], [50, 50])

        for _ in range(2):
            response = self.client.post(f'/receiving-orders/{order_id}/pallets', json={'item_id': 'SKU-1', 'qty': 50})
            self.assertEqual(response.status_code, 201)
            self.assertFalse(response.json()['cross_dock'])

        over = self.client.post(f'/receiving-orders/{order_id}/pallets', json={'item_id': 'SKU-1', 'qty': 1})
        self.assertEqual(over.status_code, 409)
        self.assertEqual(over.json()['detail']['code'], 'quantity_exceeded')
        self.assertEqual(over.json()['detail']['headroom'], 0)

        finished = self.client.post(f'/receiving-orders/{order_id}/finish-tally')
        self.assertEqual(finished.json()['status'], 'Staged')
        self.assertEqual(finished.json()['pallet_count'], 2)

    def test_unknown_order_is_not_found(self) -> None:
        response = self.client.post('/receiving-orders/999/pallets', json={'item_id': 'SKU-1', 'qty': 5})

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['detail']['code'], 'not_found')

    def test_put_away_reports_shared_location(self) -> None:
        self.client.put('/products', json={'item_id': 'SKU-1', 'units_per_pallet': 50})
        first = self.client.post('/pallets', json={'item_id': 'SKU-1', 'qty': 10}).json()
        second = self.client.post('/pallets', json={'item_id': 'SKU-1', 'qty': 10}).json()
        slot = {'location_type': 'RACK', 'rack': 3, 'level': 2, 'position': 'C'}

        self.client.post(f'/pallets/{first["id"]}/put-away', json=slot)
        response = self.client.post(f'/pallets/{second["id"]}/put-away', json=slot)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['location_code'], 'W1-3-2-C')
        self.assertIn('already has 1 pallet', response.json()['warning'])

        history = self.client.get(f'/pallets/{second["id"]}/events').json()
        self.assertEqual([event['event_type'] for event in history], ['admin_created', 'put_away'])
        self.assertEqual(history[-1]['actor'], 'dock-1')

    def test_out_of_range_rack_is_unprocessable(self) -> None:
        self.client.put('/products', json={'item_id': 'SKU-1', 'units_per_pallet': 50})
        pallet = self.client.post('/pallets', json={'item_id': 'SKU-1', 'qty': 10}).json()

        response = self.client.post(
            f'/pallets/{pallet["id"]}/put-away',
            json={'location_type': 'RACK', 'rack': 99, 'level': 1, 'position': 'A'},
        )

        self.assertEqual(response.status_code, 422)

    def test_billing_rejects_reversed_range(self) -> None:
        response = self.client.get('/billing/metrics', params={'date_from': '2025-11-05', 'date_to': '2025-11-01'})
        self.assertEqual(response.status_code, 422)

    def test_billing_csv_lists_every_metric(self) -> None:
        response = self.client.get('/billing/metrics.csv', params={'date_from': '2025-11-01', 'date_to': '2025-11-05'})

        self.assertEqual(response.status_code, 200)
        lines = response.text.strip().splitlines()
        self.assertEqual(lines[0], 'metric,pallet_positions')
        self.assertEqual(len(lines), 6)


if __name__ == '__main__':
    unittest.main()
