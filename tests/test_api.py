"""
Test Suite for the quote HTTP API
"""

import unittest
from unittest.mock import Mock

from fastapi.testclient import TestClient

from api import create_app, status_for
from exceptions import (
    GroupNotFound,
    MissingInputData,
    NoSilverPlans,
    FplTableUnavailable,
    PersistenceFailure,
    QuoteError,
)
from quote_store import MemoryQuoteStore
from quote_fixtures import build_engine, GROUP_ID


class TestStatusMapping(unittest.TestCase):

    def test_error_statuses(self):
        self.assertEqual(status_for(GroupNotFound("x")), 404)
        self.assertEqual(status_for(MissingInputData("x")), 400)
        self.assertEqual(status_for(NoSilverPlans("x")), 422)
        self.assertEqual(status_for(FplTableUnavailable("x")), 422)
        self.assertEqual(status_for(PersistenceFailure("x")), 503)
        self.assertEqual(status_for(QuoteError("x")), 500)


class TestQuoteRoutes(unittest.TestCase):

    def setUp(self):
        self.engine = build_engine()
        self.client = TestClient(create_app(self.engine))

    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_run_returns_batch(self):
        response = self.client.post(f"/groups/{GROUP_ID}/quotes", json={"effective_date": "2025-01-01"})
        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body['group_id'], GROUP_ID)
        self.assertEqual(len(body['quotes']), 6)
        statuses = [q['meta']['status'] for q in body['quotes']]
        self.assertEqual(statuses, ['priced', 'skipped', 'needs_county', 'skipped', 'skipped', 'priced'])

    def test_run_without_body(self):
        response = self.client.post(f"/groups/{GROUP_ID}/quotes")
        self.assertEqual(response.status_code, 201)

    def test_run_with_member_counties(self):
        response = self.client.post(
            f"/groups/{GROUP_ID}/quotes",
            json={"effective_date": "2025-01-01", "member_counties": {"carol": 17031}},
        )
        carol = response.json()['quotes'][2]
        self.assertEqual(carol['meta']['status'], 'priced')
        self.assertEqual(carol['meta']['county_id'], '17031')

    def test_latest_and_history(self):
        missing = self.client.get(f"/groups/{GROUP_ID}/quotes")
        self.assertEqual(missing.status_code, 404)
        self.assertIn('error', missing.json())

        first = self.client.post(f"/groups/{GROUP_ID}/quotes", json={"effective_date": "2025-01-01"}).json()
        second = self.client.post(f"/groups/{GROUP_ID}/quotes", json={"effective_date": "2025-02-01"}).json()

        latest = self.client.get(f"/groups/{GROUP_ID}/quotes")
        self.assertEqual(latest.status_code, 200)
        self.assertEqual(latest.json()['id'], second['id'])

        history = self.client.get(f"/groups/{GROUP_ID}/quotes/history").json()
        self.assertEqual([b['id'] for b in history], [second['id'], first['id']])

    def test_unknown_group(self):
        response = self.client.post("/groups/nope/quotes")
        self.assertEqual(response.status_code, 404)
        self.assertIn('nope', response.json()['error'])

    def test_empty_group(self):
        self.assertEqual(self.client.post("/groups/g-empty/quotes").status_code, 404)

    def test_invalid_effective_date(self):
        response = self.client.post(f"/groups/{GROUP_ID}/quotes", json={"effective_date": "someday"})
        self.assertEqual(response.status_code, 422)

    def test_store_failure(self):
        store = MemoryQuoteStore()
        store.append = Mock(side_effect=PersistenceFailure("Could not save quote batch"))
        client = TestClient(create_app(build_engine(store=store)))
        response = client.post(f"/groups/{GROUP_ID}/quotes")
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json(), {'error': "Could not save quote batch"})


class TestPreviewRoutes(unittest.TestCase):

    def setUp(self):
        self.engine = build_engine()
        self.client = TestClient(create_app(self.engine))

    def test_preview(self):
        response = self.client.post(
            f"/groups/{GROUP_ID}/quotes/preview",
            json={"member_id": "carol", "county_id": "17031", "effective_date": "2025-01-01"},
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['meta']['status'], 'priced')
        self.assertEqual(body['affordability']['benchmark_plan_id'], 'S5')
        # previews never reach history
        self.assertEqual(self.client.get(f"/groups/{GROUP_ID}/quotes/history").json(), [])

    def test_preview_blank_county(self):
        response = self.client.post(
            f"/groups/{GROUP_ID}/quotes/preview", json={"member_id": "carol", "county_id": ""}
        )
        self.assertEqual(response.status_code, 400)

    def test_preview_missing_field(self):
        response = self.client.post(f"/groups/{GROUP_ID}/quotes/preview", json={"member_id": "carol"})
        self.assertEqual(response.status_code, 422)

    def test_preview_unknown_member(self):
        response = self.client.post(
            f"/groups/{GROUP_ID}/quotes/preview", json={"member_id": "zed", "county_id": "17031"}
        )
        self.assertEqual(response.status_code, 404)

    def test_benchmark(self):
        response = self.client.post(
            f"/groups/{GROUP_ID}/quotes/benchmark",
            json={"member_id": "alice", "county_id": "45007", "effective_date": "2025-01-01"},
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['benchmark']['plan_id'], 'S3')
        self.assertEqual(body['age'], 40)

    def test_benchmark_without_silver(self):
        response = self.client.post(
            f"/groups/{GROUP_ID}/quotes/benchmark",
            json={"member_id": "carol", "county_id": "17043", "effective_date": "2025-01-01"},
        )
        self.assertEqual(response.status_code, 422)
        self.assertIn('Silver', response.json()['error'])

    def test_benchmark_state_code_length(self):
        response = self.client.post(
            f"/groups/{GROUP_ID}/quotes/benchmark",
            json={"member_id": "alice", "county_id": "45007", "state_code": "ALASKA"},
        )
        self.assertEqual(response.status_code, 422)


if __name__ == '__main__':
    unittest.main()
