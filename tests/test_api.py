"""HTTP endpoint tests; retrieval and storage are patched out."""

import unittest
from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from backend.errors import InvalidInput
from backend.main import app
from backend.models import CatalogConfig, FetchResult, OfferStatus
from backend.services.board import board
from backend.services.catalog import DEFAULT_CATALOG, parse_catalog

VALID_CONFIG = {
    "currency": "usd",
    "items": [
        {
            "id": "coffee",
            "name": "Coffee 1kg",
            "offers": [
                {"store": "A", "url": "https://a.example/coffee", "selector": ".p"},
                {"store": "B", "url": "https://b.example/coffee"},
            ],
        }
    ],
}


def _ok(html: str, rendered: bool = False) -> FetchResult:
    return FetchResult(ok=True, url="https://a.example/coffee", status=200, html=html, rendered=rendered)


class TestParseCatalog(unittest.TestCase):
    def test_valid(self):
        catalog = parse_catalog(VALID_CONFIG)
        self.assertEqual(catalog.currency, "USD")
        self.assertEqual(catalog.items[0].offers[0].selector, ".p")
        self.assertIsNone(catalog.items[0].offers[1].selector)

    def test_missing_items(self):
        with self.assertRaises(InvalidInput):
            parse_catalog({"currency": "USD"})
        with self.assertRaises(InvalidInput):
            parse_catalog([])

    def test_bad_offer_url(self):
        bad = {"items": [{"id": "x", "name": "X", "offers": [{"store": "S", "url": "www.s.com"}]}]}
        with self.assertRaises(InvalidInput):
            parse_catalog(bad)

    def test_unknown_currency(self):
        with self.assertRaises(InvalidInput):
            parse_catalog({"currency": "XYZ", "items": []})

    def test_duplicate_item_ids(self):
        item = {"id": "x", "name": "X", "offers": []}
        with self.assertRaises(InvalidInput):
            parse_catalog({"items": [item, item]})

    def test_default_catalog(self):
        self.assertEqual(DEFAULT_CATALOG.currency, "CAD")
        self.assertEqual(len(DEFAULT_CATALOG.items[0].offers), 4)


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        self.client = TestClient(app)
        board.reset(CatalogConfig.model_validate(VALID_CONFIG))

    def tearDown(self):
        board.reset(DEFAULT_CATALOG)
        board.catalog = None


class TestFetchEndpoint(ApiTestCase):
    @patch("backend.retrieval.direct.retrieve_direct", new_callable=AsyncMock)
    def test_success(self, mock_direct):
        mock_direct.return_value = _ok("<p>hi</p>")
        resp = self.client.get("/api/fetch", params={"url": "https://a.example/coffee", "t": "1"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.headers["cache-control"], "no-store")
        body = resp.json()
        self.assertTrue(body["ok"])
        self.assertFalse(body["rendered"])
        self.assertEqual(body["html"], "<p>hi</p>")
        self.assertIn("fetchedAt", body)
        self.assertEqual(mock_direct.call_args.kwargs["cache_bust"], "1")

    def test_invalid_url(self):
        resp = self.client.get("/api/fetch", params={"url": "ftp://a.example"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"ok": False, "error": "Invalid or missing URL"})
        self.assertEqual(resp.headers["cache-control"], "no-store")

    def test_missing_url(self):
        resp = self.client.get("/api/fetch")
        self.assertEqual(resp.status_code, 400)

    @patch("backend.retrieval.direct.retrieve_direct", new_callable=AsyncMock)
    def test_failure(self, mock_direct):
        mock_direct.return_value = FetchResult(ok=False, error="Timed out after 15s")
        resp = self.client.get("/api/fetch", params={"url": "https://a.example/coffee"})
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json(), {"ok": False, "error": "Timed out after 15s"})
        self.assertEqual(resp.headers["cache-control"], "no-store")


class TestRenderEndpoint(ApiTestCase):
    @patch("backend.retrieval.browser.retrieve_rendered", new_callable=AsyncMock)
    def test_success(self, mock_render):
        mock_render.return_value = _ok("<p>rendered</p>", rendered=True)
        resp = self.client.get(
            "/api/render",
            params={"url": "https://a.example/coffee", "selector": ".p", "waitMs": "50000", "ua": "x"},
        )
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["rendered"])
        self.assertEqual(resp.headers["cache-control"], "no-store")
        kwargs = mock_render.call_args.kwargs
        self.assertEqual(kwargs["wait_selector"], ".p")
        self.assertEqual(kwargs["wait_ms"], 50000)
        self.assertEqual(kwargs["user_agent"], "x")

    def test_invalid_url(self):
        resp = self.client.get("/api/render", params={"url": "nope"})
        self.assertEqual(resp.status_code, 400)


class TestConfigEndpoints(ApiTestCase):
    def test_get(self):
        resp = self.client.get("/api/config")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["items"][0]["id"], "coffee")

    @patch("backend.services.catalog.store_setting", new_callable=AsyncMock)
    def test_put_valid(self, mock_store):
        new = {"currency": "EUR", "items": [{"id": "tea", "name": "Tea", "offers": []}]}
        resp = self.client.put("/api/config", json=new)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(board.catalog.items[0].id, "tea")
        mock_store.assert_awaited_once()

    @patch("backend.services.catalog.store_setting", new_callable=AsyncMock)
    def test_put_invalid_keeps_previous(self, mock_store):
        resp = self.client.put("/api/config", json={"currency": "EUR"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"], "Missing 'items' array")
        self.assertEqual(board.catalog.items[0].id, "coffee")
        mock_store.assert_not_called()

    @patch("backend.services.catalog.delete_setting", new_callable=AsyncMock)
    def test_reset(self, mock_delete):
        resp = self.client.delete("/api/config")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["items"][0]["id"], "eggs")
        mock_delete.assert_awaited_once()

    @patch("backend.services.catalog.load_setting", new_callable=AsyncMock)
    def test_loads_stored_catalog(self, mock_load):
        board.catalog = None
        mock_load.return_value = '{"currency": "GBP", "items": []}'
        resp = self.client.get("/api/config")
        self.assertEqual(resp.json()["currency"], "GBP")

    @patch("backend.services.catalog.load_setting", new_callable=AsyncMock)
    def test_corrupt_stored_catalog(self, mock_load):
        board.catalog = None
        mock_load.return_value = '{"items": "nope"}'
        resp = self.client.get("/api/config")
        self.assertEqual(resp.json()["items"][0]["id"], "eggs")


@patch("backend.retrieval.browser.retrieve_rendered", new_callable=AsyncMock)
@patch("backend.retrieval.direct.retrieve_direct", new_callable=AsyncMock)
class TestPriceEndpoints(ApiTestCase):
    def test_prices_before_refresh(self, mock_direct, mock_render):
        resp = self.client.get("/api/prices")
        offers = resp.json()["items"][0]["offers"]
        self.assertEqual([o["status"] for o in offers], ["idle", "idle"])

    def test_refresh(self, mock_direct, mock_render):
        mock_direct.return_value = _ok('<b class="p">$5.00</b><div class="price">$9.00</div>')
        resp = self.client.post("/api/refresh", params={"force": "true"})
        self.assertEqual(resp.status_code, 200)
        offers = resp.json()["items"][0]["offers"]
        self.assertEqual([o["amount"] for o in offers], [5.0, 9.0])
        self.assertEqual([o["best"] for o in offers], [True, False])
        self.assertEqual(offers[0]["currency"], "USD")
        self.assertIsNotNone(mock_direct.call_args.kwargs["cache_bust"])
        mock_render.assert_not_called()

    def test_refresh_failure_reported(self, mock_direct, mock_render):
        mock_direct.return_value = FetchResult(ok=False, error="HTTP 403")
        mock_render.return_value = FetchResult(ok=False, error="Render timed out", rendered=True)
        resp = self.client.post("/api/refresh")
        offers = resp.json()["items"][0]["offers"]
        self.assertEqual(offers[0]["status"], OfferStatus.FAILED.value)
        self.assertEqual(offers[0]["error"], "HTTP 403")
        self.assertFalse(any(o["best"] for o in offers))

    def test_refresh_single_offer(self, mock_direct, mock_render):
        mock_direct.return_value = _ok('<div class="price">$3.00</div>')
        resp = self.client.post("/api/items/coffee/offers/1/refresh")
        self.assertEqual(resp.status_code, 200)
        offers = resp.json()["offers"]
        self.assertEqual(offers[0]["status"], "idle")
        self.assertEqual(offers[1]["amount"], 3.0)
        self.assertTrue(offers[1]["best"])

    def test_refresh_unknown_offer(self, mock_direct, mock_render):
        resp = self.client.post("/api/items/coffee/offers/5/refresh")
        self.assertEqual(resp.status_code, 404)


class TestHealth(unittest.TestCase):
    def test_health(self):
        resp = TestClient(app).get("/api/health")
        self.assertEqual(resp.json(), {"ok": True})


if __name__ == "__main__":
    unittest.main()
