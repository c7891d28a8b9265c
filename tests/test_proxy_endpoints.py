import unittest
from unittest.mock import MagicMock

import requests
from fastapi.testclient import TestClient

from finmaster.integrations.yahoo_chart import YahooChartClient
from finmaster.main import app


def chart_payload(price=190.5):
    return {
        "chart": {
            "result": [
                {
                    "meta": {
                        "symbol": "AAPL",
                        "regularMarketPrice": price,
                        "previousClose": 188.0,
                        "fiftyTwoWeekHigh": 199.62,
                        "fiftyTwoWeekLow": 164.08,
                        "regularMarketVolume": 51234567,
                        "currency": "USD",
                        "fullExchangeName": "NasdaqGS",
                        "marketState": "REGULAR",
                    }
                }
            ],
            "error": None,
        }
    }


def make_response(status_code=200, payload=None, reason="OK"):
    response = MagicMock()
    response.status_code = status_code
    response.reason = reason
    response.json.return_value = payload
    return response


class ProxyEndpointTestBase(unittest.TestCase):
    def setUp(self):
        self.session = MagicMock()
        self.original_client = app.state.yahoo_client
        app.state.yahoo_client = YahooChartClient(base_url="https://example.test", session=self.session)
        self.client = TestClient(app)

    def tearDown(self):
        app.state.yahoo_client = self.original_client

    def assertCors(self, response):
        self.assertEqual(response.headers["access-control-allow-origin"], "*")
        self.assertIn("GET", response.headers["access-control-allow-methods"])
        self.assertIn("OPTIONS", response.headers["access-control-allow-methods"])


class TestStockProxy(ProxyEndpointTestBase):
    def test_valid_chart_returns_flat_quote(self):
        self.session.get.return_value = make_response(payload=chart_payload(price=201.25))

        r = self.client.get("/api/stock/aapl")

        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertEqual(body["currentPrice"], 201.25)
        self.assertEqual(body["symbol"], "AAPL")
        self.assertEqual(body["previousClose"], 188.0)
        self.assertEqual(body["fiftyTwoWeekHigh"], 199.62)
        self.assertEqual(body["regularMarketVolume"], 51234567)
        self.assertEqual(body["exchangeName"], "NasdaqGS")
        self.assertEqual(body["marketState"], "REGULAR")
        self.assertIn("dayChangePercent", body)
        self.assertIn("timestamp", body)
        self.assertIn("chart", body)
        self.assertCors(r)
        self.assertEqual(r.headers["access-control-max-age"], "86400")
        self.assertIn("s-maxage=60", r.headers["cache-control"])

    def test_query_parameter_form(self):
        self.session.get.return_value = make_response(payload=chart_payload())
        r = self.client.get("/api/stock", params={"symbol": "AAPL"})
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["currentPrice"], 190.5)

    def test_missing_symbol_is_400(self):
        r = self.client.get("/api/stock")
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["error"], "Invalid symbol")
        self.session.get.assert_not_called()

    def test_malformed_symbol_is_400(self):
        r = self.client.get("/api/stock/JSE:STXRES")
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["error"], "Invalid symbol format")
        self.assertEqual(r.json()["symbol"], "JSE:STXRES")
        self.assertCors(r)
        self.session.get.assert_not_called()

    def test_suffix_symbol_is_accepted(self):
        self.session.get.return_value = make_response(payload=chart_payload())
        r = self.client.get("/api/stock/stxres.jo")
        self.assertEqual(r.status_code, 200)
        self.assertTrue(self.session.get.call_args[0][0].endswith("/STXRES.JO"))

    def test_upstream_not_found_body_is_404(self):
        self.session.get.return_value = make_response(
            payload={"chart": {"result": None, "error": {"code": "Not Found", "description": "No data found"}}}
        )
        r = self.client.get("/api/stock/ZZZZ")
        self.assertEqual(r.status_code, 404)
        self.assertEqual(r.json()["error"], "Symbol not found")
        self.assertEqual(r.json()["symbol"], "ZZZZ")

    def test_upstream_404_status_is_404(self):
        self.session.get.return_value = make_response(status_code=404, reason="Not Found")
        r = self.client.get("/api/stock/ZZZZ")
        self.assertEqual(r.status_code, 404)

    def test_missing_market_price_is_404(self):
        payload = chart_payload()
        del payload["chart"]["result"][0]["meta"]["regularMarketPrice"]
        self.session.get.return_value = make_response(payload=payload)
        r = self.client.get("/api/stock/AAPL")
        self.assertEqual(r.status_code, 404)
        self.assertEqual(r.json()["error"], "No market data")

    def test_upstream_timeout_is_408(self):
        self.session.get.side_effect = requests.Timeout("timed out")
        r = self.client.get("/api/stock/AAPL")
        self.assertEqual(r.status_code, 408)
        self.assertEqual(r.json()["error"], "Request timeout")
        self.assertCors(r)

    def test_upstream_unreachable_is_503(self):
        self.session.get.side_effect = requests.ConnectionError("refused")
        r = self.client.get("/api/stock/AAPL")
        self.assertEqual(r.status_code, 503)
        self.assertEqual(r.json()["error"], "Service unavailable")

    def test_malformed_upstream_body_is_500(self):
        response = make_response()
        response.json.side_effect = ValueError("Expecting value")
        self.session.get.return_value = response
        r = self.client.get("/api/stock/AAPL")
        self.assertEqual(r.status_code, 500)
        self.assertEqual(r.json()["error"], "Malformed upstream response")

    def test_upstream_server_error_is_500(self):
        self.session.get.return_value = make_response(status_code=500, reason="Internal Server Error")
        r = self.client.get("/api/stock/AAPL")
        self.assertEqual(r.status_code, 500)
        self.assertEqual(r.json()["error"], "Internal server error")
        self.assertIn("500", r.json()["message"])

    def test_preflight_has_no_body(self):
        r = self.client.options("/api/stock/AAPL")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.content, b"")
        self.assertCors(r)

    def test_non_get_methods_are_405(self):
        for method in ("post", "put", "delete"):
            r = getattr(self.client, method)("/api/stock/AAPL")
            self.assertEqual(r.status_code, 405)
            self.assertEqual(r.json()["error"], "Method not allowed")
            self.assertCors(r)
        self.session.get.assert_not_called()


class TestHealthCheck(ProxyEndpointTestBase):
    def test_reachable_upstream_is_connected(self):
        self.session.get.return_value = make_response(status_code=200)
        r = self.client.get("/api/health")
        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertEqual(body["status"], "healthy")
        self.assertEqual(body["yahooFinanceAPI"], "connected")
        self.assertEqual(body["cors"], "enabled")
        self.assertEqual(body["version"], "1.0.0")
        self.assertIn("timestamp", body)
        self.assertNotIn("error", body)
        self.assertCors(r)

    def test_upstream_error_status_still_healthy(self):
        self.session.get.return_value = make_response(status_code=503)
        r = self.client.get("/api/health")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["status"], "healthy")
        self.assertEqual(r.json()["yahooFinanceAPI"], "error")

    def test_unreachable_upstream_still_healthy(self):
        self.session.get.side_effect = requests.ConnectionError("refused")
        r = self.client.get("/api/health")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["status"], "healthy")
        self.assertEqual(r.json()["yahooFinanceAPI"], "error")
        self.assertIn("error", r.json())

    def test_health_check_uses_configured_symbol(self):
        self.session.get.return_value = make_response(status_code=200)
        self.client.get("/api/health")
        self.assertTrue(self.session.get.call_args[0][0].endswith("/v8/finance/chart/AAPL"))

    def test_preflight_and_method_guard(self):
        r = self.client.options("/api/health")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.content, b"")
        r = self.client.post("/api/health")
        self.assertEqual(r.status_code, 405)


if __name__ == "__main__":
    unittest.main()
