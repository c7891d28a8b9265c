import time
import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock

import requests

from finmaster.errors import (
    MalformedUpstreamResponseError,
    NoMarketDataError,
    SymbolNotFoundError,
    UpstreamHTTPError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)
from finmaster.integrations.yahoo_chart import YahooChartClient, flatten_chart


def chart_payload(**meta):
    base = {
        "symbol": "AAPL",
        "regularMarketPrice": 190.5,
        "previousClose": 188.0,
        "fiftyTwoWeekHigh": 199.62,
        "fiftyTwoWeekLow": 164.08,
        "regularMarketVolume": 51234567,
        "currency": "USD",
        "exchangeName": "NMS",
        "fullExchangeName": "NasdaqGS",
        "marketState": "REGULAR",
    }
    base.update(meta)
    return {"chart": {"result": [{"meta": base}], "error": None}}


def make_response(status_code=200, payload=None, reason="OK"):
    response = MagicMock()
    response.status_code = status_code
    response.reason = reason
    response.json.return_value = payload
    return response


class TestFlattenChart(unittest.TestCase):
    def test_flattens_meta_fields(self):
        now = datetime(2026, 1, 2, 15, 0, tzinfo=timezone.utc)
        flat = flatten_chart(chart_payload(), "AAPL", now=now)

        self.assertEqual(flat["symbol"], "AAPL")
        self.assertEqual(flat["current_price"], 190.5)
        self.assertEqual(flat["previous_close"], 188.0)
        self.assertAlmostEqual(flat["day_change"], 2.5)
        self.assertAlmostEqual(flat["day_change_percent"], 2.5 / 188.0 * 100)
        self.assertEqual(flat["fifty_two_week_high"], 199.62)
        self.assertEqual(flat["fifty_two_week_low"], 164.08)
        self.assertEqual(flat["regular_market_volume"], 51234567)
        self.assertEqual(flat["exchange_name"], "NasdaqGS")
        self.assertEqual(flat["market_state"], "REGULAR")
        self.assertEqual(flat["timestamp"], now.isoformat())
        self.assertIn("result", flat["chart"])

    def test_previous_close_falls_back_to_chart_previous_close(self):
        flat = flatten_chart(chart_payload(previousClose=None, chartPreviousClose=100.0), "AAPL")
        self.assertEqual(flat["previous_close"], 100.0)

    def test_missing_previous_close_zeroes_day_change(self):
        flat = flatten_chart(chart_payload(previousClose=None, currency=None, fullExchangeName=None), "AAPL")
        self.assertIsNone(flat["previous_close"])
        self.assertEqual(flat["day_change"], 0.0)
        self.assertEqual(flat["day_change_percent"], 0.0)
        self.assertEqual(flat["currency"], "USD")
        self.assertEqual(flat["exchange_name"], "NMS")

    def test_empty_result_is_symbol_not_found(self):
        with self.assertRaises(SymbolNotFoundError):
            flatten_chart({"chart": {"result": None, "error": {"code": "Not Found"}}}, "ZZZZ")
        with self.assertRaises(SymbolNotFoundError):
            flatten_chart({}, "ZZZZ")

    def test_missing_price_is_no_market_data(self):
        payload = chart_payload()
        del payload["chart"]["result"][0]["meta"]["regularMarketPrice"]
        with self.assertRaises(NoMarketDataError) as ctx:
            flatten_chart(payload, "AAPL")
        self.assertEqual(ctx.exception.http_status, 404)
        self.assertEqual(ctx.exception.label, "No market data")


class TestYahooChartClient(unittest.TestCase):
    def _client(self, session):
        return YahooChartClient(base_url="https://example.test", timeout=10, session=session)

    def test_get_quote_uses_chart_endpoint_contract(self):
        session = MagicMock()
        session.get.return_value = make_response(payload=chart_payload())

        flat = self._client(session).get_quote("STXRES.JO")

        self.assertEqual(flat["current_price"], 190.5)
        args, kwargs = session.get.call_args
        self.assertEqual(args[0], "https://example.test/v8/finance/chart/STXRES.JO")
        self.assertEqual(kwargs["timeout"], 10)
        self.assertIn("Mozilla/5.0", kwargs["headers"]["User-Agent"])

    def test_upstream_404_is_symbol_not_found(self):
        session = MagicMock()
        session.get.return_value = make_response(status_code=404, reason="Not Found")
        with self.assertRaises(SymbolNotFoundError):
            self._client(session).get_quote("ZZZZ")

    def test_upstream_5xx_is_http_error(self):
        session = MagicMock()
        session.get.return_value = make_response(status_code=502, reason="Bad Gateway")
        with self.assertRaises(UpstreamHTTPError) as ctx:
            self._client(session).get_quote("AAPL")
        self.assertEqual(ctx.exception.status_code, 502)
        self.assertEqual(ctx.exception.http_status, 500)
        self.assertIn("502", str(ctx.exception))

    def test_transport_failures_are_typed(self):
        session = MagicMock()
        session.get.side_effect = requests.Timeout("read timed out")
        with self.assertRaises(UpstreamTimeoutError):
            self._client(session).get_quote("AAPL")

        session.get.side_effect = requests.ConnectionError("dns failure")
        with self.assertRaises(UpstreamUnavailableError):
            self._client(session).get_quote("AAPL")

    def test_slow_upstream_is_cut_off_at_the_timeout(self):
        session = MagicMock()
        session.get.side_effect = lambda *a, **kw: time.sleep(5)
        client = YahooChartClient(base_url="https://example.test", timeout=0.2, session=session)

        started = time.monotonic()
        with self.assertRaises(UpstreamTimeoutError):
            client.get_quote("AAPL")
        self.assertLess(time.monotonic() - started, 1.5)

    def test_non_json_body_is_malformed(self):
        session = MagicMock()
        response = make_response()
        response.json.side_effect = ValueError("Expecting value")
        session.get.return_value = response
        with self.assertRaises(MalformedUpstreamResponseError):
            self._client(session).get_quote("AAPL")

    def test_check_reachable_reports_status_without_parsing(self):
        session = MagicMock()
        session.get.return_value = make_response(status_code=200)
        self.assertTrue(self._client(session).check_reachable("AAPL"))

        session.get.return_value = make_response(status_code=429)
        self.assertFalse(self._client(session).check_reachable("AAPL"))


if __name__ == "__main__":
    unittest.main()
