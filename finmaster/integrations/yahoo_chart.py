from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from finmaster.errors import (
    MalformedUpstreamResponseError,
    NoMarketDataError,
    SymbolNotFoundError,
    UpstreamError,
    UpstreamHTTPError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)
from finmaster.integrations.deadline import call_with_deadline

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


def _to_float(value: Any) -> float | None:
    try:
        if value is None or value == "":
            return None
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_int(value: Any) -> int | None:
    number = _to_float(value)
    return None if number is None else int(number)


def flatten_chart(payload: Any, symbol: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Reshape a v8 chart payload into the proxy's flat quote dict."""
    chart = payload.get("chart") if isinstance(payload, dict) else None
    results = chart.get("result") if isinstance(chart, dict) else None
    if not results or not isinstance(results, list) or not isinstance(results[0], dict):
        raise SymbolNotFoundError(f"No data available for symbol: {symbol}", symbol=symbol)

    meta = results[0].get("meta")
    current_price = _to_float(meta.get("regularMarketPrice")) if isinstance(meta, dict) else None
    if current_price is None:
        raise NoMarketDataError(f"Market data not available for symbol: {symbol}", symbol=symbol)

    previous_close = _to_float(meta.get("previousClose")) or _to_float(meta.get("chartPreviousClose"))
    day_change = current_price - previous_close if current_price and previous_close else 0.0
    day_change_percent = (day_change / previous_close) * 100 if previous_close else 0.0
    stamp = (now or datetime.now(timezone.utc)).isoformat()

    return {
        "symbol": meta.get("symbol") or symbol,
        "current_price": current_price,
        "previous_close": previous_close,
        "day_change": day_change,
        "day_change_percent": day_change_percent,
        "fifty_two_week_high": _to_float(meta.get("fiftyTwoWeekHigh")),
        "fifty_two_week_low": _to_float(meta.get("fiftyTwoWeekLow")),
        "regular_market_volume": _to_int(meta.get("regularMarketVolume")),
        "currency": meta.get("currency") or "USD",
        "exchange_name": meta.get("fullExchangeName") or meta.get("exchangeName"),
        "market_state": meta.get("marketState"),
        "timestamp": stamp,
        "chart": chart,
    }


class YahooChartClient:
    """Yahoo Finance v8 chart client used by the quote proxy and the health check."""

    def __init__(
        self,
        base_url: str = "https://query1.finance.yahoo.com",
        timeout: float = 10.0,
        session: Optional[Any] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests

    def chart_url(self, symbol: str) -> str:
        return f"{self.base_url}/v8/finance/chart/{quote(symbol, safe='')}"

    def _get(self, symbol: str, *, timeout: Optional[float] = None) -> Any:
        timeout = self.timeout if timeout is None else timeout
        try:
            return call_with_deadline(
                lambda: self.session.get(
                    self.chart_url(symbol),
                    headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
                    timeout=timeout,
                ),
                timeout,
                name=f"yahoo-chart-{symbol}",
            )
        except requests.Timeout as exc:
            raise UpstreamTimeoutError("Yahoo Finance API request timed out", symbol=symbol) from exc
        except requests.ConnectionError as exc:
            raise UpstreamUnavailableError("Unable to connect to Yahoo Finance API", symbol=symbol) from exc
        except requests.RequestException as exc:
            raise UpstreamError(str(exc), symbol=symbol) from exc

    def fetch_chart(self, symbol: str) -> Dict[str, Any]:
        response = self._get(symbol)
        status = int(response.status_code)
        if status == 404:
            raise SymbolNotFoundError(f"No data available for symbol: {symbol}", symbol=symbol)
        if not 200 <= status < 300:
            raise UpstreamHTTPError(
                f"Yahoo Finance API error: {status} {getattr(response, 'reason', '') or ''}".rstrip(),
                status_code=status,
                symbol=symbol,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise MalformedUpstreamResponseError(
                f"Yahoo Finance API returned a non-JSON body for symbol: {symbol}", symbol=symbol
            ) from exc

    def get_quote(self, symbol: str) -> Dict[str, Any]:
        return flatten_chart(self.fetch_chart(symbol), symbol)

    def check_reachable(self, symbol: str = "AAPL") -> bool:
        """Return whether the upstream answered 2xx; transport failures raise UpstreamError."""
        response = self._get(symbol)
        return 200 <= int(response.status_code) < 300
