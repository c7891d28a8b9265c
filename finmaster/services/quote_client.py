from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable

from finmaster.errors import QuoteFetchError
from finmaster.integrations.quote_api import CancellationToken, QuoteApiClient, fetch_with_retry
from finmaster.schemas.quote import Quote
from finmaster.services.simulation import SimulatedQuoteProvider, display_timestamp
from finmaster.services.symbols import to_provider_symbol


def to_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        if value is None or value == "":
            return None
        return float(value)
    except (TypeError, ValueError):
        return None


def year_performance(current: float, previous_close: float | None) -> float:
    if not previous_close:
        return 0.0
    return round((current - previous_close) / previous_close * 100, 1)


def _response_text(response: Any) -> str:
    return str(getattr(response, "text", "") or "")


class QuoteClient:
    """Live-first quote source with retry and simulated fallback."""

    def __init__(
        self,
        *,
        api_client: QuoteApiClient,
        simulator: SimulatedQuoteProvider | None = None,
        sleep_fn: Callable[[float], Any] | None = None,
        clock: Callable[[], datetime] | None = None,
        max_workers: int = 8,
    ) -> None:
        self.api_client = api_client
        self.simulator = simulator or SimulatedQuoteProvider()
        self.sleep_fn = sleep_fn
        self.clock = clock or datetime.now
        self.max_workers = max_workers

    def _fetch_live(self, symbol: str, token: CancellationToken | None) -> Quote:
        config = self.api_client.config
        provider_symbol = to_provider_symbol(symbol)
        response = fetch_with_retry(
            lambda: self.api_client.get_stock(provider_symbol),
            attempts=config.retry_attempts,
            sleep_fn=self.sleep_fn,
            token=token,
            label=provider_symbol,
        )

        status = int(response.status_code)
        if not 200 <= status < 300:
            reason = getattr(response, "reason", "") or ""
            raise QuoteFetchError(
                f"HTTP {status}: {reason}. {_response_text(response)}",
                kind="http",
                status_code=status,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise QuoteFetchError("Invalid API response structure - body is not JSON", kind="invalid") from exc

        current = to_float(data.get("currentPrice")) if isinstance(data, dict) else None
        if current is None:
            raise QuoteFetchError("Invalid API response structure - missing current price", kind="invalid")

        previous_close = to_float(data.get("previousClose"))
        volume = to_float(data.get("regularMarketVolume"))
        return Quote(
            symbol=str(data.get("symbol") or symbol),
            price=current,
            previous_close=previous_close,
            high_52_week=to_float(data.get("fiftyTwoWeekHigh")),
            low_52_week=to_float(data.get("fiftyTwoWeekLow")),
            year_performance=year_performance(current, previous_close),
            currency=str(data.get("currency") or "USD"),
            exchange_name=str(data.get("exchangeName") or "Unknown Exchange"),
            volume=int(volume) if volume is not None else None,
            market_cap="N/A",
            timestamp=display_timestamp(self.clock()),
            is_simulated=False,
        )

    def get_quote(self, symbol: str, token: CancellationToken | None = None) -> Quote:
        try:
            quote = self._fetch_live(symbol, token)
        except QuoteFetchError as exc:
            print(f"[QUOTE][simulated_fallback] symbol={symbol} kind={exc.kind} error={exc}", flush=True)
            return self.simulator.get_quote(symbol, error=str(exc))
        except Exception as exc:
            print(f"[QUOTE][simulated_fallback] symbol={symbol} kind=unexpected error={exc}", flush=True)
            return self.simulator.get_quote(symbol, error=str(exc) or type(exc).__name__)

        return quote

    def get_quotes(self, symbols: list[str], token: CancellationToken | None = None) -> dict[str, Quote]:
        if not symbols:
            return {}

        workers = max(1, min(self.max_workers, len(symbols)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="quote-fetch") as pool:
            results = list(pool.map(lambda s: self.get_quote(s, token), symbols))

        out = dict(zip(symbols, results))
        simulated = sum(1 for q in results if q.is_simulated)
        print(
            "[QUOTE][batch_resolve] "
            f"target_count={len(symbols)} live_count={len(results) - simulated} "
            f"simulated_count={simulated}",
            flush=True,
        )
        return out
