from __future__ import annotations

import random
from datetime import datetime
from typing import Callable

from finmaster.schemas.quote import Quote

DEMO_SUFFIX = " ⚠️ DEMO DATA"

_KNOWN_BASE_PRICES = (
    ("AAPL", 175.0),
    ("MSFT", 340.0),
    ("GOOGL", 2800.0),
)


def display_timestamp(now: datetime) -> str:
    return now.strftime("%Y-%m-%d %H:%M:%S")


def _is_johannesburg(symbol: str) -> bool:
    return "JSE:" in symbol or "STXRES" in symbol


class SimulatedQuoteProvider:
    """Placeholder quote source used once the live source has failed.

    Every quote it returns is flagged ``is_simulated`` and carries the error that
    triggered the fallback.
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.rng = rng or random.Random()
        self.clock = clock or datetime.now

    def _base_price(self, symbol: str) -> float:
        for ticker, price in _KNOWN_BASE_PRICES:
            if ticker in symbol:
                return price
        if _is_johannesburg(symbol):
            return 50 + self.rng.random() * 200
        return 20 + self.rng.random() * 300

    @staticmethod
    def currency_for(symbol: str) -> str:
        if _is_johannesburg(symbol):
            return "ZAR"
        if "LON:" in symbol:
            return "GBP"
        return "USD"

    @staticmethod
    def exchange_for(symbol: str) -> str:
        if _is_johannesburg(symbol):
            return "Johannesburg Stock Exchange"
        if "LON:" in symbol:
            return "London Stock Exchange"
        return "NASDAQ/NYSE"

    def get_quote(self, symbol: str, error: str | None = None) -> Quote:
        rng = self.rng
        price = round(self._base_price(symbol) * (0.8 + rng.random() * 0.4), 2)
        return Quote(
            symbol=symbol,
            price=price,
            high_52_week=round(price * (1.2 + rng.random() * 0.3), 2),
            low_52_week=round(price * (0.6 + rng.random() * 0.2), 2),
            year_performance=round((rng.random() - 0.3) * 50, 1),
            previous_close=round(price * (0.98 + rng.random() * 0.04), 2),
            currency=self.currency_for(symbol),
            exchange_name=self.exchange_for(symbol),
            market_cap=f"{rng.random() * 500 + 10:.1f}B",
            volume=int(rng.random() * 10_000_000 + 100_000),
            timestamp=display_timestamp(self.clock()) + DEMO_SUFFIX,
            is_simulated=True,
            error_details=error or "Live quote unavailable",
        )
