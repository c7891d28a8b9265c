from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class Quote(BaseModel):
    symbol: str
    price: float
    previous_close: float | None = None
    high_52_week: float | None = None
    low_52_week: float | None = None
    year_performance: float = 0.0
    currency: str = "USD"
    exchange_name: str = "Unknown Exchange"
    volume: int | None = None
    market_cap: str = "N/A"
    timestamp: str
    is_simulated: bool = False
    error_details: str | None = None


class StockQuoteResponse(BaseModel):
    """Flat quote body returned by the proxy; serialised with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    symbol: str
    current_price: float
    previous_close: float | None = None
    day_change: float = 0.0
    day_change_percent: float = 0.0
    fifty_two_week_high: float | None = None
    fifty_two_week_low: float | None = None
    regular_market_volume: int | None = None
    currency: str = "USD"
    exchange_name: str | None = None
    market_state: str | None = None
    timestamp: str
    chart: dict[str, Any] | None = None


class ErrorBody(BaseModel):
    error: str
    message: str
    symbol: str | None = None
