from __future__ import annotations

import random
import re
from datetime import datetime
from typing import Callable, Mapping

from finmaster.schemas.quote import Quote
from finmaster.services.simulation import display_timestamp
from finmaster.services.symbols import count_raw_symbols

BUY = "BUY"
WAIT = "WAIT"

BUY_ABOVE_PERF = 10.0
WAIT_BELOW_PERF = -15.0
NEAR_LOW_RATIO = 1.15
HIGH_VOLUME = 1_000_000

_LEADING_NUMBER = re.compile(r"^\s*(-?\d+(?:\.\d+)?)")

_TABLE_HEADER = (
    "| **Share** | **Latest Price** | **Market Cap** | **Volume** | **52-Week Range** "
    "| **1-Year Perf.** | **Exchange** | **Recommendation** |\n"
    "|-----------|------------------|----------------|------------|-------------------"
    "|------------------|--------------|-------------------|"
)


def coin_flip(quote: Quote) -> bool:
    return random.random() > 0.5


def money(value: float | None) -> str:
    return f"{value or 0.0:.2f}"


def percent(value: float | None) -> str:
    return f"{value or 0.0:.1f}"


def volume_text(value: int | None) -> str:
    return f"{value:,}" if value and value > 0 else "N/A"


def market_cap_billions(market_cap: str) -> float:
    match = _LEADING_NUMBER.match(market_cap)
    return float(match.group(1)) if match else 0.0


class ReportGenerator:
    """Builds the markdown investment report for one analysis run.

    Output is a pure function of the inputs, the ``clock`` and the
    ``decide_borderline`` callable. The latter picks BUY (True) or WAIT (False)
    when year performance is neither above 10% nor below -15%; by default it is
    a coin flip.
    """

    def __init__(
        self,
        *,
        decide_borderline: Callable[[Quote], bool] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.decide_borderline = decide_borderline or coin_flip
        self.clock = clock or datetime.now

    def recommend(self, quote: Quote) -> str:
        if quote.year_performance > BUY_ABOVE_PERF:
            return BUY
        if quote.year_performance < WAIT_BELOW_PERF:
            return WAIT
        return BUY if self.decide_borderline(quote) else WAIT

    def generate(
        self,
        symbols: list[str],
        raw_input: str,
        quotes: Mapping[str, Quote],
        *,
        api_connected: bool,
    ) -> str:
        live_count = sum(1 for s in symbols if s in quotes and not quotes[s].is_simulated)
        simulated_count = len(symbols) - live_count
        removed = count_raw_symbols(raw_input) - len(symbols)
        recommendations = {s: self.recommend(quotes[s]) for s in symbols if s in quotes}

        rows = "\n".join(self._table_row(s, quotes.get(s), recommendations.get(s, WAIT)) for s in symbols)
        details = "\n".join(self._detail_section(s, quotes.get(s), recommendations.get(s, WAIT)) for s in symbols)

        if live_count > 0:
            strategy = (
                f"Analysis incorporates {live_count} live market data points providing current market conditions."
            )
        else:
            strategy = (
                "Analysis based on demo data due to API connectivity issues. "
                "Recommendations should be verified with live market data."
            )

        return f"""# Financial Investment Analysis Report
*Generated: {display_timestamp(self.clock())} | Investment Horizon: 2-3 Years*
*Data Source: FinMaster API Integration*

## Data Quality Summary
• **Live Market Data**: {live_count} symbols
• **Demo Data (API Issues)**: {simulated_count} symbols
• **Total Analyzed**: {len(symbols)} symbols
• **API Status**: {'✅ Connected' if api_connected else '⚠️ Using Fallback Data'}

## Symbol Processing Summary
• **Original Input**: {raw_input}
• **Cleaned Symbols**: {', '.join(symbols)}
• **Valid Symbols Found**: {len(symbols)}
• **Invalid/Removed**: {removed}

## Investment Recommendations

{_TABLE_HEADER}
{rows}

## Detailed Share Analysis

{details}

## Portfolio Strategy Summary

{strategy}

**Key Considerations:**
• Currency volatility impact on international operations
• Central bank policy shifts affecting interest-sensitive sectors
• Geopolitical developments influencing commodity prices
• Market liquidity and trading volume analysis

**Recommended Actions:**
- BUY recommendations: Consider for long-term positions
- WAIT recommendations: Monitor for better entry opportunities
- Review portfolio allocation quarterly

*This analysis is powered by FinMaster's enhanced API integration with improved error handling and fallback mechanisms.*"""

    @staticmethod
    def _table_row(symbol: str, quote: Quote | None, recommendation: str) -> str:
        if quote is None:
            return f"| **{symbol}** | **N/A** | N/A | N/A | N/A | N/A | N/A | **WAIT** |"

        cur = quote.currency
        price = f"{cur} {money(quote.price)}" + (" ⚠️" if quote.is_simulated else "")
        return (
            f"| **{quote.symbol}** | **{price}** | {quote.market_cap} | {volume_text(quote.volume)} "
            f"| {cur} {money(quote.low_52_week)} - {cur} {money(quote.high_52_week)} "
            f"| {percent(quote.year_performance)}% | {quote.exchange_name} | **{recommendation}** |"
        )

    @staticmethod
    def _technical_lines(quote: Quote, near_low: bool) -> str:
        perf = quote.year_performance
        position = (
            "📉 Currently trading near 52-week lows - potential value opportunity"
            if near_low
            else "📊 Trading within normal range of 52-week performance"
        )
        if perf > 20:
            momentum = "🚀 Strong positive momentum with >20% annual gains"
        elif perf > 0:
            momentum = "📈 Modest positive performance year-over-year"
        elif perf > -10:
            momentum = "⚖️ Slight negative performance within normal market volatility"
        else:
            momentum = "📉 Significant underperformance requiring fundamental analysis"
        return f"{position}\n{momentum}"

    @staticmethod
    def _thesis(quote: Quote, recommendation: str, near_low: bool) -> str:
        price = f"{quote.currency} {money(quote.price)}"
        perf = percent(quote.year_performance)
        volume = volume_text(quote.volume)
        if recommendation != BUY:
            return (
                f"**Investment Caution (WAIT):** Current valuation at {price} appears elevated relative to "
                f"{perf}% annual performance. Market cap of {quote.market_cap} suggests adequate size but "
                "limited near-term catalysts. Recommend monitoring for better entry points below current "
                "levels or fundamental improvements before investment."
            )
        if near_low:
            return (
                f"**Investment Thesis (BUY):** Strong value opportunity with current price near 52-week lows "
                f"at {price}. Annual performance of {perf}% suggests temporary weakness rather than "
                f"fundamental deterioration. Market cap of {quote.market_cap} indicates sufficient liquidity "
                f"with daily volume of {volume}. Recommend accumulation for 2-3 year investment horizon."
            )
        return (
            f"**Investment Thesis (BUY):** Solid fundamentals support current valuation at {price} with "
            f"{perf}% annual performance demonstrating resilience. Market cap of {quote.market_cap} and "
            f"healthy trading volume of {volume} provide confidence in liquidity. Technical indicators and "
            "market positioning favor long-term accumulation."
        )

    @staticmethod
    def _risk_lines(quote: Quote) -> str:
        magnitude = abs(quote.year_performance)
        liquidity = "Low (high volume)" if (quote.volume or 0) > HIGH_VOLUME else "Moderate (lower volume)"
        large_cap = "B" in quote.market_cap and market_cap_billions(quote.market_cap) > 10
        cap_risk = "Low (large cap)" if large_cap else "Moderate (mid/small cap)"
        if magnitude > 30:
            volatility = "High"
        elif magnitude > 15:
            volatility = "Moderate"
        else:
            volatility = "Low"
        return (
            f"• Currency Exposure: {quote.currency} denominated with exchange rate implications\n"
            f"• Liquidity Risk: {liquidity}\n"
            f"• Market Cap Risk: {cap_risk}\n"
            f"• Volatility: {volatility}"
        )

    def _detail_section(self, symbol: str, quote: Quote | None, recommendation: str) -> str:
        if quote is None:
            return f"### {symbol} - Data Unavailable\n**Recommendation: WAIT** - No data available for analysis\n---"

        cur = quote.currency
        price = quote.price or 0.0
        low = quote.low_52_week or 0.0
        near_low = price > 0 and low > 0 and price < low * NEAR_LOW_RATIO
        notice = ""
        if quote.is_simulated:
            notice = (
                "⚠️ **Data Limitation Notice:** API request failed. Analysis based on realistic demo data. \n"
                f"**Error Details:** {quote.error_details}"
            )

        return f"""### {quote.symbol} - {cur} {money(quote.price)} {'⚠️ DEMO' if quote.is_simulated else '✅ LIVE'}
*Exchange: {quote.exchange_name} | Updated: {quote.timestamp}*
*Market Cap: {quote.market_cap} | Volume: {volume_text(quote.volume)}*

**Recommendation: {recommendation}**

**Comprehensive Price Analysis:**
• Current Price: {cur} {money(quote.price)}
• Previous Close: {cur} {money(quote.previous_close)}
• 52-Week High: {cur} {money(quote.high_52_week)}
• 52-Week Low: {cur} {money(quote.low_52_week)}
• 1-Year Performance: {percent(quote.year_performance)}%
• Daily Volume: {volume_text(quote.volume)}
• Market Capitalization: {quote.market_cap}

**Technical Position:**
{self._technical_lines(quote, near_low)}

{self._thesis(quote, recommendation, near_low)}

**Risk Assessment:**
{self._risk_lines(quote)}

{notice}

---"""
