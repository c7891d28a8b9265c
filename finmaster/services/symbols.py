from __future__ import annotations

import re

_QUOTES_AND_SPACE = re.compile(r"['\"\s]")
_DISALLOWED = re.compile(r"[^A-Za-z0-9:.]")
_SYMBOL = re.compile(r"^[A-Z]{2,6}$")
_MARKET_SYMBOL = re.compile(r"^[A-Z]{2,6}:[A-Z]{2,6}$")

# market qualifier -> Yahoo suffix ("" means the bare ticker)
MARKET_SUFFIXES = {
    "JSE": ".JO",
    "LON": ".L",
    "TSX": ".TO",
    "ASX": ".AX",
    "NYSE": "",
    "NASDAQ": "",
}


def clean_symbol(raw: str) -> str | None:
    """Return the upper-cased symbol, or None when the piece is malformed.

    Quotes and whitespace are stripped; any other punctuation marks the piece
    as malformed rather than being silently removed.
    """
    cleaned = _QUOTES_AND_SPACE.sub("", raw)
    if _DISALLOWED.search(cleaned):
        return None
    cleaned = cleaned.upper()
    if _SYMBOL.match(cleaned) or _MARKET_SYMBOL.match(cleaned):
        return cleaned
    return None


def clean_and_validate_symbols(raw: object) -> list[str]:
    """Split comma-separated input into unique, upper-cased, valid ticker symbols."""
    if not raw or not isinstance(raw, str):
        return []

    out: list[str] = []
    seen: set[str] = set()
    for piece in raw.split(","):
        value = clean_symbol(piece)
        if value is None or value in seen:
            continue
        seen.add(value)
        out.append(value)
    return out


def count_raw_symbols(raw: str) -> int:
    return len(raw.split(",")) if isinstance(raw, str) else 0


def to_provider_symbol(symbol: str) -> str:
    """Translate ``MARKET:TICKER`` into the upstream spelling, e.g. JSE:STXRES -> STXRES.JO."""
    market, sep, ticker = symbol.partition(":")
    if not sep:
        return symbol
    return ticker + MARKET_SUFFIXES.get(market, "")
