from __future__ import annotations


class UpstreamError(Exception):
    """Failure talking to the upstream quote provider."""

    http_status = 500
    label = "Internal server error"

    def __init__(self, message: str, *, symbol: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.symbol = symbol


class SymbolNotFoundError(UpstreamError):
    http_status = 404
    label = "Symbol not found"


class NoMarketDataError(SymbolNotFoundError):
    label = "No market data"


class UpstreamTimeoutError(UpstreamError):
    http_status = 408
    label = "Request timeout"


class UpstreamUnavailableError(UpstreamError):
    http_status = 503
    label = "Service unavailable"


class MalformedUpstreamResponseError(UpstreamError):
    label = "Malformed upstream response"


class UpstreamHTTPError(UpstreamError):
    def __init__(self, message: str, *, status_code: int, symbol: str | None = None) -> None:
        super().__init__(message, symbol=symbol)
        self.status_code = status_code


class QuoteFetchError(Exception):
    """Client-side quote retrieval failure; ``kind`` is timeout|network|http|invalid|cancelled."""

    def __init__(self, message: str, *, kind: str = "error", status_code: int | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code


class InvalidSymbolsError(ValueError):
    pass
