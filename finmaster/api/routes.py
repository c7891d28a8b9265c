import re
from datetime import datetime, timezone

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from finmaster.errors import InvalidSymbolsError, UpstreamError
from finmaster.schemas.analysis import AnalysisState
from finmaster.schemas.health import HealthStatus
from finmaster.schemas.quote import ErrorBody, StockQuoteResponse
from finmaster.services.analysis import validate_share_list
from finmaster.services.symbols import count_raw_symbols

router = APIRouter()

API_VERSION = "1.0.0"

_PROXY_SYMBOL = re.compile(r"^[A-Z]{1,6}(\.[A-Z]{1,3})?$")

_STOCK_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Requested-With, Accept",
    "Access-Control-Max-Age": "86400",
}
_GET_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, X-Requested-With",
}
_STOCK_CACHE_CONTROL = "public, s-maxage=60, stale-while-revalidate=300"

_REJECTED_METHODS = ["POST", "PUT", "DELETE", "PATCH"]


def _error(
    status_code: int, error: str, message: str, *, symbol: str | None = None, headers=None
) -> JSONResponse:
    body = ErrorBody(error=error, message=message, symbol=symbol).model_dump(exclude_none=True)
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def _method_not_allowed(headers: dict) -> JSONResponse:
    return _error(405, "Method not allowed", "Only GET requests are supported", headers=headers)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _fetch_stock(symbol: str | None, request: Request) -> JSONResponse:
    if not symbol or not isinstance(symbol, str):
        return _error(
            400,
            "Invalid symbol",
            "Symbol parameter is required and must be a string",
            headers=_STOCK_CORS_HEADERS,
        )

    clean_symbol = symbol.strip().upper()
    if not _PROXY_SYMBOL.match(clean_symbol):
        return _error(
            400,
            "Invalid symbol format",
            "Symbol must be 1-6 letters, optionally followed by .XXX",
            symbol=clean_symbol,
            headers=_STOCK_CORS_HEADERS,
        )

    client = request.app.state.yahoo_client
    print(f"[PROXY][fetch] symbol={clean_symbol}", flush=True)
    try:
        flat = client.get_quote(clean_symbol)
    except UpstreamError as exc:
        print(
            f"[PROXY][upstream_error] symbol={clean_symbol} status={exc.http_status} "
            f"type={type(exc).__name__} error={exc.message}",
            flush=True,
        )
        return _error(exc.http_status, exc.label, exc.message, symbol=clean_symbol, headers=_STOCK_CORS_HEADERS)

    body = StockQuoteResponse.model_validate(flat)
    print(f"[PROXY][fetch_ok] symbol={clean_symbol} price={body.current_price}", flush=True)
    return JSONResponse(
        content=body.model_dump(by_alias=True),
        headers={**_STOCK_CORS_HEADERS, "Cache-Control": _STOCK_CACHE_CONTROL},
    )


@router.get("/stock/{symbol}")
def get_stock(symbol: str, request: Request):
    return _fetch_stock(symbol, request)


@router.get("/stock")
def get_stock_by_query(request: Request, symbol: str | None = None):
    return _fetch_stock(symbol, request)


@router.options("/stock/{symbol}")
@router.options("/stock")
def stock_preflight():
    return Response(status_code=200, headers=_STOCK_CORS_HEADERS)


@router.api_route("/stock/{symbol}", methods=_REJECTED_METHODS)
@router.api_route("/stock", methods=_REJECTED_METHODS)
def stock_method_not_allowed():
    return _method_not_allowed(_STOCK_CORS_HEADERS)


@router.get("/health")
def get_health(request: Request):
    client = request.app.state.yahoo_client
    check_symbol = request.app.state.get_settings().FINMASTER_HEALTH_CHECK_SYMBOL
    error = None
    try:
        connected = client.check_reachable(check_symbol)
    except UpstreamError as exc:
        connected = False
        error = exc.message

    status = HealthStatus(
        yahoo_finance_api="connected" if connected else "error",
        timestamp=_now_iso(),
        version=API_VERSION,
        error=error,
    )
    print(f"[HEALTH][check] symbol={check_symbol} status={status.yahoo_finance_api}", flush=True)
    return JSONResponse(
        content=status.model_dump(by_alias=True, exclude_none=True),
        headers=_GET_CORS_HEADERS,
    )


@router.options("/health")
def health_preflight():
    return Response(status_code=200, headers=_GET_CORS_HEADERS)


@router.api_route("/health", methods=_REJECTED_METHODS)
def health_method_not_allowed():
    return _method_not_allowed(_GET_CORS_HEADERS)


@router.get("/analysis")
def get_analysis(request: Request, symbols: str = ""):
    try:
        validate_share_list(symbols)
    except InvalidSymbolsError as exc:
        return _error(400, "Invalid symbols", str(exc), headers=_GET_CORS_HEADERS)

    service = request.app.state.analysis_service
    state = AnalysisState(share_list=symbols, api_config=request.app.state.get_settings().api_config())
    state = service.analyze_shares(state)
    if state.error:
        return _error(500, "Analysis failed", state.error, headers=_GET_CORS_HEADERS)

    return JSONResponse(
        content={
            "symbols": state.symbols,
            "invalidCount": count_raw_symbols(symbols) - len(state.symbols),
            "liveCount": state.live_count,
            "simulatedCount": state.simulated_count,
            "apiStatus": state.api_status.model_dump(),
            "report": state.analysis,
        },
        headers=_GET_CORS_HEADERS,
    )
