from __future__ import annotations

from typing import Any, Callable, Optional

from finmaster.config.settings import ApiConfig
from finmaster.errors import InvalidSymbolsError, QuoteFetchError
from finmaster.integrations.quote_api import CancellationToken, QuoteApiClient, fetch_with_retry
from finmaster.schemas.analysis import AnalysisState, ApiStatus
from finmaster.services.quote_client import QuoteClient, to_float
from finmaster.services.report import ReportGenerator
from finmaster.services.simulation import SimulatedQuoteProvider
from finmaster.services.symbols import clean_and_validate_symbols

CONNECTION_TEST_SYMBOL = "AAPL"
EMPTY_INPUT_MESSAGE = "Please enter at least one share symbol"
NO_VALID_SYMBOLS_MESSAGE = (
    "No valid symbols found. Please enter valid stock symbols (e.g., AAPL, MSFT, JSE:STXRES)"
)


# -- pure state updates -------------------------------------------------------


def update_share_list(state: AnalysisState, share_list: str) -> AnalysisState:
    return state.model_copy(update={"share_list": share_list, "error": ""})


def clear_error(state: AnalysisState) -> AnalysisState:
    return state.model_copy(update={"error": ""})


def update_api_config(state: AnalysisState, **changes: Any) -> AnalysisState:
    config = ApiConfig.model_validate({**state.api_config.model_dump(), **changes})
    return state.model_copy(update={"api_config": config, "api_status": ApiStatus()})


def reset_api_config(state: AnalysisState) -> AnalysisState:
    return state.model_copy(update={"api_config": ApiConfig(), "api_status": ApiStatus()})


def validate_share_list(share_list: str) -> list[str]:
    if not share_list or not share_list.strip():
        raise InvalidSymbolsError(EMPTY_INPUT_MESSAGE)
    symbols = clean_and_validate_symbols(share_list)
    if not symbols:
        raise InvalidSymbolsError(NO_VALID_SYMBOLS_MESSAGE)
    return symbols


def connection_failure_status(message: str) -> ApiStatus:
    status = "error"
    detail = message
    if "CORS" in message or "Network Error" in message:
        detail = f"Network/CORS Error: {message}. Please check API CORS headers or CSP settings."
        status = "warning"
    elif "timeout" in message:
        detail = "Timeout Error: API response took too long. Try again or check API performance."
    elif "Health API Error" in message:
        detail = f"Health Check Failed: {message}. Your /api/health endpoint may be missing."
    return ApiStatus(status=status, message=f"❌ API Connection Failed: {detail}", error=message)


# -- side-effecting steps -----------------------------------------------------


class AnalysisService:
    """Runs connectivity checks and analyses against the proxy named in the state's config."""

    def __init__(
        self,
        *,
        session: Optional[Any] = None,
        simulator: SimulatedQuoteProvider | None = None,
        report_generator: ReportGenerator | None = None,
        sleep_fn: Callable[[float], Any] | None = None,
        max_workers: int = 8,
    ) -> None:
        self.session = session
        self.simulator = simulator or SimulatedQuoteProvider()
        self.report_generator = report_generator or ReportGenerator()
        self.sleep_fn = sleep_fn
        self.max_workers = max_workers

    def _api_client(self, state: AnalysisState) -> QuoteApiClient:
        return QuoteApiClient(state.api_config, session=self.session)

    def _call(self, state: AnalysisState, call: Callable[[], Any], label: str) -> Any:
        return fetch_with_retry(
            call,
            attempts=state.api_config.retry_attempts,
            sleep_fn=self.sleep_fn,
            label=label,
        )

    @staticmethod
    def _error_body(response: Any) -> str:
        return str(getattr(response, "text", "") or "Could not read error response")

    def _check_connection(self, state: AnalysisState) -> str:
        api = self._api_client(state)

        health_response = self._call(state, api.get_health, "health")
        status = int(health_response.status_code)
        if not 200 <= status < 300:
            raise QuoteFetchError(
                f"Health API Error: {status} {getattr(health_response, 'reason', '') or ''}. "
                f"{self._error_body(health_response)}",
                kind="http",
                status_code=status,
            )
        health = health_response.json()
        if not isinstance(health, dict) or health.get("status") != "healthy":
            detail = health.get("error") if isinstance(health, dict) else None
            raise QuoteFetchError(f"API health check failed: {detail or 'Unknown health issue'}", kind="invalid")

        stock_response = self._call(state, lambda: api.get_stock(CONNECTION_TEST_SYMBOL), CONNECTION_TEST_SYMBOL)
        status = int(stock_response.status_code)
        if not 200 <= status < 300:
            raise QuoteFetchError(
                f"Stock API Error: {status} {getattr(stock_response, 'reason', '') or ''}. "
                f"{self._error_body(stock_response)}",
                kind="http",
                status_code=status,
            )
        stock = stock_response.json()
        price = to_float(stock.get("currentPrice")) if isinstance(stock, dict) else None
        if not price:
            raise QuoteFetchError("Invalid stock API response structure - missing price data", kind="invalid")

        return (
            f"✅ API Connected! Health: {health['status']}, Yahoo API: {health.get('yahooFinanceAPI')}, "
            f"Test price for {CONNECTION_TEST_SYMBOL}: {price:.2f}"
        )

    def test_api_connection(self, state: AnalysisState) -> AnalysisState:
        try:
            message = self._check_connection(state)
        except (QuoteFetchError, ValueError, TypeError) as exc:
            print(f"[ANALYSIS][api_test_failed] base_url={state.api_config.base_url} error={exc}", flush=True)
            return state.model_copy(
                update={"api_status": connection_failure_status(str(exc)), "is_api_working": False}
            )

        print(f"[ANALYSIS][api_test_ok] base_url={state.api_config.base_url}", flush=True)
        return state.model_copy(
            update={"api_status": ApiStatus(status="success", message=message), "is_api_working": True}
        )

    def analyze_shares(self, state: AnalysisState, token: CancellationToken | None = None) -> AnalysisState:
        try:
            symbols = validate_share_list(state.share_list)
        except InvalidSymbolsError as exc:
            return state.model_copy(update={"error": str(exc)})

        state = state.model_copy(update={"is_analyzing": True, "error": ""})
        print(f"[ANALYSIS][start] symbols={','.join(symbols)}", flush=True)
        try:
            if not state.is_api_working:
                state = self.test_api_connection(state)

            quote_client = QuoteClient(
                api_client=self._api_client(state),
                simulator=self.simulator,
                sleep_fn=self.sleep_fn,
                max_workers=self.max_workers,
            )
            quotes = quote_client.get_quotes(symbols, token)
            report = self.report_generator.generate(
                symbols,
                state.share_list,
                quotes,
                api_connected=state.is_api_working,
            )
        except Exception as exc:
            print(f"[ANALYSIS][failed] error={exc}", flush=True)
            return state.model_copy(update={"is_analyzing": False, "error": f"Analysis failed: {exc}"})

        simulated = sum(1 for q in quotes.values() if q.is_simulated)
        return state.model_copy(
            update={
                "is_analyzing": False,
                "analysis": report,
                "symbols": symbols,
                "live_count": len(quotes) - simulated,
                "simulated_count": simulated,
            }
        )
