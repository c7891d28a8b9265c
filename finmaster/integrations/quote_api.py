from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

import requests

from finmaster.config.settings import ApiConfig
from finmaster.errors import QuoteFetchError
from finmaster.integrations.deadline import call_with_deadline

PENDING = "PENDING"
SUCCESS = "SUCCESS"
TIMEOUT = "TIMEOUT"
ERROR = "ERROR"

TIMEOUT_MESSAGE = "Request timeout - API took too long to respond"
NETWORK_MESSAGE = "Network Error - Check CORS settings or API availability"


class CancellationToken:
    """Shared flag that stops retry loops and interrupts their backoff waits."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        return self._event.wait(seconds)


class CallAttempt:
    """State of one outbound attempt: PENDING -> SUCCESS | TIMEOUT | ERROR."""

    def __init__(self, number: int) -> None:
        self.number = number
        self.state = PENDING
        self.error: Exception | None = None
        self.started_at = time.monotonic()
        self.finished_at: float | None = None

    def _finish(self, state: str, error: Exception | None = None) -> None:
        if self.state != PENDING:
            raise RuntimeError(f"attempt already finished: {self.state}")
        self.state = state
        self.error = error
        self.finished_at = time.monotonic()

    def succeed(self) -> None:
        self._finish(SUCCESS)

    def time_out(self, error: Exception) -> None:
        self._finish(TIMEOUT, error)

    def fail(self, error: Exception) -> None:
        self._finish(ERROR, error)


def classify_error(exc: Exception) -> QuoteFetchError:
    if isinstance(exc, QuoteFetchError):
        return exc
    if isinstance(exc, requests.Timeout):
        return QuoteFetchError(TIMEOUT_MESSAGE, kind="timeout")
    if isinstance(exc, requests.ConnectionError):
        return QuoteFetchError(NETWORK_MESSAGE, kind="network")
    return QuoteFetchError(str(exc) or type(exc).__name__, kind="error")


def fetch_with_retry(
    call: Callable[[], Any],
    *,
    attempts: int,
    sleep_fn: Optional[Callable[[float], Any]] = None,
    token: Optional[CancellationToken] = None,
    backoff_sec: float = 1.0,
    label: str = "",
) -> Any:
    """Run ``call`` up to ``attempts`` times, waiting ``backoff_sec * n`` after failed attempt n.

    Only transport failures (``requests.RequestException``) are retried. The last
    failure is raised as a classified :class:`QuoteFetchError`.
    """
    attempts = max(int(attempts), 1)
    history: list[CallAttempt] = []

    for number in range(1, attempts + 1):
        if token is not None and token.cancelled:
            raise QuoteFetchError("Request cancelled", kind="cancelled")

        attempt = CallAttempt(number)
        history.append(attempt)
        try:
            result = call()
        except requests.Timeout as exc:
            attempt.time_out(exc)
        except requests.RequestException as exc:
            attempt.fail(exc)
        else:
            attempt.succeed()
            return result

        if number == attempts:
            break

        delay = backoff_sec * number
        print(
            f"[QUOTE][retry] target={label} attempt={number} state={attempt.state} "
            f"delay_sec={delay} error={attempt.error}",
            flush=True,
        )
        if sleep_fn is not None:
            sleep_fn(delay)
            if token is not None and token.cancelled:
                raise QuoteFetchError("Request cancelled", kind="cancelled")
        elif token is not None:
            if token.wait(delay):
                raise QuoteFetchError("Request cancelled", kind="cancelled")
        else:
            time.sleep(delay)

    last = history[-1]
    raise classify_error(last.error) from last.error


class QuoteApiClient:
    """HTTP client for the FinMaster proxy (``/api/health`` and ``/api/stock/{symbol}``)."""

    def __init__(self, config: Optional[ApiConfig] = None, session: Optional[Any] = None) -> None:
        self.config = config or ApiConfig()
        self.session = session or requests

    def headers(self) -> Dict[str, str]:
        mode = self.config.cors_mode
        out = {"Accept": "application/json"}
        if mode in {"cors", "same-origin"}:
            out["Content-Type"] = "application/json"
        if mode == "cors":
            out["X-Requested-With"] = "XMLHttpRequest"
        return out

    def _get(self, path: str) -> Any:
        timeout = self.config.timeout_sec
        return call_with_deadline(
            lambda: self.session.get(f"{self.config.base_url}{path}", headers=self.headers(), timeout=timeout),
            timeout,
            name=f"proxy-get{path}",
        )

    def get_health(self) -> Any:
        return self._get("/api/health")

    def get_stock(self, symbol: str) -> Any:
        return self._get(f"/api/stock/{quote(symbol, safe='')}")
