from __future__ import annotations

import threading
from typing import Any, Callable, Optional

import requests


def call_with_deadline(call: Callable[[], Any], timeout: Optional[float], *, name: str = "upstream-call") -> Any:
    """Run ``call`` on a daemon thread and raise ``requests.Timeout`` if it has not
    returned after ``timeout`` seconds of wall-clock time.

    The ``timeout=`` passed to ``requests`` bounds each socket read only; a peer
    that trickles bytes keeps resetting it. The abandoned worker finishes on its own.
    """
    if timeout is None:
        return call()

    outcome: dict = {}
    done = threading.Event()

    def worker() -> None:
        try:
            outcome["value"] = call()
        except Exception as exc:
            outcome["error"] = exc
        finally:
            done.set()

    threading.Thread(target=worker, name=name, daemon=True).start()
    if not done.wait(timeout):
        print(f"[UPSTREAM][deadline_exceeded] call={name} timeout_sec={timeout}", flush=True)
        raise requests.Timeout(f"No complete response within {timeout}s")
    if "error" in outcome:
        raise outcome["error"]
    return outcome["value"]
