from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable

import httpx


@dataclass(frozen=True)
class HttpResult:
    ok: bool
    status_code: int | None
    message: str
    latency_ms: float
    body: Any = None


def _elapsed_ms(start: float) -> float:
    return round((time.time() - start) * 1000.0, 2)


def http_operation(
    url: str,
    timeout_s: float = 2.0,
    method: str = "GET",
    transport: httpx.BaseTransport | None = None,
) -> Callable[[Any], HttpResult]:
    """Build an operation that calls ``url`` and reports the outcome.

    Any 2xx response is a success. Connection errors and timeouts come back
    as ``ok=False`` instead of raising, so pair the operation with
    ``http_failed`` as the executor's failure predicate.
    """

    def call(payload: Any = None) -> HttpResult:
        start = time.time()
        try:
            with httpx.Client(timeout=timeout_s, follow_redirects=False, transport=transport) as client:
                if payload is None:
                    resp = client.request(method, url)
                else:
                    resp = client.request(method, url, json=payload)
        except (httpx.ConnectError, httpx.TimeoutException):
            return HttpResult(False, None, "No response", _elapsed_ms(start))
        except httpx.HTTPError as e:
            return HttpResult(False, None, f"Error: {type(e).__name__}: {e}", _elapsed_ms(start))

        latency_ms = _elapsed_ms(start)
        try:
            body = resp.json()
        except ValueError:
            body = resp.text
        if not resp.is_success:
            return HttpResult(False, resp.status_code, f"HTTP {resp.status_code}", latency_ms, body)
        return HttpResult(True, resp.status_code, "OK", latency_ms, body)

    return call


def http_failed(result: Any) -> bool:
    return isinstance(result, HttpResult) and not result.ok
