from __future__ import annotations

import time
from typing import Callable

from fastapi import Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, Info, generate_latest

from gimerr.core.settings import S

METRICS_ENABLED = S.metrics_enabled

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_ERRORS = Counter(
    "http_request_errors_total",
    "Total HTTP requests resulting in server errors",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
)
IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "In-progress HTTP requests",
    ["method", "path"],
)
WALLET_SECONDS_CONSUMED = Counter(
    "wallet_seconds_consumed_total",
    "Highlight seconds debited from wallets by lazy sync",
)
WALLET_DEPLETIONS = Counter(
    "wallet_depletions_total",
    "Syncs that ran a wallet dry and force-deactivated highlights",
)
HIGHLIGHT_TRANSITIONS = Counter(
    "highlight_transitions_total",
    "User-driven highlight state changes",
    ["transition"],
)
SETTLEMENTS = Counter(
    "checkout_settlements_total",
    "Checkout webhook settlements by outcome",
    ["kind", "outcome"],
)
PAYOUT_ROWS = Counter(
    "partner_payout_rows_total",
    "Partner payout rows written at settlement",
    ["role"],
)
UPTIME_SECONDS = Gauge(
    "app_uptime_seconds",
    "Application uptime in seconds",
)
APP_INFO = Info(
    "app",
    "Application metadata",
)

_START_TIME = time.monotonic()


def _route_path(request: Request) -> str:
    route = request.scope.get("route")
    if route and getattr(route, "path", None):
        return route.path
    return request.url.path


def record_consumption(seconds: int) -> None:
    WALLET_SECONDS_CONSUMED.inc(seconds)


def record_depletion() -> None:
    WALLET_DEPLETIONS.inc()


def record_highlight_transition(transition: str) -> None:
    HIGHLIGHT_TRANSITIONS.labels(transition=transition).inc()


def record_settlement(kind: str, outcome: str) -> None:
    SETTLEMENTS.labels(kind=kind, outcome=outcome).inc()


def record_payout_row(role: str) -> None:
    PAYOUT_ROWS.labels(role=role).inc()


async def metrics_middleware(request: Request, call_next: Callable[[Request], Response]) -> Response:
    path = _route_path(request)
    method = request.method
    start = time.perf_counter()
    IN_PROGRESS.labels(method=method, path=path).inc()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        IN_PROGRESS.labels(method=method, path=path).dec()
        REQUEST_LATENCY.labels(method=method, path=path).observe(time.perf_counter() - start)
        REQUEST_COUNT.labels(method=method, path=path, status=str(status_code)).inc()
        if status_code >= 500:
            REQUEST_ERRORS.labels(method=method, path=path, status=str(status_code)).inc()


def set_app_info(name: str, version: str) -> None:
    APP_INFO.info({"name": name, "version": version})


def metrics_endpoint() -> Response:
    UPTIME_SECONDS.set(time.monotonic() - _START_TIME)
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
