from __future__ import annotations

import time
from typing import Callable, Optional

from fastapi import Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, Info, generate_latest

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
    ["method"],
)
WEBHOOK_EVENTS = Counter(
    "stripe_webhook_events_total",
    "Stripe webhook events received",
    ["event_type", "outcome"],
)
SUBSCRIPTION_CHANGES = Counter(
    "subscription_status_changes_total",
    "Subscription status changes applied",
    ["status"],
)
LEDGER_ENTRIES = Counter(
    "ledger_entries_total",
    "Ledger transactions written",
    ["type", "status"],
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
    # unmatched paths would otherwise explode label cardinality
    return "unmatched"


def record_webhook_event(event_type: str, outcome: str) -> None:
    WEBHOOK_EVENTS.labels(event_type=event_type, outcome=outcome).inc()


def record_subscription_change(status: str) -> None:
    SUBSCRIPTION_CHANGES.labels(status=status).inc()


def record_ledger_entry(transaction: Optional[dict]) -> None:
    if transaction:
        LEDGER_ENTRIES.labels(type=transaction["type"], status=transaction["status"]).inc()


async def metrics_middleware(request: Request, call_next: Callable[[Request], Response]) -> Response:
    method = request.method
    start = time.perf_counter()
    status_code = 500
    IN_PROGRESS.labels(method=method).inc()
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        # the route is only resolved once the router has run
        path = _route_path(request)
        IN_PROGRESS.labels(method=method).dec()
        elapsed = time.perf_counter() - start
        REQUEST_LATENCY.labels(method=method, path=path).observe(elapsed)
        REQUEST_COUNT.labels(method=method, path=path, status=str(status_code)).inc()
        if status_code >= 500:
            REQUEST_ERRORS.labels(method=method, path=path, status=str(status_code)).inc()


def set_app_info(name: str, version: str) -> None:
    APP_INFO.info({"name": name, "version": version})


def metrics_endpoint() -> Response:
    UPTIME_SECONDS.set(time.monotonic() - _START_TIME)
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
