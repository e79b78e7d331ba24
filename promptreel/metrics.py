from __future__ import annotations

import time
from typing import Callable

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
    ["method", "path"],
)
UPTIME_SECONDS = Gauge(
    "app_uptime_seconds",
    "Application uptime in seconds",
)
APP_INFO = Info(
    "app",
    "Application metadata",
)
LOGIN_SUCCESSES = Counter(
    "login_success_total",
    "Total successful sign-ins",
)
LOGIN_FAILURES = Counter(
    "login_failure_total",
    "Total failed sign-ins",
)
SIGNUPS = Counter(
    "signup_total",
    "Total sign-ups by outcome",
    ["outcome"],
)
WEBHOOK_EVENTS = Counter(
    "webhook_events_total",
    "Webhook deliveries by classification",
    ["kind", "event_kind"],
)
WEBHOOK_FAILURES = Counter(
    "webhook_failures_total",
    "Webhook failures by pipeline stage",
    ["stage"],
)
SUBSCRIPTION_CHANGES = Counter(
    "subscription_changes_total",
    "Subscriber flag mutations by source and outcome",
    ["source", "active", "outcome"],
)
NAME_CACHE_LOOKUPS = Counter(
    "name_cache_lookups_total",
    "Display name cache lookups",
    ["result"],
)

_START_TIME = time.monotonic()


def _route_path(request: Request) -> str:
    route = request.scope.get("route")
    if route and getattr(route, "path", None):
        return route.path
    return request.url.path


def record_auth_event(event: str) -> None:
    if event == "login_success":
        LOGIN_SUCCESSES.inc()
    elif event == "login_failure":
        LOGIN_FAILURES.inc()


def record_subscription_change(source: str, active: bool, outcome: str) -> None:
    SUBSCRIPTION_CHANGES.labels(source=source, active=str(active).lower(), outcome=outcome).inc()


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
