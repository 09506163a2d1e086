from __future__ import annotations

from contextlib import contextmanager
from time import perf_counter

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import Response

REQUESTS_TOTAL = Counter(
    "total_requests",
    "Total HTTP requests",
    labelnames=("method", "path", "status"),
)
REQUEST_LATENCY_SECONDS = Histogram(
    "request_latency_seconds",
    "HTTP request latency in seconds",
    labelnames=("method", "path"),
)
DB_QUERY_DURATION_SECONDS = Histogram(
    "db_query_duration_seconds",
    "Database query duration in seconds",
    labelnames=("operation",),
)
WEBHOOK_EVENTS_TOTAL = Counter(
    "webhook_events_total",
    "Billing webhook events by type and reconciliation outcome",
    labelnames=("event_type", "outcome"),
)
WEBHOOK_HANDLER_LATENCY_SECONDS = Histogram(
    "webhook_handler_latency_seconds",
    "Time spent applying a billing webhook event",
    labelnames=("event_type",),
)
WEBHOOK_SIGNATURE_FAILURES_TOTAL = Counter(
    "webhook_signature_failures_total",
    "Rejected billing webhook deliveries by reason",
    labelnames=("reason",),
)


def record_request(method: str, path: str, status_code: int, duration_seconds: float) -> None:
    REQUESTS_TOTAL.labels(method=method, path=path, status=str(status_code)).inc()
    REQUEST_LATENCY_SECONDS.labels(method=method, path=path).observe(duration_seconds)


def observe_db_query(duration_seconds: float, operation: str = "sql") -> None:
    DB_QUERY_DURATION_SECONDS.labels(operation=operation).observe(duration_seconds)


def record_webhook_outcome(event_type: str, outcome: str) -> None:
    WEBHOOK_EVENTS_TOTAL.labels(event_type=event_type, outcome=outcome).inc()


def record_signature_failure(reason: str) -> None:
    WEBHOOK_SIGNATURE_FAILURES_TOTAL.labels(reason=reason).inc()


@contextmanager
def measure_handler(event_type: str):
    started_at = perf_counter()
    try:
        yield
    finally:
        WEBHOOK_HANDLER_LATENCY_SECONDS.labels(event_type=event_type).observe(perf_counter() - started_at)


def metrics_response() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
