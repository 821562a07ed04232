"""Prometheus metric definitions shared across services."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


payment_requests_total = Counter(
    "payment_requests_total",
    "Total payment operations requested",
    ["service", "operation"],
)
payment_status_transitions_total = Counter(
    "payment_status_transitions_total",
    "Persisted payment status writes",
    ["service", "from_state", "to_state"],
)
webhook_outcomes_total = Counter(
    "webhook_outcomes_total",
    "Provider webhook outcomes",
    ["service", "outcome"],
)
token_validation_total = Counter(
    "token_validation_total",
    "Bearer token validations by verdict source and result",
    ["service", "source", "result"],
)
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
