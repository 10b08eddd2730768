"""Prometheus metric definitions shared across services."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


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
webhook_events_total = Counter(
    "webhook_events_total",
    "Inbound chat webhook events by outcome",
    ["service", "outcome"],
)
push_messages_sent_total = Counter(
    "push_messages_sent_total",
    "Push messages accepted by the gateway",
    ["service"],
)
push_chunks_failed_total = Counter(
    "push_chunks_failed_total",
    "Push gateway calls that failed outright",
    ["service"],
)
device_tokens_deactivated_total = Counter(
    "device_tokens_deactivated_total",
    "Device tokens deactivated after DeviceNotRegistered tickets",
    ["service"],
)
queue_entries_processed_total = Counter(
    "queue_entries_processed_total",
    "Notification queue entries claimed and finalized",
    ["service"],
)
queue_cycle_duration_seconds = Histogram(
    "queue_cycle_duration_seconds",
    "Duration of one claim-and-deliver cycle",
    ["service"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
