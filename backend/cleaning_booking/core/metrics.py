"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# Booking metrics
booking_operations = Counter(
    'booking_operations_total',
    'Booking lifecycle operations',
    ['operation', 'result']  # create/update/cancel, success/rejected
)

booking_number_retries = Counter(
    'booking_number_retry_attempts_total',
    'Booking number sequence retries after a concurrent first-of-day insert'
)

# Payment metrics
payment_events = Counter(
    'payment_events_total',
    'Payment state changes',
    ['source', 'outcome']  # verify/webhook, success/failed/ignored/duplicate
)

webhook_deliveries = Counter(
    'payment_webhook_deliveries_total',
    'Webhook deliveries received',
    ['event', 'result']  # applied, ignored, rejected
)

refunds_processed = Counter(
    'refunds_processed_total',
    'Refunds processed',
    ['kind']  # full, partial, duplicate
)

gateway_latency = Histogram(
    'payment_gateway_latency_seconds',
    'Outbound payment gateway call latency',
    ['operation'],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

gateway_errors = Counter(
    'payment_gateway_errors_total',
    'Payment gateway call failures',
    ['operation', 'kind']  # timeout, unavailable, rejected
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_booking_operation(operation: str, success: bool):
    result = "success" if success else "rejected"
    booking_operations.labels(operation=operation, result=result).inc()


def record_payment_event(source: str, outcome: str):
    """Source: verify, webhook. Outcome: success, failed, ignored, duplicate."""
    payment_events.labels(source=source, outcome=outcome).inc()


def record_webhook(event: str, result: str):
    webhook_deliveries.labels(event=event or "unknown", result=result).inc()


def record_cache_operation(operation: str, hit: bool):
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
