"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# HTTP metrics
http_requests = Counter(
    'washq_http_requests_total',
    'HTTP requests by route template and status class',
    ['method', 'route', 'status']
)

# Booking metrics
booking_attempts = Counter(
    'washq_booking_attempts_total',
    'Total booking attempts',
    ['outcome']  # booked, joined_queue, already_booked, unavailable, not_found, error
)

booking_latency = Histogram(
    'washq_booking_latency_seconds',
    'Booking request latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

machine_transitions = Counter(
    'washq_machine_transitions_total',
    'Machine status transitions committed',
    ['status']
)

# Store metrics
store_operations = Counter(
    'washq_store_operations_total',
    'Document store operations',
    ['operation', 'result']  # result: ok, error
)

# Locking metrics
lock_wait_latency = Histogram(
    'washq_lock_wait_seconds',
    'Time spent waiting for a machine or user lock',
    buckets=[0.0001, 0.001, 0.01, 0.1, 0.5, 1.0, 2.5, 5.0]
)

redis_connection_errors = Counter(
    'washq_redis_connection_errors_total',
    'Redis connection errors'
)

redis_circuit_breaker_open = Gauge(
    'washq_redis_circuit_breaker_open',
    'Redis lock circuit breaker state (1=open, 0=closed)'
)

# Cache metrics
cache_operations = Counter(
    'washq_cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)

# Notifications
notifications_emitted = Counter(
    'washq_notifications_emitted_total',
    'Machine-ready notifications emitted'
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_booking_attempt(outcome: str):
    booking_attempts.labels(outcome=outcome).inc()


def record_store_operation(operation: str, ok: bool):
    store_operations.labels(operation=operation, result="ok" if ok else "error").inc()


def record_cache_operation(operation: str, hit: bool):
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
