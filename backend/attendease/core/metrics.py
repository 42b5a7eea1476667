"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Booking metrics
booking_attempts = Counter(
    'booking_attempts_total',
    'Total booking creation attempts',
    ['status']  # success, seat_conflict, user_already_booked, rejected, contention
)

booking_latency = Histogram(
    'booking_latency_seconds',
    'Booking creation latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

lifecycle_transitions = Counter(
    'booking_transitions_total',
    'Booking state transitions',
    ['transition']  # created, checked_in, checked_out, cancelled
)

lifecycle_rejections = Counter(
    'booking_transition_rejections_total',
    'Booking transitions refused by a lifecycle guard',
    ['transition']
)

# Database metrics
db_retries = Counter(
    'db_retry_attempts_total',
    'Seat and user write-slot retries due to version conflicts'
)

# Occupancy metrics
occupancy_sync_failures = Counter(
    'seat_occupancy_sync_failures_total',
    'Occupancy flag writes that failed after a committed booking change'
)

occupancy_drift = Counter(
    'seat_occupancy_drift_total',
    'Seats whose occupancy flag was corrected by reconciliation'
)

# QR metrics
qr_tokens = Counter(
    'qr_tokens_total',
    'QR token operations',
    ['operation', 'result']  # issue/resolve, ok/malformed/wrong_type
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_booking_attempt(status: str):
    """Record booking attempt. Status: success, seat_conflict, user_already_booked, rejected, contention"""
    booking_attempts.labels(status=status).inc()


def record_transition(transition: str):
    lifecycle_transitions.labels(transition=transition).inc()


def record_rejection(transition: str):
    lifecycle_rejections.labels(transition=transition).inc()


def record_qr_operation(operation: str, result: str):
    qr_tokens.labels(operation=operation, result=result).inc()


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
