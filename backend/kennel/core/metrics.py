"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Reservation ledger metrics
reservation_attempts = Counter(
    'reservation_attempts_total',
    'Total reservation (hold) attempts',
    ['service', 'result']  # reserved, duplicate, full
)

reservation_transitions = Counter(
    'reservation_transitions_total',
    'Reservations leaving the active state',
    ['status']  # committed, released, expired
)

reserve_latency = Histogram(
    'reservation_latency_seconds',
    'Reserve call latency including the capacity check',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Sweeper metrics
sweeper_runs = Counter(
    'reservation_sweeper_runs_total',
    'Sweeper iterations',
    ['result']  # success, failure
)

sweeper_expired = Counter(
    'reservation_sweeper_expired_total',
    'Expired holds released by the sweeper'
)

sweeper_duration = Histogram(
    'reservation_sweeper_duration_seconds',
    'Duration of one sweeper iteration',
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
)

# Payment reconciliation metrics
payment_events = Counter(
    'payment_events_total',
    'Payment outcomes consumed by the reconciliation adapter',
    ['kind', 'outcome']  # kind: succeeded, failed, abandoned
)

payment_hold_mismatches = Counter(
    'payment_hold_mismatch_total',
    'Payments that succeeded after their hold was released or expired'
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set/invalidate, hit/miss/ok/error
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_reservation_attempt(service: str, result: str):
    """Record reserve outcome. Result: reserved, duplicate, full"""
    reservation_attempts.labels(service=service, result=result).inc()


def record_transition(status: str):
    reservation_transitions.labels(status=status).inc()


def record_sweep(succeeded: bool, expired: int = 0):
    sweeper_runs.labels(result="success" if succeeded else "failure").inc()
    if expired:
        sweeper_expired.inc(expired)


def record_payment_event(kind: str, outcome: str):
    """Record reconciliation outcome, e.g. (succeeded, committed)."""
    payment_events.labels(kind=kind, outcome=outcome).inc()


def record_cache_operation(operation: str, result: str):
    cache_operations.labels(operation=operation, result=result).inc()
