"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Issuance metrics
ticket_issuance = Counter(
    'ticket_issuance_total',
    'Ticket issuance attempts',
    ['result']  # reserved, exhausted, tier_not_found, tier_inactive
)

ticket_issuance_latency = Histogram(
    'ticket_issuance_latency_seconds',
    'Reserve + insert latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Door metrics
ticket_validations = Counter(
    'ticket_validations_total',
    'Ticket validation outcomes',
    ['status']  # valid, invalid, not_found, already_used, cancelled, expired
)

ticket_decode_failures = Counter(
    'ticket_decode_failures_total',
    'Scanned codes rejected before lookup',
    ['reason']
)

ticket_transitions = Counter(
    'ticket_transitions_total',
    'Ticket state transition attempts',
    ['target', 'result']  # target: used/cancelled/expired, result: done/not_found/not_active
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


def record_issuance(result: str):
    ticket_issuance.labels(result=result).inc()


def record_validation(status: str, decode_error: str = None):
    ticket_validations.labels(status=status).inc()
    if decode_error:
        ticket_decode_failures.labels(reason=decode_error).inc()


def record_transition(target: str, result: str):
    ticket_transitions.labels(target=target, result=result).inc()


def record_cache_operation(operation: str, hit: bool):
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
