"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Transition metrics
transition_attempts = Counter(
    'transition_attempts_total',
    'Total status transition attempts',
    ['entity', 'result']  # success, conflict, invalid, not_found
)

transition_latency = Histogram(
    'transition_latency_seconds',
    'Status transition latency',
    ['entity'],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

coupling_outcomes = Counter(
    'coupling_outcomes_total',
    'Dispatch to booking propagation outcomes',
    ['edge', 'result']  # applied, skipped
)

# Analytics metrics
analytics_latency = Histogram(
    'analytics_aggregate_latency_seconds',
    'Analytics aggregation latency',
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

analytics_rows_scanned = Counter(
    'analytics_rows_scanned_total',
    'Booking rows scanned by the analytics aggregator'
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
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_transition(entity: str, result: str):
    """Record transition attempt. Result: success, conflict, invalid, not_found"""
    transition_attempts.labels(entity=entity, result=result).inc()

def record_coupling(edge: str, applied: bool):
    """Record whether a dispatch edge propagated to its booking."""
    result = "applied" if applied else "skipped"
    coupling_outcomes.labels(edge=edge, result=result).inc()

def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
