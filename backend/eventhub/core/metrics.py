"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Application workflow metrics
application_attempts = Counter(
    'application_attempts_total',
    'Application create attempts',
    ['result']  # pending, accepted, or the error code that rejected it
)

application_transitions = Counter(
    'application_transitions_total',
    'Application status transitions',
    ['status']  # accepted, rejected, cancelled, deleted
)

# Notification metrics
notifications_dispatched = Counter(
    'notifications_dispatched_total',
    'Notification jobs processed by the dispatcher',
    ['kind', 'result']  # result: ok, error, dropped
)

notification_queue_depth = Gauge(
    'notification_queue_depth',
    'Notification jobs waiting to be dispatched'
)

realtime_connections = Gauge(
    'realtime_connections',
    'Users with at least one open notification socket'
)

# Database metrics
db_conflicts = Counter(
    'db_conditional_update_conflicts_total',
    'Conditional updates that matched no row',
    ['operation']  # reserve_slot, resolve_application
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
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_application_attempt(result: str):
    """Record application create outcome: pending, accepted or an error code."""
    application_attempts.labels(result=result).inc()


def record_application_transition(status: str):
    application_transitions.labels(status=status).inc()


def record_notification(kind: str, result: str):
    notifications_dispatched.labels(kind=kind, result=result).inc()


def record_db_conflict(operation: str):
    db_conflicts.labels(operation=operation).inc()


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
