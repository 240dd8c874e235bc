"""
Prometheus metrics for the reservation engine, exposed at /metrics.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

booking_attempts = Counter(
    'shuttle_booking_attempts_total',
    'Booking attempts by outcome',
    ['outcome']  # success, seat_taken, no_seats_available, duplicate_booking, ...
)

booking_latency = Histogram(
    'shuttle_booking_latency_seconds',
    'Time spent inside the booking engine',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

cancellation_attempts = Counter(
    'shuttle_cancellation_attempts_total',
    'Cancellation attempts by outcome',
    ['outcome']
)

storage_conflicts = Counter(
    'shuttle_storage_conflicts_total',
    'Commits rejected by a partial unique index',
    ['constraint']
)

notifications = Counter(
    'shuttle_notifications_total',
    'Notification records by kind and result',
    ['kind', 'result']  # result: sent, stored, failed
)

reminders_dispatched = Counter(
    'shuttle_reminders_dispatched_total',
    'Reminders handed to the push transport by a sweep'
)

cache_lookups = Counter(
    'shuttle_trip_cache_lookups_total',
    'Trip listing cache lookups',
    ['result']  # hit, miss, error
)


def metrics_endpoint() -> Response:
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_booking_attempt(outcome: str):
    """Outcome is "success" or the error kind that rejected the booking."""
    booking_attempts.labels(outcome=outcome).inc()


def record_cancellation(outcome: str):
    cancellation_attempts.labels(outcome=outcome).inc()


def record_storage_conflict(constraint: str):
    storage_conflicts.labels(constraint=constraint).inc()


def record_notification(kind: str, result: str):
    notifications.labels(kind=kind, result=result).inc()


def record_cache_lookup(result: str):
    cache_lookups.labels(result=result).inc()
