"""
Prometheus metrics for the tender desk.

Counts actions by outcome, store traffic, optimistic-locking conflicts,
awards, payments and overpayment anomalies, and keeps a gauge of works per
tender status for the office dashboard.
"""

import time
from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from prometheus_client import Counter, Gauge, Histogram, start_http_server

# ============================================================================
# Event Store
# ============================================================================

events_appended_total = Counter(
    "tender_events_appended_total",
    "Total number of events appended to the tender record store",
    ["stream_type", "event_type"],
)

events_loaded_total = Counter(
    "tender_events_loaded_total",
    "Total number of events loaded while rebuilding NITs, works and ledgers",
    ["stream_type"],
)

stream_version_conflicts_total = Counter(
    "tender_stream_version_conflicts_total",
    "Total number of optimistic locking conflicts (ConcurrentModification)",
    ["stream_type"],
)

# ============================================================================
# Desk Actions
# ============================================================================

action_duration_seconds = Histogram(
    "tender_action_duration_seconds",
    "Duration of desk actions in seconds",
    ["action"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

actions_processed_total = Counter(
    "tender_actions_processed_total",
    "Total number of desk actions by outcome (ok or error category)",
    ["action", "outcome"],
)

# ============================================================================
# Procurement
# ============================================================================

awards_issued_total = Counter(
    "tender_awards_issued_total",
    "Total number of contracts awarded",
)

payments_recorded_total = Counter(
    "tender_payments_recorded_total",
    "Total number of payment entries recorded",
    ["bill_type"],
)

overpayment_anomalies_total = Counter(
    "tender_overpayment_anomalies_total",
    "Total number of times a ledger's gross payments exceeded the estimate",
)

works_by_tender_status = Gauge(
    "tender_works_by_tender_status",
    "Number of works currently in each tender status",
    ["tender_status"],
)

# ============================================================================
# Helper Functions
# ============================================================================

P = ParamSpec("P")
R = TypeVar("R")


def track_action_duration(action: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator observing the duration of a desk action.

    Outcome counting is done by the desk itself, because failures come back
    as values rather than exceptions.
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                action_duration_seconds.labels(action=action).observe(
                    time.perf_counter() - start
                )

        return wrapper

    return decorator


def record_action_outcome(action: str, outcome: str) -> None:
    """Count one finished action; outcome is 'ok' or an error category"""
    actions_processed_total.labels(action=action, outcome=outcome).inc()


def update_tender_status_gauge(counts: dict[str, int]) -> None:
    """Set the works-by-status gauge from a {status: count} summary"""
    for status, count in counts.items():
        works_by_tender_status.labels(tender_status=status).set(count)


def start_metrics_server(port: int = 9090) -> None:
    """Start Prometheus metrics HTTP server on the given port."""
    start_http_server(port)
