"""Prometheus metrics utilities."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge

metrics_registry = CollectorRegistry()

REQUEST_COUNTER = Counter(
    "laundry_dispatch_api_requests_total",
    "Total number of API requests handled",
    registry=metrics_registry,
)

TRANSITION_COUNTER = Counter(
    "laundry_dispatch_transitions_total",
    "Committed request lifecycle transitions",
    ["action", "status"],
    registry=metrics_registry,
)

ASSIGNMENT_COUNTER = Counter(
    "laundry_dispatch_assignments_total",
    "Robot assignments made by the dispatch engine",
    ["outcome"],
    registry=metrics_registry,
)

OFFLINE_ROBOTS_GAUGE = Gauge(
    "laundry_dispatch_offline_robots",
    "Registered robots whose heartbeat has lapsed",
    registry=metrics_registry,
)


def record_transition(action: str, status: str) -> None:
    TRANSITION_COUNTER.labels(action=action, status=status).inc()


def record_assignment(outcome: str) -> None:
    """Count a dispatch outcome: ``available``, ``preempted`` or ``unavailable``."""

    ASSIGNMENT_COUNTER.labels(outcome=outcome).inc()
