"""Prometheus instruments for the identity HTTP surface."""

from __future__ import annotations

from prometheus_client import Counter

OPERATIONS = Counter(
    "identity_operations_total",
    "Account lifecycle operations by outcome.",
    ["operation", "outcome"],
)


def record(operation: str, outcome: str) -> None:
    OPERATIONS.labels(operation=operation, outcome=outcome).inc()
