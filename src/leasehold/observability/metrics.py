"""Prometheus metrics for leasehold.

Exposes, per election group:
- leasehold_leadership_state: 1 for the state a controller is in
- leasehold_leadership_transitions_total: state changes
- leasehold_lease_operations_total: lease writes by outcome (ok, conflict, error)
- leasehold_lookup_failures_total: failed lease or membership lookups

Metrics are created on first use and can be turned off with
``ENABLE_METRICS=false``, in which case the record helpers do nothing.
"""

from __future__ import annotations

import logging

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, generate_latest

from leasehold.config import settings

logger = logging.getLogger(__name__)


class ElectionMetrics:
    """Election collectors registered on one Prometheus registry."""

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        self.registry = registry
        self.leadership_state = Gauge(
            "leasehold_leadership_state",
            "1 for the current controller state, 0 for the others",
            ["group", "identity", "state"],
            registry=registry,
        )
        self.leadership_transitions_total = Counter(
            "leasehold_leadership_transitions_total",
            "Controller state transitions",
            ["group", "source", "target"],
            registry=registry,
        )
        self.lease_operations_total = Counter(
            "leasehold_lease_operations_total",
            "Lease store writes by outcome",
            ["group", "operation", "outcome"],
            registry=registry,
        )
        self.lookup_failures_total = Counter(
            "leasehold_lookup_failures_total",
            "Failed lease or membership lookups",
            ["group", "source"],
            registry=registry,
        )

    def exposition(self) -> bytes:
        """Registry contents in the Prometheus text format."""
        return generate_latest(self.registry)


_metrics: ElectionMetrics | None = None
_initialized = False


def get_metrics() -> ElectionMetrics | None:
    """Process-wide collectors, None when metrics are disabled."""
    global _metrics, _initialized
    if not _initialized:
        _initialized = True
        if settings.enable_metrics:
            _metrics = ElectionMetrics()
        else:
            logger.info("Metrics are disabled")
    return _metrics


def record_transition(group: str, identity: str, source: str, target: str) -> None:
    """Count a state change and move the state gauge to ``target``."""
    metrics = get_metrics()
    if metrics is None:
        return
    metrics.leadership_transitions_total.labels(group=group, source=source, target=target).inc()
    metrics.leadership_state.labels(group=group, identity=identity, state=source).set(0)
    metrics.leadership_state.labels(group=group, identity=identity, state=target).set(1)


def record_lease_operation(group: str, operation: str, outcome: str) -> None:
    """Count a lease write.

    Args:
        group: Election group
        operation: create, acquire, renew or clear
        outcome: ok, conflict or error
    """
    metrics = get_metrics()
    if metrics is not None:
        metrics.lease_operations_total.labels(
            group=group, operation=operation, outcome=outcome
        ).inc()


def record_lookup_failure(group: str, source: str) -> None:
    metrics = get_metrics()
    if metrics is not None:
        metrics.lookup_failures_total.labels(group=group, source=source).inc()
