"""Observability module for leasehold.

Provides metrics and structured logging:
- Prometheus metrics for election state and lease operations
- JSON structured logging with election context
"""

from leasehold.observability.logging import (
    ConsoleFormatter,
    JsonFormatter,
    LogContext,
    configure_logging,
    election_context,
    group_var,
    identity_var,
)
from leasehold.observability.metrics import (
    ElectionMetrics,
    get_metrics,
    record_lease_operation,
    record_lookup_failure,
    record_transition,
)

__all__ = [
    # Logging
    "configure_logging",
    "ConsoleFormatter",
    "JsonFormatter",
    "LogContext",
    "election_context",
    "group_var",
    "identity_var",
    # Metrics
    "ElectionMetrics",
    "get_metrics",
    "record_transition",
    "record_lease_operation",
    "record_lookup_failure",
]
