"""Exception hierarchy for leasehold.

Contention on the lease record is not an error: gateways report it as a
``WriteResult`` with ``CONFLICT`` status. Exceptions are reserved for
transient I/O failures (retried by the controller on its next cycle) and
for programming defects.
"""

from __future__ import annotations


class LeaseholdError(Exception):
    """Base class for leasehold errors."""


class LeaseStoreError(LeaseholdError):
    """The lease store could not be reached or returned an unexpected reply."""

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Lease store {operation} failed: {reason}")


class MembershipError(LeaseholdError):
    """The membership provider could not list the healthy members."""


class InvariantViolation(LeaseholdError):
    """Internal state the controller cannot handle; aborts the controller."""
