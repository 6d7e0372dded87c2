"""Snapshot of the leadership state of a group.

A ``LeaderInfo`` is rebuilt from the lease record and the membership set
on every lookup and never mutated afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta


@dataclass(frozen=True)
class LeaderInfo:
    """Currently-known leader of a group, its lease window and the members."""

    group: str
    leader: str | None = None
    acquire_time: datetime | None = None
    lease_duration_seconds: float = 0.0
    members: frozenset[str] = field(default_factory=frozenset)
    renew_time: datetime | None = None

    @property
    def expires_at(self) -> datetime | None:
        """End of the lease window, or None if no leader is recorded.

        The window starts at the last renewal, or at acquisition if the
        leader never renewed.
        """
        start = self.renew_time or self.acquire_time
        if self.leader is None or start is None:
            return None
        return start + timedelta(seconds=self.lease_duration_seconds)

    def has_empty_leader(self) -> bool:
        """True if the lease was never written or has been cleared."""
        return self.leader is None

    def has_valid_leader(self, now: datetime | None = None) -> bool:
        """True if a leader is recorded and its lease has not expired."""
        expires_at = self.expires_at
        if expires_at is None:
            return False
        return (now or datetime.now(UTC)) < expires_at

    def is_valid_leader(self, identity: str, now: datetime | None = None) -> bool:
        """True if ``identity`` holds a non-expired lease."""
        return self.has_valid_leader(now) and self.leader == identity

    def __str__(self) -> str:
        return (
            f"LeaderInfo(group={self.group}, leader={self.leader}, "
            f"acquire_time={self.acquire_time.isoformat() if self.acquire_time else None}, "
            f"lease_duration={self.lease_duration_seconds}s, members={sorted(self.members)})"
        )
