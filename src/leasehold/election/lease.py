"""Lease record model and the gateway contract used by the controller.

A lease record is one resource per election group. It carries the encoded
``LeaderInfo`` fields plus a ``version`` token: every write is conditioned
on the version read alongside the record, so concurrent writers race and
exactly one of them wins per version.

Gateways report the outcome of writes as a ``WriteResult`` instead of
raising. Losing the race is the normal outcome of contention.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Iterable, Protocol, runtime_checkable

import orjson

from leasehold.election.leader_info import LeaderInfo


@dataclass(frozen=True)
class LeaseRecord:
    """Stored lease for one group, as read from the lease store."""

    namespace: str
    name: str
    group: str
    version: int
    leader: str | None = None
    acquire_time: datetime | None = None
    renew_time: datetime | None = None
    lease_duration_seconds: float = 0.0
    members: tuple[str, ...] = field(default_factory=tuple)

    def to_fields(self) -> dict[str, str]:
        """Flatten to string fields for key/value stores."""
        return {
            "namespace": self.namespace,
            "name": self.name,
            "group": self.group,
            "version": str(self.version),
            "leader": self.leader or "",
            "acquire_time": self.acquire_time.isoformat() if self.acquire_time else "",
            "renew_time": self.renew_time.isoformat() if self.renew_time else "",
            "lease_duration": repr(float(self.lease_duration_seconds)),
            "members": orjson.dumps(list(self.members)).decode(),
        }

    @classmethod
    def from_fields(cls, data: dict[str, str]) -> LeaseRecord:
        """Inverse of ``to_fields``."""
        acquire_time = data.get("acquire_time") or None
        renew_time = data.get("renew_time") or None
        members = orjson.loads(data.get("members") or "[]")
        return cls(
            namespace=data["namespace"],
            name=data["name"],
            group=data["group"],
            version=int(data["version"]),
            leader=data.get("leader") or None,
            acquire_time=datetime.fromisoformat(acquire_time) if acquire_time else None,
            renew_time=datetime.fromisoformat(renew_time) if renew_time else None,
            lease_duration_seconds=float(data.get("lease_duration") or 0.0),
            members=tuple(members),
        )


class WriteStatus(str, Enum):
    """Outcome of a conditional write against the lease store."""

    OK = "ok"
    CONFLICT = "conflict"
    ERROR = "error"


@dataclass(frozen=True)
class WriteResult:
    """Result of create/acquire/renew/clear."""

    status: WriteStatus
    record: LeaseRecord | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is WriteStatus.OK

    @classmethod
    def success(cls, record: LeaseRecord) -> WriteResult:
        return cls(WriteStatus.OK, record=record)

    @classmethod
    def conflict(cls, reason: str) -> WriteResult:
        return cls(WriteStatus.CONFLICT, reason=reason)

    @classmethod
    def error(cls, reason: str) -> WriteResult:
        return cls(WriteStatus.ERROR, reason=reason)


def decode_leader_info(
    record: LeaseRecord | None, members: Iterable[str], group: str
) -> LeaderInfo:
    """Build a ``LeaderInfo`` from a lease record and a membership snapshot.

    Pure: the same record, members and group always produce an equal value.
    A missing record, or a record of another group, decodes to an empty
    leader.
    """
    snapshot = frozenset(members)
    if record is None or record.group != group:
        return LeaderInfo(group=group, members=snapshot)
    return LeaderInfo(
        group=group,
        leader=record.leader,
        acquire_time=record.acquire_time,
        lease_duration_seconds=record.lease_duration_seconds,
        members=snapshot,
        renew_time=record.renew_time,
    )


def acquired_record(record: LeaseRecord, info: LeaderInfo) -> LeaseRecord:
    """Record carrying ``info`` as the new leadership, at the next version."""
    return replace(
        record,
        version=record.version + 1,
        leader=info.leader,
        acquire_time=info.acquire_time,
        renew_time=info.acquire_time,
        lease_duration_seconds=info.lease_duration_seconds,
        members=tuple(sorted(info.members)),
    )


def renewed_record(record: LeaseRecord, now: datetime) -> LeaseRecord:
    return replace(record, version=record.version + 1, renew_time=now)


def cleared_record(record: LeaseRecord) -> LeaseRecord:
    return replace(
        record,
        version=record.version + 1,
        leader=None,
        acquire_time=None,
        renew_time=None,
    )


def needs_renewal(record: LeaseRecord, now: datetime, min_interval_seconds: float) -> bool:
    """True once the last renewal is at least ``min_interval_seconds`` old."""
    last = record.renew_time or record.acquire_time
    if last is None:
        return True
    return (now - last).total_seconds() >= min_interval_seconds


@runtime_checkable
class LeaseGateway(Protocol):
    """Capabilities the controller needs from a lease store.

    ``fetch`` returns None when the record does not exist and raises
    ``LeaseStoreError`` on I/O failures. Writes never raise for contention:
    they return a ``WriteResult`` with ``CONFLICT`` status when the record
    changed since it was read.
    """

    async def fetch(self, namespace: str, name: str, group: str) -> LeaseRecord | None: ...

    async def create(self, namespace: str, name: str, info: LeaderInfo) -> WriteResult: ...

    def decode(
        self, record: LeaseRecord | None, members: Iterable[str], group: str
    ) -> LeaderInfo: ...

    async def acquire(self, record: LeaseRecord, info: LeaderInfo) -> WriteResult: ...

    async def renew(self, record: LeaseRecord, renew_deadline_seconds: float) -> WriteResult: ...

    async def clear(self, record: LeaseRecord, group: str) -> WriteResult: ...
