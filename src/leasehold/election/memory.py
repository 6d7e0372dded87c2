"""Process-local lease store.

Keeps versioned lease records in a dict guarded by an ``asyncio.Lock`` so
that conditional writes from concurrent coroutines race the same way they
would against a shared store. Useful for tests and single-host setups.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from leasehold.election.clock import Clock, system_clock
from leasehold.election.errors import LeaseStoreError
from leasehold.election.leader_info import LeaderInfo
from leasehold.election.lease import (
    LeaseRecord,
    WriteResult,
    acquired_record,
    cleared_record,
    decode_leader_info,
    needs_renewal,
    renewed_record,
)

logger = logging.getLogger(__name__)


class InMemoryLeaseGateway:
    """Lease gateway storing records in memory.

    Args:
        clock: Time source used for renewals
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self.clock = clock or system_clock
        self._records: dict[tuple[str, str, str], LeaseRecord] = {}
        self._lock = asyncio.Lock()
        self._fail_fetches = 0

    def fail_next_fetch(self, count: int = 1) -> None:
        """Make the next ``count`` fetches raise ``LeaseStoreError``."""
        self._fail_fetches = count

    def get(self, namespace: str, name: str, group: str) -> LeaseRecord | None:
        """Current stored record, bypassing fault injection."""
        return self._records.get((namespace, name, group))

    def put(self, record: LeaseRecord) -> None:
        """Overwrite a record unconditionally (test setup helper)."""
        self._records[(record.namespace, record.name, record.group)] = record

    async def fetch(self, namespace: str, name: str, group: str) -> LeaseRecord | None:
        if self._fail_fetches > 0:
            self._fail_fetches -= 1
            raise LeaseStoreError("fetch", "injected failure")
        return self._records.get((namespace, name, group))

    async def create(self, namespace: str, name: str, info: LeaderInfo) -> WriteResult:
        key = (namespace, name, info.group)
        async with self._lock:
            if key in self._records:
                return WriteResult.conflict(f"lease {name} for group {info.group} already exists")
            record = acquired_record(
                LeaseRecord(namespace=namespace, name=name, group=info.group, version=0), info
            )
            self._records[key] = record
            return WriteResult.success(record)

    def decode(
        self, record: LeaseRecord | None, members: Iterable[str], group: str
    ) -> LeaderInfo:
        return decode_leader_info(record, members, group)

    async def acquire(self, record: LeaseRecord, info: LeaderInfo) -> WriteResult:
        return await self._replace(record, acquired_record(record, info))

    async def renew(self, record: LeaseRecord, renew_deadline_seconds: float) -> WriteResult:
        now = self.clock.now()
        if not needs_renewal(record, now, renew_deadline_seconds):
            return WriteResult.success(record)
        return await self._replace(record, renewed_record(record, now))

    async def clear(self, record: LeaseRecord, group: str) -> WriteResult:
        if record.group != group:
            return WriteResult.conflict(f"lease belongs to group {record.group}, not {group}")
        return await self._replace(record, cleared_record(record))

    async def _replace(self, expected: LeaseRecord, updated: LeaseRecord) -> WriteResult:
        key = (expected.namespace, expected.name, expected.group)
        async with self._lock:
            current = self._records.get(key)
            if current is None:
                return WriteResult.conflict("lease no longer exists")
            if current.version != expected.version:
                logger.debug(
                    f"Version mismatch on {expected.name}: "
                    f"expected {expected.version}, found {current.version}"
                )
                return WriteResult.conflict(
                    f"version changed from {expected.version} to {current.version}"
                )
            self._records[key] = updated
            return WriteResult.success(updated)
