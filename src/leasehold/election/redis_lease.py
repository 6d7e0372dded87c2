"""Redis-backed lease store.

Each group's lease is a Redis hash holding the fields of a ``LeaseRecord``,
``version`` included. Conditional writes use optimistic transactions:

1. WATCH the lease key
2. Read the stored version and compare it with the version of the record
   the caller holds
3. MULTI / HSET / EXEC

If another client writes the key between WATCH and EXEC, Redis aborts the
transaction with ``WatchError`` and the write is reported as a conflict.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

from redis.exceptions import RedisError, WatchError

from leasehold.backends.keys import LeaseKeys
from leasehold.backends.redis import to_str
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

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)


class RedisLeaseGateway:
    """Lease gateway using Redis optimistic transactions.

    Args:
        client: Async Redis client
        clock: Time source used for renewals
    """

    def __init__(self, client: Redis, clock: Clock | None = None) -> None:
        self.client = client
        self.clock = clock or system_clock

    async def fetch(self, namespace: str, name: str, group: str) -> LeaseRecord | None:
        key = LeaseKeys.lease(namespace, name, group)
        try:
            raw = await self.client.hgetall(key)
        except RedisError as e:
            raise LeaseStoreError("fetch", str(e)) from e

        if not raw:
            return None
        data = {to_str(k): to_str(v) for k, v in raw.items()}
        try:
            return LeaseRecord.from_fields(data)
        except (KeyError, ValueError) as e:
            raise LeaseStoreError("fetch", f"malformed lease {key}: {e}") from e

    async def create(self, namespace: str, name: str, info: LeaderInfo) -> WriteResult:
        key = LeaseKeys.lease(namespace, name, info.group)
        record = acquired_record(
            LeaseRecord(namespace=namespace, name=name, group=info.group, version=0), info
        )
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                await pipe.watch(key)
                if await pipe.exists(key):
                    return WriteResult.conflict(f"lease {key} already exists")
                pipe.multi()
                pipe.hset(key, mapping=record.to_fields())
                await pipe.execute()
        except WatchError:
            return WriteResult.conflict(f"lease {key} created concurrently")
        except RedisError as e:
            return WriteResult.error(str(e))

        logger.debug(f"Created lease {key} at version {record.version}")
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
        """Write ``updated`` only if the stored version still matches ``expected``."""
        key = LeaseKeys.lease(expected.namespace, expected.name, expected.group)
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                await pipe.watch(key)
                stored = await pipe.hget(key, "version")
                if stored is None:
                    return WriteResult.conflict(f"lease {key} no longer exists")
                if int(to_str(stored)) != expected.version:
                    return WriteResult.conflict(
                        f"version of {key} changed from {expected.version} to {to_str(stored)}"
                    )
                pipe.multi()
                pipe.hset(key, mapping=updated.to_fields())
                await pipe.execute()
        except WatchError:
            return WriteResult.conflict(f"lease {key} modified concurrently")
        except RedisError as e:
            return WriteResult.error(str(e))

        return WriteResult.success(updated)
