"""Tests for the Redis lease gateway."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from leasehold.backends.keys import LeaseKeys
from leasehold.election.errors import LeaseStoreError
from leasehold.election.leader_info import LeaderInfo
from leasehold.election.lease import WriteStatus
from leasehold.election.redis_lease import RedisLeaseGateway
from tests.doubles import FakeRedis, VirtualClock

KEY = LeaseKeys.lease("test", "leaders", "jobs")


def _claim(identity: str, clock: VirtualClock) -> LeaderInfo:
    return LeaderInfo(
        group="jobs",
        leader=identity,
        acquire_time=clock.now(),
        lease_duration_seconds=15.0,
        members=frozenset({"a", "b"}),
    )


class TestRedisLeaseGateway:
    """Tests for RedisLeaseGateway against the in-memory Redis double."""

    @pytest.fixture
    def gateway(self, fake_redis: FakeRedis, clock: VirtualClock) -> RedisLeaseGateway:
        return RedisLeaseGateway(fake_redis, clock=clock)  # type: ignore[arg-type]

    async def test_fetch_missing(self, gateway: RedisLeaseGateway) -> None:
        """Missing hash means no lease."""
        assert await gateway.fetch("test", "leaders", "jobs") is None

    async def test_create_stores_hash(
        self, gateway: RedisLeaseGateway, fake_redis: FakeRedis, clock: VirtualClock
    ) -> None:
        """Creation writes the record fields under the lease key."""
        result = await gateway.create("test", "leaders", _claim("a", clock))

        assert result.ok
        stored = await fake_redis.hgetall(KEY)
        assert stored[b"leader"] == b"a"
        assert stored[b"version"] == b"1"
        assert await gateway.fetch("test", "leaders", "jobs") == result.record

    async def test_create_existing_conflicts(
        self, gateway: RedisLeaseGateway, clock: VirtualClock
    ) -> None:
        """Creating over an existing lease is a conflict."""
        await gateway.create("test", "leaders", _claim("a", clock))

        result = await gateway.create("test", "leaders", _claim("b", clock))

        assert result.status is WriteStatus.CONFLICT

    async def test_acquire_with_current_version(
        self, gateway: RedisLeaseGateway, clock: VirtualClock
    ) -> None:
        """Acquisition succeeds when nobody wrote since the read."""
        created = await gateway.create("test", "leaders", _claim("c", clock))
        assert created.record is not None
        clock.advance(30)

        result = await gateway.acquire(created.record, _claim("a", clock))

        assert result.ok
        fetched = await gateway.fetch("test", "leaders", "jobs")
        assert fetched is not None
        assert fetched.leader == "a"
        assert fetched.version == 2

    async def test_acquire_stale_version_conflicts(
        self, gateway: RedisLeaseGateway, clock: VirtualClock
    ) -> None:
        """A record read before another write cannot be used to acquire."""
        created = await gateway.create("test", "leaders", _claim("c", clock))
        assert created.record is not None
        first = await gateway.acquire(created.record, _claim("b", clock))
        assert first.ok

        result = await gateway.acquire(created.record, _claim("a", clock))

        assert result.status is WriteStatus.CONFLICT
        fetched = await gateway.fetch("test", "leaders", "jobs")
        assert fetched is not None and fetched.leader == "b"

    async def test_acquire_racing_writer_conflicts(
        self, gateway: RedisLeaseGateway, fake_redis: FakeRedis, clock: VirtualClock
    ) -> None:
        """A write between WATCH and EXEC aborts the transaction."""
        created = await gateway.create("test", "leaders", _claim("c", clock))
        assert created.record is not None

        async def racing_write() -> None:
            await fake_redis.hset(KEY, mapping={"leader": "b"})

        fake_redis.before_exec = racing_write

        result = await gateway.acquire(created.record, _claim("a", clock))

        assert result.status is WriteStatus.CONFLICT

    async def test_renew_and_clear(self, gateway: RedisLeaseGateway, clock: VirtualClock) -> None:
        """Renewal moves the window, clearing removes the leader."""
        created = await gateway.create("test", "leaders", _claim("a", clock))
        assert created.record is not None
        clock.advance(12)

        renewed = await gateway.renew(created.record, 10.0)
        assert renewed.ok and renewed.record is not None
        assert renewed.record.renew_time == clock.now()

        cleared = await gateway.clear(renewed.record, "jobs")
        assert cleared.ok
        fetched = await gateway.fetch("test", "leaders", "jobs")
        assert fetched is not None
        assert fetched.leader is None
        assert fetched.version == 3

    async def test_fetch_error_raises_store_error(
        self, gateway: RedisLeaseGateway, fake_redis: FakeRedis
    ) -> None:
        """Connection failures on fetch surface as LeaseStoreError."""
        fake_redis.disconnected = True

        with pytest.raises(LeaseStoreError):
            await gateway.fetch("test", "leaders", "jobs")

    async def test_write_error_is_reported(
        self, gateway: RedisLeaseGateway, fake_redis: FakeRedis, clock: VirtualClock
    ) -> None:
        """Connection failures on writes become ERROR results."""
        fake_redis.disconnected = True

        result = await gateway.create("test", "leaders", _claim("a", clock))

        assert result.status is WriteStatus.ERROR

    async def test_malformed_lease(self, gateway: RedisLeaseGateway, fake_redis: FakeRedis) -> None:
        """A hash missing required fields is a store error."""
        await fake_redis.hset(KEY, mapping={"leader": "a"})

        with pytest.raises(LeaseStoreError, match="malformed"):
            await gateway.fetch("test", "leaders", "jobs")


class TestRedisLeaseGatewayMocked:
    """Tests for error mapping with a mocked client."""

    async def test_hgetall_connection_error(self) -> None:
        """Redis errors during fetch are wrapped."""
        client = MagicMock()
        client.hgetall = AsyncMock(side_effect=RedisConnectionError("down"))
        gateway = RedisLeaseGateway(client)

        with pytest.raises(LeaseStoreError, match="down"):
            await gateway.fetch("test", "leaders", "jobs")
