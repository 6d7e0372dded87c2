"""Tests for the LeaderElection facade."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from leasehold.config import LockConfiguration, Settings
from leasehold.election.controller import LeadershipState
from leasehold.election.election import LeaderElection, leader_only
from leasehold.election.membership import (
    MembershipHeartbeat,
    RedisMembershipProvider,
    StaticMembershipProvider,
)
from leasehold.election.memory import InMemoryLeaseGateway
from leasehold.election.redis_lease import RedisLeaseGateway
from tests.doubles import FakeRedis


def _config(identity: str) -> LockConfiguration:
    return LockConfiguration(
        group_name="jobs",
        identity=identity,
        namespace="test",
        resource_name="leaders",
        member_selector="workers",
        lease_duration_seconds=0.3,
        renew_deadline_seconds=0.2,
        retry_period_seconds=0.02,
    )


@pytest.fixture
def gateway() -> InMemoryLeaseGateway:
    return InMemoryLeaseGateway()


@pytest.fixture
def membership() -> StaticMembershipProvider:
    return StaticMembershipProvider({"a", "b"})


class TestLeaderElection:
    """Tests for LeaderElection."""

    async def test_initial_state(
        self, gateway: InMemoryLeaseGateway, membership: StaticMembershipProvider
    ) -> None:
        election = LeaderElection(_config("a"), gateway, membership)

        assert election.name == "jobs"
        assert election.instance_id == "a"
        assert election.is_leader is False
        assert election.current_leader is None
        assert election.state is LeadershipState.NOT_LEADER

    async def test_single_member_becomes_leader(
        self, gateway: InMemoryLeaseGateway, membership: StaticMembershipProvider
    ) -> None:
        """A lone candidate is elected and reported to the handler."""
        handler = AsyncMock()
        election = LeaderElection(_config("a"), gateway, membership, handler=handler)

        async with election:
            assert await election.wait_for_leadership(timeout=2.0)
            assert election.is_leader
            assert election.members == frozenset({"a", "b"})

        handler.on_leadership_changed.assert_any_await("a")
        handler.on_members_changed.assert_any_await(frozenset({"a", "b"}))
        # Stopping reports the local loss of leadership, the lease stays
        assert election.is_leader is False
        assert handler.on_leadership_changed.await_args_list[-1].args == (None,)
        assert gateway.get("test", "leaders", "jobs").leader == "a"  # type: ignore[union-attr]

    async def test_one_leader_among_members(
        self, gateway: InMemoryLeaseGateway, membership: StaticMembershipProvider
    ) -> None:
        """Both members agree on a single leader."""
        elections = [LeaderElection(_config(i), gateway, membership) for i in ("a", "b")]
        for election in elections:
            await election.start()
        try:
            await asyncio.sleep(0.2)
            leaders = [e for e in elections if e.is_leader]
            assert len(leaders) == 1
            follower = next(e for e in elections if not e.is_leader)
            assert follower.current_leader == leaders[0].instance_id
        finally:
            for election in elections:
                await election.stop()

    async def test_failover_after_stop(
        self, gateway: InMemoryLeaseGateway, membership: StaticMembershipProvider
    ) -> None:
        """The follower takes over once the stopped leader's lease expires."""
        first = LeaderElection(_config("a"), gateway, membership)
        await first.start()
        assert await first.wait_for_leadership(timeout=2.0)

        second = LeaderElection(_config("b"), gateway, membership)
        await second.start()
        try:
            await first.stop()
            assert await second.wait_for_leadership(timeout=3.0)
        finally:
            await second.stop()

    async def test_non_member_times_out(self, gateway: InMemoryLeaseGateway) -> None:
        """An identity outside the membership never becomes leader."""
        election = LeaderElection(_config("z"), gateway, StaticMembershipProvider({"a"}))

        async with election:
            assert await election.wait_for_leadership(timeout=0.2) is False

    async def test_disabling_demotes(
        self, gateway: InMemoryLeaseGateway, membership: StaticMembershipProvider
    ) -> None:
        """A disabled leader stops being leader and frees the lease."""
        election = LeaderElection(_config("a"), gateway, membership)

        async with election:
            assert await election.wait_for_leadership(timeout=2.0)
            election.set_disabled(True)
            assert election.disabled
            assert await election.wait_for_demotion(timeout=3.0)
            await asyncio.sleep(0.4)
            record = gateway.get("test", "leaders", "jobs")
            assert election.state is LeadershipState.NOT_LEADER
            assert not gateway.decode(record, {"a", "b"}, "jobs").has_valid_leader()

    async def test_wait_resolved_by_events(
        self, gateway: InMemoryLeaseGateway, membership: StaticMembershipProvider
    ) -> None:
        """Waiters are released by leadership events."""
        election = LeaderElection(_config("a"), gateway, membership)

        waiter = asyncio.create_task(election.wait_for_leadership())
        await asyncio.sleep(0)
        await election.on_leadership_changed("a")
        assert await waiter is True

        demotion = asyncio.create_task(election.wait_for_demotion())
        await asyncio.sleep(0)
        await election.on_leadership_changed("b")
        assert await demotion is True
        assert election.current_leader == "b"


class TestLeaderOnly:
    """Tests for the leader_only decorator."""

    async def test_runs_only_on_leader(
        self, gateway: InMemoryLeaseGateway, membership: StaticMembershipProvider
    ) -> None:
        election = LeaderElection(_config("a"), gateway, membership)
        calls: list[int] = []

        @leader_only(election)
        async def report(value: int) -> int:
            """Leader work."""
            calls.append(value)
            return value * 2

        assert await report(1) is None

        await election.on_leadership_changed("a")
        assert await report(2) == 4

        assert calls == [2]
        assert report.__name__ == "report"
        assert report.__doc__ == "Leader work."


class TestFromSettings:
    """Tests for building an election from settings."""

    async def test_redis_backed_election(self, fake_redis: FakeRedis) -> None:
        """Settings wire the Redis gateway, membership and heartbeat."""
        settings = Settings(
            group_name="jobs",
            identity="a",
            namespace="test",
            member_selector="workers",
            disabled=True,
        )

        election = await LeaderElection.from_settings(settings, client=fake_redis)  # type: ignore[arg-type]

        assert isinstance(election.controller.gateway, RedisLeaseGateway)
        assert isinstance(election.controller.membership, RedisMembershipProvider)
        assert isinstance(election.heartbeat, MembershipHeartbeat)
        assert election.disabled
        assert election.instance_id == "a"

    async def test_redis_backed_leadership(self, fake_redis: FakeRedis) -> None:
        """A member announced by its heartbeat wins the election."""
        settings = Settings(
            group_name="jobs",
            identity="a",
            namespace="test",
            member_selector="workers",
            lease_duration_seconds=0.3,
            renew_deadline_seconds=0.2,
            retry_period_seconds=0.02,
        )
        election = await LeaderElection.from_settings(settings, client=fake_redis)  # type: ignore[arg-type]

        async with election:
            assert await election.wait_for_leadership(timeout=2.0)

        record = await RedisLeaseGateway(fake_redis).fetch(  # type: ignore[arg-type]
            "test", "leaders", "jobs"
        )
        assert record is not None and record.leader == "a"
