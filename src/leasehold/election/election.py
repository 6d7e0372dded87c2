"""Leader election facade.

Bundles a ``LeadershipController``, its ``TimedLeaderNotifier`` and an
optional membership heartbeat into one object with an asyncio lifecycle.

Example:
    election = await LeaderElection.from_settings(settings)

    async with election:
        if await election.wait_for_leadership(timeout=60):
            await run_singleton_work()

Periodic jobs that must only run once per group can be guarded with
``leader_only``:

    @leader_only(election)
    async def compact_history() -> None:
        ...
"""

from __future__ import annotations

import asyncio
import functools
import logging
import random
from types import TracebackType
from typing import TYPE_CHECKING, Awaitable, Callable, ParamSpec, TypeVar

from leasehold.config import LockConfiguration, Settings
from leasehold.election.clock import Clock
from leasehold.election.controller import LeadershipController, LeadershipState
from leasehold.election.events import ClusterEventHandler
from leasehold.election.lease import LeaseGateway
from leasehold.election.membership import MembershipHeartbeat, MembershipProvider
from leasehold.election.notifier import TimedLeaderNotifier

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)


class LeaderElection:
    """Participation of this process in the election of one group.

    ``is_leader`` reflects what the notifier last reported: it becomes
    true once the controller reached LEADER and confirmed its lease, and
    false as soon as that confirmation is older than the renew deadline.

    Args:
        config: Election settings for the group
        gateway: Lease store access
        membership: Source of the healthy candidate identities
        handler: Application handler receiving the cluster events
        heartbeat: Heartbeat announcing this process as a member
        clock: Time source
        rng: Random source for jittered delays
    """

    def __init__(
        self,
        config: LockConfiguration,
        gateway: LeaseGateway,
        membership: MembershipProvider,
        handler: ClusterEventHandler | None = None,
        heartbeat: MembershipHeartbeat | None = None,
        clock: Clock | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config
        self.handler = handler
        self.heartbeat = heartbeat

        self._leader: str | None = None
        self._members: frozenset[str] = frozenset()
        self._elected = asyncio.Event()
        self._demoted = asyncio.Event()
        self._demoted.set()

        self.notifier = TimedLeaderNotifier(self, clock=clock)
        self.controller = LeadershipController(
            config, gateway, membership, self.notifier, clock=clock, rng=rng
        )

    @classmethod
    async def from_settings(
        cls,
        settings: Settings,
        handler: ClusterEventHandler | None = None,
        client: Redis | None = None,
    ) -> LeaderElection:
        """Redis-backed election configured from application settings.

        Uses the shared Redis client unless ``client`` is given.
        """
        from leasehold.backends.redis import get_redis
        from leasehold.election.membership import RedisMembershipProvider
        from leasehold.election.redis_lease import RedisLeaseGateway

        config = settings.lock_configuration()
        redis = client or await get_redis(settings.redis_url)
        election = cls(
            config,
            RedisLeaseGateway(redis),
            RedisMembershipProvider(redis),
            handler=handler,
            heartbeat=MembershipHeartbeat(
                redis,
                config.namespace_or_default(),
                config.member_selector,
                config.identity,
                ttl=settings.member_ttl_seconds,
            ),
        )
        election.set_disabled(settings.disabled)
        return election

    @property
    def name(self) -> str:
        return self.config.group_name

    @property
    def instance_id(self) -> str:
        return self.config.identity

    @property
    def is_leader(self) -> bool:
        return self._leader == self.config.identity

    @property
    def current_leader(self) -> str | None:
        """Leader of the group as last reported, None if there is none."""
        return self._leader

    @property
    def members(self) -> frozenset[str]:
        return self._members

    @property
    def state(self) -> LeadershipState:
        return self.controller.state

    @property
    def disabled(self) -> bool:
        return self.controller.disabled

    def set_disabled(self, disabled: bool) -> None:
        self.controller.set_disabled(disabled)

    async def start(self) -> None:
        if self.heartbeat is not None:
            await self.heartbeat.start()
        await self.controller.start()
        logger.info(f"Joined election '{self.name}' as {self.instance_id}")

    async def stop(self) -> None:
        """Leave the election.

        The lease is not cleared: other members take over once it expires,
        and an instance restarted with the same identity resumes it.
        """
        await self.controller.stop()
        if self.heartbeat is not None:
            await self.heartbeat.stop()
        if self.is_leader:
            # Nobody reports for this member any more
            await self.on_leadership_changed(None)
        logger.info(f"Left election '{self.name}'")

    async def on_leadership_changed(self, leader: str | None) -> None:
        was_leader = self.is_leader
        self._leader = leader

        if self.is_leader != was_leader:
            if self.is_leader:
                logger.info(f"Elected as leader of '{self.name}'")
                self._demoted.clear()
                self._elected.set()
            else:
                logger.warning(f"No longer leader of '{self.name}'")
                self._elected.clear()
                self._demoted.set()

        if self.handler is not None:
            await self.handler.on_leadership_changed(leader)

    async def on_members_changed(self, members: frozenset[str]) -> None:
        self._members = members
        if self.handler is not None:
            await self.handler.on_members_changed(members)

    async def wait_for_leadership(self, timeout: float | None = None) -> bool:
        """Block until this instance is the leader.

        Returns:
            False if ``timeout`` seconds passed first
        """
        return await self._wait(self._elected, timeout)

    async def wait_for_demotion(self, timeout: float | None = None) -> bool:
        """Block until this instance is no longer the leader."""
        return await self._wait(self._demoted, timeout)

    @staticmethod
    async def _wait(event: asyncio.Event, timeout: float | None) -> bool:
        try:
            await asyncio.wait_for(event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def __aenter__(self) -> LeaderElection:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()


P = ParamSpec("P")
R = TypeVar("R")


def leader_only(
    election: LeaderElection,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R | None]]]:
    """Skip calls of the decorated coroutine unless ``election`` leads.

    Skipped calls return None.
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R | None]]:
        @functools.wraps(func)
        async def guarded(*args: P.args, **kwargs: P.kwargs) -> R | None:
            if not election.is_leader:
                logger.debug(f"{func.__name__} skipped, not leader of '{election.name}'")
                return None
            return await func(*args, **kwargs)

        return guarded

    return decorator
