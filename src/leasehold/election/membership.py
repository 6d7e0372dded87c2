"""Discovery of the healthy election candidates.

A member is healthy while its heartbeat is alive. With Redis, each member
keeps a key with a TTL refreshed by ``MembershipHeartbeat``; a crashed
process stops refreshing and drops out of the set once its key expires.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Iterable, Protocol, runtime_checkable

from redis.exceptions import RedisError

from leasehold.backends.keys import LeaseKeys
from leasehold.backends.redis import to_str
from leasehold.election.errors import MembershipError

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)


@runtime_checkable
class MembershipProvider(Protocol):
    """Lists the identities currently eligible for leadership.

    Never returns None; an empty set means no member is ready yet.
    Raises on I/O failure.
    """

    async def list_healthy_members(self, namespace: str, selector: str) -> frozenset[str]: ...


class StaticMembershipProvider:
    """Membership provider over a fixed, manually updated set."""

    def __init__(self, members: Iterable[str] = ()) -> None:
        self._members = frozenset(members)
        self._failures = 0

    @property
    def members(self) -> frozenset[str]:
        return self._members

    def set_members(self, members: Iterable[str]) -> None:
        self._members = frozenset(members)

    def fail_next(self, count: int = 1) -> None:
        """Make the next ``count`` listings raise ``MembershipError``."""
        self._failures = count

    async def list_healthy_members(self, namespace: str, selector: str) -> frozenset[str]:
        if self._failures > 0:
            self._failures -= 1
            raise MembershipError("injected failure")
        return self._members


class RedisMembershipProvider:
    """Membership from heartbeat keys stored in Redis."""

    def __init__(self, client: Redis) -> None:
        self.client = client

    async def list_healthy_members(self, namespace: str, selector: str) -> frozenset[str]:
        members: set[str] = set()
        try:
            # Use SCAN to avoid blocking on large keyspaces
            async for key in self.client.scan_iter(
                match=LeaseKeys.member_pattern(namespace, selector)
            ):
                identity = LeaseKeys.parse_member(to_str(key))
                if identity:
                    members.add(identity)
        except RedisError as e:
            raise MembershipError(f"Unable to list members of {selector}: {e}") from e
        return frozenset(members)


class MembershipHeartbeat:
    """Keeps this process's heartbeat key alive in Redis.

    The key expires after ``ttl`` seconds and is refreshed every
    ``ttl / 3`` seconds. Stopping deletes the key so the member leaves
    the set immediately.

    Args:
        client: Async Redis client
        namespace: Deployment namespace
        selector: Membership set label
        identity: This process's identity
        ttl: Heartbeat lifetime in seconds
    """

    def __init__(
        self,
        client: Redis,
        namespace: str,
        selector: str,
        identity: str,
        ttl: float = 10.0,
    ) -> None:
        self.client = client
        self.identity = identity
        self.ttl = ttl
        self._key = LeaseKeys.member(namespace, selector, identity)
        self._task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def key(self) -> str:
        return self._key

    async def beat(self) -> None:
        """Refresh the heartbeat once."""
        await self.client.set(self._key, self.identity, px=int(self.ttl * 1000))

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        await self.beat()
        self._task = asyncio.create_task(self._heartbeat_loop())
        logger.info(f"Started membership heartbeat for {self.identity}")

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        try:
            await self.client.delete(self._key)
        except RedisError as e:
            logger.warning(f"Unable to remove heartbeat {self._key}: {e}")
        logger.info(f"Stopped membership heartbeat for {self.identity}")

    async def _heartbeat_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.ttl / 3)
            try:
                await self.beat()
            except RedisError as e:
                logger.warning(f"Heartbeat for {self.identity} failed: {e}")
