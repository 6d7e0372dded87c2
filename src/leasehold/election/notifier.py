"""Time-aware leadership notifier.

The controller reports what it observed on every successful cycle. The
notifier turns that stream of observations into change events:

- The reported leader is only trusted until ``observed_at + validity``.
  If no fresher observation arrives in time, the group is considered
  leaderless, so a process that stops renewing also stops acting as
  leader locally.
- Repeated identical observations produce no events.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from leasehold.election.clock import Clock, system_clock
from leasehold.election.events import ClusterEventHandler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Observation:
    leader: str | None
    observed_at: datetime
    validity_seconds: float
    members: frozenset[str]

    @property
    def valid_until(self) -> datetime:
        return self.observed_at + timedelta(seconds=self.validity_seconds)


class TimedLeaderNotifier:
    """Debounces controller observations into handler callbacks.

    Args:
        handler: Receiver of leadership and membership changes
        clock: Time source for the validity window
    """

    def __init__(self, handler: ClusterEventHandler, clock: Clock | None = None) -> None:
        self.handler = handler
        self.clock = clock or system_clock

        self._observation: Observation | None = None
        self._last_leader: str | None = None
        self._last_members: frozenset[str] | None = None
        self._wakeup = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def last_leader(self) -> str | None:
        """Leader most recently communicated to the handler."""
        return self._last_leader

    @property
    def last_members(self) -> frozenset[str]:
        return self._last_members or frozenset()

    def refresh(
        self,
        leader: str | None,
        observed_at: datetime,
        validity_seconds: float,
        members: frozenset[str],
    ) -> None:
        """Record an observation and wake the notifier. Never blocks."""
        self._observation = Observation(leader, observed_at, validity_seconds, frozenset(members))
        self._wakeup.set()

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._notify_loop())

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    def effective_leader(self) -> str | None:
        """Reported leader if its validity window is still open."""
        observation = self._observation
        if observation is None or observation.leader is None:
            return None
        if self.clock.now() >= observation.valid_until:
            return None
        return observation.leader

    def seconds_until_expiry(self) -> float | None:
        """Time left in the current leader's window, None if nothing can expire."""
        observation = self._observation
        if observation is None or observation.leader is None:
            return None
        remaining = (observation.valid_until - self.clock.now()).total_seconds()
        return remaining if remaining > 0 else None

    async def check_and_notify(self) -> None:
        """Compare the latest observation with what was last communicated."""
        observation = self._observation
        if observation is None:
            return

        leader = self.effective_leader()
        if leader != self._last_leader:
            logger.info(f"Leader changed from {self._last_leader} to {leader}")
            self._last_leader = leader
            try:
                await self.handler.on_leadership_changed(leader)
            except Exception:
                logger.exception("Event handler failed on leadership change")

        if observation.members != self._last_members:
            logger.debug(f"Members changed to {sorted(observation.members)}")
            self._last_members = observation.members
            try:
                await self.handler.on_members_changed(observation.members)
            except Exception:
                logger.exception("Event handler failed on members change")

    async def _notify_loop(self) -> None:
        while self._running:
            timeout = self.seconds_until_expiry()
            try:
                # Wake up on a new observation, or when the current one expires
                await asyncio.wait_for(self._wakeup.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                pass
            self._wakeup.clear()
            await self.check_and_notify()
