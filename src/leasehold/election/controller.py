"""Lease-based leadership controller.

Monitors the lease of a group and takes part in the election when no
valid leader is present. Every refresh step re-derives the leadership
state from the lease store and the membership provider, acts according
to the current controller state, and tells the serialized queue when to
run next.

States:
- NOT_LEADER: polling for an opportunity to acquire the lease
- BECOMING_LEADER: lease acquired, waiting one lease period so that a
  previous leader can notice the expiry and stop acting
- LEADER: renewing the lease
- LOSING_LEADERSHIP: disabled while leader, waiting one lease period so
  listeners can stop leader-only work
- LEADERSHIP_LOST: releasing the lease

Safety relies entirely on the store's conditional writes: two controllers
acquiring from the same version of the lease cannot both succeed.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from leasehold.config import LockConfiguration
from leasehold.election.clock import Clock, system_clock
from leasehold.election.errors import InvariantViolation
from leasehold.election.executor import Continuation, SerializedExecutor
from leasehold.election.leader_info import LeaderInfo
from leasehold.election.lease import LeaseGateway, LeaseRecord, WriteResult
from leasehold.election.membership import MembershipProvider
from leasehold.election.notifier import TimedLeaderNotifier
from leasehold.observability.logging import LogContext
from leasehold.observability.metrics import (
    record_lease_operation,
    record_lookup_failure,
    record_transition,
)

logger = logging.getLogger(__name__)


class LeadershipState(str, Enum):
    NOT_LEADER = "not_leader"
    BECOMING_LEADER = "becoming_leader"
    LEADER = "leader"
    LOSING_LEADERSHIP = "losing_leadership"
    LEADERSHIP_LOST = "leadership_lost"


@dataclass(frozen=True)
class LeaseSnapshot:
    """Lease record, members and decoded leader info from one lookup."""

    record: LeaseRecord | None
    members: frozenset[str]
    leader_info: LeaderInfo


def jitter(base: float, factor: float, rng: random.Random | None = None) -> float:
    """Randomize ``base`` within ``[base, base * factor]``."""
    draw = (rng or random).random()
    return base * (1 + draw * (factor - 1))


class LeadershipController:
    """State machine electing one leader per group.

    Args:
        config: Election settings for the group
        gateway: Lease store access
        membership: Source of the healthy candidate identities
        notifier: Receives every successful observation
        clock: Time source
        rng: Random source for jittered delays
    """

    def __init__(
        self,
        config: LockConfiguration,
        gateway: LeaseGateway,
        membership: MembershipProvider,
        notifier: TimedLeaderNotifier,
        clock: Clock | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config
        self.gateway = gateway
        self.membership = membership
        self.notifier = notifier
        self.clock = clock or system_clock
        self.rng = rng or random.Random()

        self._state = LeadershipState.NOT_LEADER
        self._disabled = False
        self._latest: LeaseSnapshot | None = None
        # Set once the handover wait of the current state has elapsed
        self._wait_elapsed = False
        self._executor: SerializedExecutor | None = None
        self._log_prefix = f"Member[{config.identity}]"

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def identity(self) -> str:
        return self.config.identity

    @property
    def group(self) -> str:
        return self.config.group_name

    @property
    def namespace(self) -> str:
        return self.config.namespace_or_default()

    @property
    def state(self) -> LeadershipState:
        return self._state

    @property
    def latest(self) -> LeaseSnapshot | None:
        """Result of the last successful lookup or write."""
        return self._latest

    @property
    def disabled(self) -> bool:
        return self._disabled

    @property
    def running(self) -> bool:
        return self._executor is not None and self._executor.running

    def set_disabled(self, disabled: bool) -> None:
        """Enable or disable participation.

        A change triggers an immediate refresh when running. Disabling a
        leader goes through LOSING_LEADERSHIP before the lease is released.
        """
        changed = self._disabled != disabled
        self._disabled = disabled
        if changed and self._executor is not None:
            logger.info(f"{self._log_prefix} Leadership {'disabled' if disabled else 'enabled'}")
            self._executor.execute()

    async def start(self) -> None:
        """Start the notifier and the refresh loop."""
        if self._executor is not None:
            return

        logger.debug(f"{self._log_prefix} Starting leadership controller...")
        await self.notifier.start()
        self._executor = SerializedExecutor(
            self.refresh,
            name=f"leadership-controller-{self.group}",
            clock=self.clock,
            error_delay=self.config.retry_period_seconds,
        )
        # The worker task copies the current context
        with LogContext(group=self.group, identity=self.identity):
            self._executor.start()

    async def stop(self) -> None:
        """Stop refreshing. The lease is not released."""
        logger.debug(f"{self._log_prefix} Stopping leadership controller...")
        if self._executor is not None:
            await self._executor.shutdown()
        self._executor = None
        # An interrupted handover wait starts over on the next start()
        self._wait_elapsed = False
        await self.notifier.stop()

    async def refresh(self) -> Continuation:
        """Run one refresh step for the current state."""
        if self._state is LeadershipState.NOT_LEADER:
            return await self._refresh_not_leader()
        elif self._state is LeadershipState.BECOMING_LEADER:
            return self._refresh_becoming_leader()
        elif self._state is LeadershipState.LEADER:
            return await self._refresh_leader()
        elif self._state is LeadershipState.LOSING_LEADERSHIP:
            return self._refresh_losing_leadership()
        elif self._state is LeadershipState.LEADERSHIP_LOST:
            return await self._refresh_leadership_lost()
        raise InvariantViolation(f"Unsupported state {self._state}")

    # -------------------------------------------------------------------------
    # State handlers
    # -------------------------------------------------------------------------

    async def _refresh_not_leader(self) -> Continuation:
        """Monitor the lease and try to acquire it when possible."""
        logger.debug(f"{self._log_prefix} Not leader, pulling new data from the store")
        if not await self._lookup_new_leader_info():
            return self._reschedule()

        snapshot = self._snapshot()
        info = snapshot.leader_info
        now = self.clock.now()

        if info.has_empty_leader():
            logger.info(
                f"{self._log_prefix} The group {self.group} has no leader. "
                "Trying to acquire the leadership..."
            )
            if await self.try_acquire_leadership():
                logger.info(f"{self._log_prefix} Leadership acquired with immediate effect")
                self._transition(LeadershipState.LEADER)
                return Continuation.now()
            logger.info(
                f"{self._log_prefix} Unable to acquire the leadership, "
                "it may have been acquired by another member"
            )
        elif not info.has_valid_leader(now):
            logger.info(
                f"{self._log_prefix} Leadership has been lost by {info.leader}. "
                "Trying to acquire the leadership..."
            )
            if await self.try_acquire_leadership():
                logger.info(f"{self._log_prefix} Leadership acquired")
                self._transition(LeadershipState.BECOMING_LEADER)
                return Continuation.now()
            logger.info(
                f"{self._log_prefix} Unable to acquire the leadership, "
                "it may have been acquired by another member"
            )
        elif info.is_valid_leader(self.identity, now):
            # Still holding the lease, e.g. after a restart
            logger.info(f"{self._log_prefix} Leadership is already owned by this member")
            self._transition(LeadershipState.BECOMING_LEADER)
            return Continuation.now()

        # Observations come from the snapshot of this cycle
        self.notifier.refresh(
            snapshot.leader_info.leader,
            now,
            self.config.lease_duration_seconds,
            snapshot.members,
        )
        return self._reschedule()

    def _refresh_becoming_leader(self) -> Continuation:
        """Wait a full lease period before acting as leader.

        Even when this member already held the lease, an older incarnation
        of it may still be running and must be given time to shut down.
        """
        if not self._wait_elapsed:
            delay = self.config.lease_duration_seconds
            logger.info(
                f"{self._log_prefix} This member owns the leadership, "
                f"but it will be effective in {delay:.2f} seconds..."
            )
            self._wait_elapsed = True
            return Continuation.suspend(delay)

        logger.info(f"{self._log_prefix} This member is becoming the new leader now...")
        self._transition(LeadershipState.LEADER)
        return Continuation.now()

    async def _refresh_leader(self) -> Continuation:
        if self._disabled:
            logger.debug(f"{self._log_prefix} Leadership disabled, going to lose leadership")
            self._transition(LeadershipState.LOSING_LEADERSHIP)
            return Continuation.now()

        logger.debug(f"{self._log_prefix} Should be the leader, pulling new data from the store")
        time_before_pulling = self.clock.now()
        if not await self._lookup_new_leader_info():
            return self._reschedule()

        snapshot = self._snapshot()
        if snapshot.leader_info.is_valid_leader(self.identity, self.clock.now()):
            logger.debug(f"{self._log_prefix} Still the leader")
            self.notifier.refresh(
                self.identity,
                time_before_pulling,
                self.config.renew_deadline_seconds,
                snapshot.members,
            )
            await self._renew_lease(snapshot)
            return self._reschedule()

        logger.info(f"{self._log_prefix} This member has lost the leadership")
        self._transition(LeadershipState.NOT_LEADER)
        # An empty leader signals the loss
        self.notifier.refresh(
            None,
            self.clock.now(),
            self.config.lease_duration_seconds,
            snapshot.members,
        )
        # Restart from scratch to acquire leadership
        return Continuation.now()

    def _refresh_losing_leadership(self) -> Continuation:
        """Wait a full lease period before giving up the lease."""
        if not self._wait_elapsed:
            delay = self.config.lease_duration_seconds
            logger.info(
                f"{self._log_prefix} This member owns the leadership, "
                f"but it will be lost in {delay:.2f} seconds..."
            )
            self._wait_elapsed = True
            return Continuation.suspend(delay)

        logger.info(f"{self._log_prefix} This member is losing leadership now...")
        self._transition(LeadershipState.LEADERSHIP_LOST)
        return Continuation.now()

    async def _refresh_leadership_lost(self) -> Continuation:
        """Local leader activity has stopped, free the lease."""
        if not await self._lookup_new_leader_info():
            return self._reschedule()

        if self.identity not in self._snapshot().members:
            # Lease cannot be cleared by a non-member, it lapses on its own
            logger.info(
                f"{self._log_prefix} No longer listed as a member, "
                "considering the leadership already yielded"
            )
        elif not await self.yield_leadership():
            return self._reschedule()

        logger.info(f"{self._log_prefix} This member has lost leadership")
        self._transition(LeadershipState.NOT_LEADER)
        return Continuation.now()

    # -------------------------------------------------------------------------
    # Lease protocol
    # -------------------------------------------------------------------------

    async def try_acquire_leadership(self) -> bool:
        """Try to become the leader of the group.

        Creates the lease when none exists, otherwise swaps this member in
        with a conditional write if the current leader has expired.

        Returns:
            True if the lease now names this member
        """
        if self._disabled:
            logger.debug(f"{self._log_prefix} Won't try to acquire the leadership, disabled")
            return False

        logger.debug(f"{self._log_prefix} Trying to acquire the leadership...")
        snapshot = self._latest
        if snapshot is None:
            logger.warning(f"{self._log_prefix} No leader info or members available yet")
            return False
        if self.identity not in snapshot.members:
            logger.warning(
                f"{self._log_prefix} The members {sorted(snapshot.members)} do not contain "
                "this member. Cannot acquire leadership."
            )
            return False

        now = self.clock.now()
        new_info = LeaderInfo(
            group=self.group,
            leader=self.identity,
            acquire_time=now,
            lease_duration_seconds=self.config.lease_duration_seconds,
            members=snapshot.members,
        )

        if snapshot.record is None:
            logger.debug(
                f"{self._log_prefix} Lease {self.config.resource_name} is not present, "
                "a new one will be created"
            )
            result = await self._write(
                "create",
                lambda: self.gateway.create(self.namespace, self.config.resource_name, new_info),
            )
            if not result.ok:
                logger.info(
                    f"{self._log_prefix} Unable to create the lease, it may have been "
                    f"created by another member concurrently ({result.reason})"
                )
                return False
        else:
            current = self.gateway.decode(snapshot.record, snapshot.members, self.group)
            if current.has_valid_leader(now):
                logger.debug(
                    f"{self._log_prefix} Another member ({current.leader}) is the current "
                    "leader and it is still active"
                )
                return False

            record = snapshot.record
            result = await self._write("acquire", lambda: self.gateway.acquire(record, new_info))
            if not result.ok:
                logger.info(
                    f"{self._log_prefix} Unable to update the lease to set leadership "
                    f"information ({result.reason})"
                )
                return False

        logger.debug(f"{self._log_prefix} Lease {self.config.resource_name} updated")
        self._update_latest(result.record, snapshot.members)
        return True

    async def yield_leadership(self) -> bool:
        """Clear this member's leadership from the lease.

        Returns:
            True if the lease no longer names this member
        """
        logger.debug(f"{self._log_prefix} Trying to yield the leadership...")
        snapshot = self._latest
        if snapshot is None:
            logger.warning(f"{self._log_prefix} No leader info or members available yet")
            return False
        if self.identity not in snapshot.members:
            logger.warning(
                f"{self._log_prefix} The members {sorted(snapshot.members)} do not contain "
                "this member. Cannot yield the leadership."
            )
            return False

        if snapshot.record is None:
            return True

        info = self.gateway.decode(snapshot.record, snapshot.members, self.group)
        if not info.is_valid_leader(self.identity, self.clock.now()):
            return True

        record = snapshot.record
        result = await self._write("clear", lambda: self.gateway.clear(record, self.group))
        if not result.ok:
            logger.info(
                f"{self._log_prefix} Unable to remove leadership information from the lease "
                f"({result.reason})"
            )
            return False

        logger.debug(f"{self._log_prefix} Lease {self.config.resource_name} cleared")
        self._update_latest(result.record, snapshot.members)
        return True

    async def _renew_lease(self, snapshot: LeaseSnapshot) -> None:
        record = snapshot.record
        if record is None:
            return
        result = await self._write(
            "renew", lambda: self.gateway.renew(record, self.config.renew_deadline_seconds)
        )
        if result.ok:
            self._update_latest(result.record, snapshot.members)
        else:
            logger.info(f"{self._log_prefix} Unable to renew the lease ({result.reason})")

    async def _write(
        self, operation: str, call: Callable[[], Awaitable[WriteResult]]
    ) -> WriteResult:
        """Run a gateway write, converting unexpected errors into a failed result."""
        try:
            result: WriteResult = await call()
        except Exception as e:
            logger.warning(f"{self._log_prefix} Lease {operation} failed")
            logger.debug(f"{self._log_prefix} Error during lease {operation}", exc_info=True)
            result = WriteResult.error(str(e))
        record_lease_operation(self.group, operation, result.status.value)
        return result

    # -------------------------------------------------------------------------
    # Snapshot
    # -------------------------------------------------------------------------

    async def _lookup_new_leader_info(self) -> bool:
        """Pull the lease and the members. False if either lookup failed."""
        logger.debug(f"{self._log_prefix} Looking up leadership information...")

        try:
            record = await self.gateway.fetch(
                self.namespace, self.config.resource_name, self.group
            )
        except Exception:
            logger.warning(
                f"{self._log_prefix} Unable to retrieve the lease {self.config.resource_name} "
                f"for group {self.group}"
            )
            logger.debug(f"{self._log_prefix} Error during lease lookup", exc_info=True)
            record_lookup_failure(self.group, "lease")
            return False

        try:
            members = await self.membership.list_healthy_members(
                self.namespace, self.config.member_selector
            )
            if members is None:
                raise ValueError("Retrieved a null set of members")
        except Exception:
            logger.warning(f"{self._log_prefix} Unable to retrieve the list of members")
            logger.debug(f"{self._log_prefix} Error during members lookup", exc_info=True)
            record_lookup_failure(self.group, "membership")
            return False

        self._update_latest(record, frozenset(members))
        return True

    def _update_latest(self, record: LeaseRecord | None, members: frozenset[str]) -> None:
        # Single assignment: readers never see members and leader info of different lookups
        self._latest = LeaseSnapshot(
            record=record,
            members=members,
            leader_info=self.gateway.decode(record, members, self.group),
        )
        logger.debug(f"{self._log_prefix} Current leader info: {self._latest.leader_info}")

    def _snapshot(self) -> LeaseSnapshot:
        if self._latest is None:
            raise InvariantViolation("Leader info requested before any lookup")
        return self._latest

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------

    def _transition(self, target: LeadershipState) -> None:
        source = self._state
        self._state = target
        self._wait_elapsed = False
        record_transition(self.group, self.identity, source.value, target.value)

    def _reschedule(self) -> Continuation:
        return Continuation.after(self.retry_delay())

    def retry_delay(self) -> float:
        """Jittered steady-state polling delay."""
        return jitter(self.config.retry_period_seconds, self.config.jitter_factor, self.rng)
