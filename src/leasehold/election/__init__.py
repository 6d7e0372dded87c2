"""Lease-based leader election.

Provides:
- LeadershipController: the election state machine
- Lease gateways (in-memory, Redis) and membership providers
- TimedLeaderNotifier turning observations into cluster events
- LeaderElection facade and the leader_only decorator

Example:
    from leasehold.election import LeaderElection

    election = await LeaderElection.from_settings(settings)
    async with election:
        if await election.wait_for_leadership(timeout=60):
            await run_singleton_work()
"""

from leasehold.election.controller import (
    LeadershipController,
    LeadershipState,
    LeaseSnapshot,
    jitter,
)
from leasehold.election.election import LeaderElection, leader_only
from leasehold.election.errors import (
    InvariantViolation,
    LeaseholdError,
    LeaseStoreError,
    MembershipError,
)
from leasehold.election.events import (
    CallbackEventHandler,
    ClusterEvent,
    ClusterEventHandler,
    ClusterEventType,
)
from leasehold.election.executor import Continuation, ContinuationKind, SerializedExecutor
from leasehold.election.leader_info import LeaderInfo
from leasehold.election.lease import LeaseGateway, LeaseRecord, WriteResult, WriteStatus
from leasehold.election.membership import (
    MembershipHeartbeat,
    MembershipProvider,
    RedisMembershipProvider,
    StaticMembershipProvider,
)
from leasehold.election.memory import InMemoryLeaseGateway
from leasehold.election.notifier import TimedLeaderNotifier
from leasehold.election.redis_lease import RedisLeaseGateway

__all__ = [
    # Controller
    "LeadershipController",
    "LeadershipState",
    "LeaseSnapshot",
    "jitter",
    "Continuation",
    "ContinuationKind",
    "SerializedExecutor",
    # Facade
    "LeaderElection",
    "leader_only",
    # Model
    "LeaderInfo",
    "LeaseRecord",
    "WriteResult",
    "WriteStatus",
    # Collaborators
    "LeaseGateway",
    "InMemoryLeaseGateway",
    "RedisLeaseGateway",
    "MembershipProvider",
    "StaticMembershipProvider",
    "RedisMembershipProvider",
    "MembershipHeartbeat",
    "TimedLeaderNotifier",
    # Events
    "ClusterEvent",
    "ClusterEventHandler",
    "ClusterEventType",
    "CallbackEventHandler",
    # Errors
    "LeaseholdError",
    "LeaseStoreError",
    "MembershipError",
    "InvariantViolation",
]
