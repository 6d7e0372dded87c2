"""Cluster events delivered to application code."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Protocol, runtime_checkable


class ClusterEventType(str, Enum):
    LEADERSHIP_CHANGED = "leadership_changed"
    MEMBERS_CHANGED = "members_changed"


@dataclass(frozen=True)
class ClusterEvent:
    """A leadership or membership change observed for a group."""

    event_type: ClusterEventType
    leader: str | None = None
    members: frozenset[str] = field(default_factory=frozenset)


@runtime_checkable
class ClusterEventHandler(Protocol):
    """Receives leadership and membership changes.

    ``leader`` is None when the group has no valid leader.
    """

    async def on_leadership_changed(self, leader: str | None) -> None: ...

    async def on_members_changed(self, members: frozenset[str]) -> None: ...


class CallbackEventHandler:
    """Adapts a single ``ClusterEvent`` callback to ``ClusterEventHandler``.

    Example:
        async def on_event(event: ClusterEvent) -> None:
            print(event.event_type, event.leader)

        handler = CallbackEventHandler(on_event)
    """

    def __init__(self, callback: Callable[[ClusterEvent], Awaitable[None]]) -> None:
        self.callback = callback
        self._members: frozenset[str] = frozenset()
        self._leader: str | None = None

    async def on_leadership_changed(self, leader: str | None) -> None:
        self._leader = leader
        await self.callback(
            ClusterEvent(ClusterEventType.LEADERSHIP_CHANGED, leader=leader, members=self._members)
        )

    async def on_members_changed(self, members: frozenset[str]) -> None:
        self._members = members
        await self.callback(
            ClusterEvent(ClusterEventType.MEMBERS_CHANGED, leader=self._leader, members=members)
        )
