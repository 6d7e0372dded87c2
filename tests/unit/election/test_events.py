"""Tests for cluster events."""

from leasehold.election.events import (
    CallbackEventHandler,
    ClusterEvent,
    ClusterEventHandler,
    ClusterEventType,
)


class TestCallbackEventHandler:
    """Tests for CallbackEventHandler."""

    async def test_events_carry_latest_view(self) -> None:
        """Each event includes the last known leader and members."""
        events: list[ClusterEvent] = []

        async def on_event(event: ClusterEvent) -> None:
            events.append(event)

        handler = CallbackEventHandler(on_event)
        await handler.on_members_changed(frozenset({"a", "b"}))
        await handler.on_leadership_changed("a")
        await handler.on_leadership_changed(None)

        assert events == [
            ClusterEvent(ClusterEventType.MEMBERS_CHANGED, None, frozenset({"a", "b"})),
            ClusterEvent(ClusterEventType.LEADERSHIP_CHANGED, "a", frozenset({"a", "b"})),
            ClusterEvent(ClusterEventType.LEADERSHIP_CHANGED, None, frozenset({"a", "b"})),
        ]

    def test_satisfies_protocol(self) -> None:
        async def on_event(event: ClusterEvent) -> None:
            pass

        assert isinstance(CallbackEventHandler(on_event), ClusterEventHandler)

    def test_event_type_values(self) -> None:
        assert ClusterEventType.LEADERSHIP_CHANGED.value == "leadership_changed"
        assert ClusterEventType.MEMBERS_CHANGED.value == "members_changed"
