"""
Tests for musicdirect.core.events wire shapes.
"""

from __future__ import annotations

import pytest

from musicdirect.core.events import (
    NotificationEvent,
    OpaqueEvent,
    ReorderedEvent,
    TrackAddedEvent,
    TrackRemovedEvent,
    TransportCommand,
    TransportEvent,
)


class TestEventPayloads:
    """The JSON objects pushed to clients."""

    @pytest.mark.parametrize("command", list(TransportCommand))
    def test_transport(self, command: TransportCommand) -> None:
        assert TransportEvent(command=command).to_dict() == {"type": command.value}

    def test_transport_accepts_plain_string(self) -> None:
        event = TransportEvent(command="pause", room="AB12C")
        assert event.command is TransportCommand.PAUSE
        assert event.to_dict() == {"type": "pause", "room": "AB12C"}

    def test_notification(self) -> None:
        event = NotificationEvent(message="hello")
        assert event.to_dict() == {"type": "notification", "message": "hello"}

    def test_track_added(self) -> None:
        event = TrackAddedEvent(room="AB12C", track={"track_id": 1, "position": 0})
        assert event.to_dict() == {
            "type": "track-added",
            "room": "AB12C",
            "track": {"track_id": 1, "position": 0},
        }

    def test_track_removed(self) -> None:
        event = TrackRemovedEvent(room="AB12C", track_id=12345)
        assert event.to_dict() == {"type": "track-removed", "room": "AB12C", "trackID": 12345}

    def test_reordered(self) -> None:
        event = ReorderedEvent(track_id=5, position=2)
        assert event.to_dict() == {"type": "reordered", "trackID": 5, "position": 2}

    def test_type_key_comes_first(self) -> None:
        event = TrackRemovedEvent(room="AB12C", track_id=1)
        assert next(iter(event.to_dict())) == "type"


class TestOpaqueEvent:
    """Pass-through events."""

    def test_payload_is_unchanged(self) -> None:
        payload = {"type": "vote", "value": [1, 2, 3]}
        event = OpaqueEvent(payload=payload)

        assert event.event_type == "vote"
        assert event.to_dict() == payload
        assert event.to_dict() is not payload

    @pytest.mark.parametrize("payload", [{}, {"type": ""}, {"type": 3}])
    def test_type_is_required(self, payload: dict) -> None:
        with pytest.raises(ValueError):
            OpaqueEvent(payload=payload)
