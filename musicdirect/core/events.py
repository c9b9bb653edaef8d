"""
Real-time events for MusicDirect.

Every event is a dataclass with a `type` discriminator and an optional room
code. `to_dict()` yields the JSON object pushed to WebSocket clients.

Event types:
- next / prev / pause / now: transport commands relayed to the player client
- notification: free-form message (e.g. from the bot front-end)
- track-added: a track joined the room's playlist
- track-removed: a track left the room's playlist
- reordered: a track's position hint changed
- anything else: `OpaqueEvent`, passed through unchanged

Usage:
    hub.publish(TransportEvent(command=TransportCommand.NEXT, room="AB12C"))
    hub.publish(NotificationEvent(message="Party starts at 9", room=None))
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class TransportCommand(Enum):
    """Playback commands relayed to the room's designated player."""

    NEXT = "next"
    PREV = "prev"
    PAUSE = "pause"
    NOW = "now"


@dataclass
class Event:
    """
    Base class for all events.

    `room` is the room code the event is scoped to; None means the event is
    addressed to every connection.
    """

    event_type: str = ""
    room: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert event to dictionary for JSON serialization."""
        return self._envelope()

    def _envelope(self, **fields: Any) -> dict[str, Any]:
        result: dict[str, Any] = {"type": self.event_type}
        if self.room is not None:
            result["room"] = self.room
        result.update(fields)
        return result


@dataclass
class TransportEvent(Event):
    """Fired for next/prev/pause/now. The hub does not track playback state."""

    command: TransportCommand = TransportCommand.NOW

    def __post_init__(self) -> None:
        self.command = TransportCommand(self.command)
        self.event_type = self.command.value


@dataclass
class NotificationEvent(Event):
    """Free-form message for display on clients."""

    event_type: str = field(default="notification", init=False)
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return self._envelope(message=self.message)


@dataclass
class TrackAddedEvent(Event):
    """
    Fired after a track is added to a room.

    `track` carries whatever is known about the track: the full resolved
    metadata, or just `track_id`/`position` when the catalog was unavailable.
    """

    event_type: str = field(default="track-added", init=False)
    track: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return self._envelope(track=self.track)


@dataclass
class TrackRemovedEvent(Event):
    """Fired after a track is removed from a room."""

    event_type: str = field(default="track-removed", init=False)
    track_id: int = 0

    def to_dict(self) -> dict[str, Any]:
        return self._envelope(trackID=self.track_id)


@dataclass
class ReorderedEvent(Event):
    """Hint that a track's position changed; clients should re-fetch the list."""

    event_type: str = field(default="reordered", init=False)
    track_id: int = 0
    position: int = 0

    def to_dict(self) -> dict[str, Any]:
        return self._envelope(trackID=self.track_id, position=self.position)


@dataclass
class OpaqueEvent(Event):
    """
    Arbitrary structured message passed through untouched.

    The payload must carry a string `type`; the hub never inspects the rest.
    """

    payload: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        event_type = self.payload.get("type")
        if not isinstance(event_type, str) or not event_type:
            raise ValueError("Opaque event payload requires a string 'type'")
        self.event_type = event_type

    def to_dict(self) -> dict[str, Any]:
        return dict(self.payload)
