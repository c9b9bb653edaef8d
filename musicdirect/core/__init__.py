"""
Core domain package.

This package holds the room/playlist synchronization engine: the persistent
track store, the room registry, the playlist coordinator and the broadcast hub.
It is independent of the web layer; the control surfaces in `musicdirect.web`
translate the exceptions below into HTTP responses.

Consumers should import from the specific module they need
(e.g. `musicdirect.core.playlist`).
"""

from __future__ import annotations

__all__: list[str] = [
    "CodeSpaceExhausted",
    "CoreError",
    "DuplicateTrack",
    "InvalidTrackReference",
    "NotFoundError",
    "ResolutionError",
    "StorageError",
]


class CoreError(Exception):
    """Base class for core-layer exceptions."""


class InvalidTrackReference(CoreError):
    """Raised when user input cannot be parsed into a track identifier."""


class DuplicateTrack(CoreError):
    """Raised when a track is already present in the room's playlist."""

    def __init__(self, room_id: int, track_id: int) -> None:
        super().__init__(f"Track {track_id} is already in the playlist of room {room_id}")
        self.room_id = room_id
        self.track_id = track_id


class NotFoundError(CoreError):
    """Raised when a room or playlist entry cannot be found."""


class ResolutionError(CoreError):
    """
    Raised by catalog resolvers when track metadata is unavailable.

    This is a soft failure: the coordinator degrades (skips or strips
    metadata) instead of failing the operation.
    """


class StorageError(CoreError):
    """Raised when the underlying store fails; always propagated to the caller."""


class CodeSpaceExhausted(CoreError):
    """Raised when no unused room code could be found within the retry budget."""
