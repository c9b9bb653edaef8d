"""
DB models (DTOs) for the MusicDirect store.

This module is intentionally lightweight:
- No DB connection knowledge
- No SQL
- Pure dataclasses
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class RoomRow:
    """Room record as stored in SQLite."""

    id: int
    code: str
    created_at: float

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "code": self.code, "created_at": self.created_at}


@dataclass(frozen=True, slots=True)
class PlaylistEntry:
    """
    Membership of a track in a room's playlist.

    Notes:
    - `(room_id, track_id)` is the deduplication key.
    - `id` is the row id and doubles as the insertion order used to break
      `position` ties when listing.
    """

    id: int
    room_id: int
    track_id: int
    position: int
    date_added: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "room_id": self.room_id,
            "track_id": self.track_id,
            "position": self.position,
            "date_added": self.date_added,
        }


@dataclass(frozen=True, slots=True)
class SettingsRow:
    """Catalog credentials. Opaque to the core; read by the catalog resolver."""

    id: int
    user_id: int
    access_token: str
