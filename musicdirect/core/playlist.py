"""
Playlist coordination for MusicDirect.

The coordinator is the only component that decides playlist membership and
order. It sits between the control surfaces (REST, bot commands) and the
store, and publishes a notification through the broadcast hub after every
successful mutation.

Design decisions:
- Membership is authoritative in the store; catalog metadata is presentation
  only. A catalog failure never rolls back an add and never aborts a listing.
- Dedup check + insert (and reposition) run under a per-room asyncio lock, so
  two calls for the same (room, track) cannot interleave. The store's unique
  index is a second line of defence and maps to the same DuplicateTrack.
- Positions are independent integer hints. Listing sorts by
  (position, insertion order); nothing is renumbered.
- Transport commands are a stateless relay; playback state lives in the
  client acting as the room's player.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from musicdirect.core import DuplicateTrack, NotFoundError, ResolutionError
from musicdirect.core.catalog import CatalogResolver, TrackMetadata
from musicdirect.core.db.models import PlaylistEntry, RoomRow
from musicdirect.core.events import (
    NotificationEvent,
    ReorderedEvent,
    TrackAddedEvent,
    TrackRemovedEvent,
    TransportCommand,
    TransportEvent,
)
from musicdirect.core.hub import BroadcastHub
from musicdirect.core.rooms import RoomRegistry, normalize_code
from musicdirect.core.store import StoreDb
from musicdirect.core.track_ref import extract_track_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ResolvedTrack:
    """A playlist entry joined with its catalog metadata."""

    track_id: int
    position: int
    title: str
    artist: str
    cover_url: str
    duration_ms: int
    stream_url: str

    @classmethod
    def from_entry(cls, entry: PlaylistEntry, meta: TrackMetadata) -> ResolvedTrack:
        return cls(
            track_id=entry.track_id,
            position=entry.position,
            title=meta.title,
            artist=meta.artist,
            cover_url=meta.cover_url,
            duration_ms=meta.duration_ms,
            stream_url=meta.stream_url,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "track_id": self.track_id,
            "title": self.title,
            "artist": self.artist,
            "track_url": self.stream_url,
            "cover_uri": self.cover_url,
            "position": self.position,
            "duration_ms": self.duration_ms,
        }


@dataclass(frozen=True, slots=True)
class AddTrackResult:
    """
    Outcome of `add_track`.

    `track` is None when the catalog could not resolve the track; `warning`
    then explains why. The entry is stored either way.
    """

    entry: PlaylistEntry
    track: ResolvedTrack | None = None
    warning: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "entry": self.entry.to_dict(),
            "track": self.track.to_dict() if self.track else None,
        }
        if self.warning:
            result["warning"] = self.warning
        return result


class PlaylistCoordinator:
    """
    Enforces per-room dedup and ordering on top of the store.

    All room arguments are room codes as typed by users; they are resolved
    through the RoomRegistry (raising NotFoundError for unknown rooms).
    """

    def __init__(
        self,
        db: StoreDb,
        rooms: RoomRegistry,
        hub: BroadcastHub,
        resolver: CatalogResolver,
        *,
        resolve_timeout_s: float = 10.0,
    ) -> None:
        self._db = db
        self._rooms = rooms
        self._hub = hub
        self._resolver = resolver
        self.resolve_timeout_s = resolve_timeout_s
        self._room_locks: dict[int, asyncio.Lock] = {}

    @property
    def resolver(self) -> CatalogResolver:
        return self._resolver

    def set_resolver(self, resolver: CatalogResolver) -> CatalogResolver:
        """Swap the catalog resolver (e.g. after new credentials). Returns the old one."""
        old, self._resolver = self._resolver, resolver
        return old

    def _room_lock(self, room_id: int) -> asyncio.Lock:
        lock = self._room_locks.get(room_id)
        if lock is None:
            lock = self._room_locks[room_id] = asyncio.Lock()
        return lock

    # -------------------------------------------------------------------------
    # Room lifecycle
    # -------------------------------------------------------------------------

    async def delete_room(self, room_code: str) -> bool:
        """
        Delete a room and its playlist, then release its lock and connections.

        Returns False if the room did not exist.
        """
        room = await self._rooms.get_room_or_none(room_code)
        if room is None:
            return False

        async with self._room_lock(room.id):
            deleted = await self._rooms.delete_room(room.code)
        if deleted:
            await self._forget_room(room)
        return deleted

    async def reap_expired(self, max_age_s: float, *, now: float | None = None) -> list[RoomRow]:
        """Delete rooms older than `max_age_s` and release what they held."""
        reaped = await self._rooms.reap_expired(max_age_s, now=now)
        for room in reaped:
            await self._forget_room(room)
        return reaped

    async def _forget_room(self, room: RoomRow) -> None:
        # Room ids are never reused, so the lock would otherwise live forever
        self._room_locks.pop(room.id, None)
        closed = await self._hub.close_room(room.code)
        if closed:
            logger.info("Closed %d connections of deleted room %s", closed, room.code)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def add_track(self, room_code: str, raw_reference: str) -> AddTrackResult:
        """
        Add a track to a room's playlist.

        Args:
            room_code: Code of the target room.
            raw_reference: Bare track id or catalog URL.

        Returns:
            The stored entry plus metadata, when the catalog could resolve it.

        Raises:
            InvalidTrackReference: if the reference cannot be parsed.
            NotFoundError: if the room does not exist.
            DuplicateTrack: if the track is already in the room.
            StorageError: if the store fails.
        """
        track_id = extract_track_id(raw_reference)
        room = await self._rooms.get_room(room_code)

        async with self._room_lock(room.id):
            if await self._db.entry_exists(room.id, track_id):
                raise DuplicateTrack(room.id, track_id)
            entry = await self._db.insert_entry(room.id, track_id, position=0)

        logger.info("Added track %d to room %s", track_id, room.code)

        track: ResolvedTrack | None = None
        warning: str | None = None
        try:
            meta = await self._resolve(track_id)
            track = ResolvedTrack.from_entry(entry, meta)
        except ResolutionError as e:
            warning = f"Track added without metadata: {e}"
            logger.warning("Metadata unavailable for track %d in room %s: %s", track_id, room.code, e)

        payload = track.to_dict() if track else {"track_id": track_id, "position": entry.position}
        await self._hub.publish(TrackAddedEvent(room=room.code, track=payload))

        return AddTrackResult(entry=entry, track=track, warning=warning)

    async def remove_track(self, room_code: str, track_id: int) -> PlaylistEntry:
        """
        Remove a track from a room's playlist.

        Raises:
            NotFoundError: if the room does not exist or the track is not in it.
        """
        code = normalize_code(room_code)
        room = await self._db.get_room_by_code(code)
        if room is None:
            logger.info("Remove of track %d rejected: room %s does not exist", track_id, code)
            raise NotFoundError(f"Room {room_code!r} not found")

        async with self._room_lock(room.id):
            entry = await self._db.get_entry(room.id, track_id)
            if entry is None or not await self._db.delete_entry(room.id, track_id):
                logger.info("Remove rejected: track %d is not in room %s", track_id, room.code)
                raise NotFoundError(f"Track {track_id} not found in room {room.code}")

        logger.info("Removed track %d from room %s", track_id, room.code)
        await self._hub.publish(TrackRemovedEvent(room=room.code, track_id=int(track_id)))
        return entry

    async def reposition(self, room_code: str, track_id: int, position: int) -> PlaylistEntry:
        """
        Set a track's position hint. Other entries are left untouched.

        Raises:
            NotFoundError: if the room or the entry does not exist.
        """
        room = await self._rooms.get_room(room_code)

        async with self._room_lock(room.id):
            if not await self._db.set_position(room.id, track_id, position):
                logger.info("Reposition rejected: track %d is not in room %s", track_id, room.code)
                raise NotFoundError(f"Track {track_id} not found in room {room.code}")
            entry = await self._db.get_entry(room.id, track_id)

        if entry is None:
            raise NotFoundError(f"Track {track_id} not found in room {room.code}")

        logger.debug("Track %d in room %s moved to position %d", track_id, room.code, position)
        await self._hub.publish(
            ReorderedEvent(room=room.code, track_id=int(track_id), position=int(position))
        )
        return entry

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def list_playlist(self, room_code: str) -> list[ResolvedTrack]:
        """
        Resolve a room's playlist in (position, insertion) order.

        Tracks the catalog cannot resolve are skipped and not retried; the
        result is the best-effort set of currently resolvable tracks.
        """
        room = await self._rooms.get_room(room_code)
        entries = await self._db.list_entries(room.id)
        if not entries:
            return []

        results = await asyncio.gather(
            *(self._resolve(e.track_id) for e in entries),
            return_exceptions=True,
        )

        tracks: list[ResolvedTrack] = []
        for entry, result in zip(entries, results):
            if isinstance(result, ResolutionError):
                logger.warning(
                    "Skipping track %d in room %s: %s", entry.track_id, room.code, result
                )
                continue
            if isinstance(result, BaseException):
                raise result
            tracks.append(ResolvedTrack.from_entry(entry, result))
        return tracks

    async def list_entries(self, room_code: str) -> list[PlaylistEntry]:
        """Raw playlist entries in listing order, without catalog lookups."""
        room = await self._rooms.get_room(room_code)
        return await self._db.list_entries(room.id)

    async def list_track_ids(self, room_code: str) -> list[int]:
        return [e.track_id for e in await self.list_entries(room_code)]

    async def resolve_track(self, track_id: int) -> TrackMetadata:
        """Look up one track in the catalog. Raises ResolutionError."""
        return await self._resolve(track_id)

    async def _resolve(self, track_id: int) -> TrackMetadata:
        try:
            return await asyncio.wait_for(
                self._resolver.resolve(track_id), timeout=self.resolve_timeout_s
            )
        except asyncio.TimeoutError as e:
            raise ResolutionError(
                f"Catalog lookup for track {track_id} timed out after {self.resolve_timeout_s}s"
            ) from e
        except ResolutionError:
            raise
        except Exception as e:
            # Resolver bugs degrade to missing metadata like any catalog failure
            logger.exception("Resolver error for track %d", track_id)
            raise ResolutionError(f"Catalog lookup for track {track_id} failed: {e!r}") from e

    # -------------------------------------------------------------------------
    # Signaling
    # -------------------------------------------------------------------------

    async def transport(
        self, command: TransportCommand | str, room_code: str | None = None
    ) -> TransportEvent:
        """
        Relay a transport command (next/prev/pause/now).

        With a room code the command is scoped to that room (which must
        exist); without one it is addressed to every connection.
        """
        command = TransportCommand(command)
        room = await self._scope(room_code)
        event = TransportEvent(command=command, room=room)
        await self._hub.publish(event)
        logger.info("Transport %s relayed to %s", command.value, room or "all rooms")
        return event

    async def notify(self, message: str, room_code: str | None = None) -> NotificationEvent:
        """Broadcast a free-form notification."""
        room = await self._scope(room_code)
        event = NotificationEvent(message=message, room=room)
        await self._hub.publish(event)
        return event

    async def _scope(self, room_code: str | None) -> str | None:
        if not room_code:
            return None
        return (await self._rooms.get_room(room_code)).code
