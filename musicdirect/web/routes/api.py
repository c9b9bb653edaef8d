"""
REST API Routes for MusicDirect.

Provides REST endpoints for the web UI and chat front-ends:
- /api/room/*: Room lifecycle
- /api/tracks/*: Playlist membership and order
- /api/track/{id}: Catalog lookup
- /api/transport/{command}, /api/notify: Real-time signaling
- /api/command: Chat-bot relay
- /api/settings: Catalog credentials
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, HTTPException, Query, Response
from pydantic import BaseModel, Field

from musicdirect.core import (
    CodeSpaceExhausted,
    CoreError,
    DuplicateTrack,
    InvalidTrackReference,
    NotFoundError,
    ResolutionError,
    StorageError,
)
from musicdirect.core.catalog import build_resolver
from musicdirect.core.events import TransportCommand

if TYPE_CHECKING:
    from musicdirect.config import ServerConfig
    from musicdirect.core.playlist import PlaylistCoordinator
    from musicdirect.core.rooms import RoomRegistry
    from musicdirect.core.store import StoreDb
    from musicdirect.web.commands import CommandDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(tags=["api"])

# References set during route registration
_store: StoreDb | None = None
_rooms: RoomRegistry | None = None
_coordinator: PlaylistCoordinator | None = None
_dispatcher: CommandDispatcher | None = None
_config: ServerConfig | None = None

# Most specific first: DuplicateTrack etc. are all CoreErrors
_STATUS_BY_ERROR: list[tuple[type[CoreError], int]] = [
    (InvalidTrackReference, 400),
    (NotFoundError, 404),
    (DuplicateTrack, 409),
    (ResolutionError, 502),
    (CodeSpaceExhausted, 503),
    (StorageError, 500),
]


def register_api_routes(
    app,
    store: StoreDb,
    rooms: RoomRegistry,
    coordinator: PlaylistCoordinator,
    dispatcher: CommandDispatcher,
    config: ServerConfig | None = None,
) -> None:
    """
    Register API routes with the FastAPI app.

    Args:
        app: FastAPI application instance
        store: StoreDb used for catalog settings
        rooms: RoomRegistry for room lifecycle
        coordinator: PlaylistCoordinator for playlist and signaling
        dispatcher: CommandDispatcher for chat text
        config: Optional ServerConfig (catalog endpoint and timeout)
    """
    global _store, _rooms, _coordinator, _dispatcher, _config
    _store = store
    _rooms = rooms
    _coordinator = coordinator
    _dispatcher = dispatcher
    _config = config
    app.include_router(router)


def _http_error(exc: CoreError) -> HTTPException:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            if status >= 500:
                logger.error("Request failed: %s", exc)
            return HTTPException(status_code=status, detail=str(exc))
    logger.error("Unmapped core error: %s", exc)
    return HTTPException(status_code=500, detail=str(exc))


def _require_coordinator() -> PlaylistCoordinator:
    if _coordinator is None:
        raise HTTPException(status_code=503, detail="Server not initialized")
    return _coordinator


def _require_rooms() -> RoomRegistry:
    if _rooms is None:
        raise HTTPException(status_code=503, detail="Server not initialized")
    return _rooms


# =============================================================================
# Request bodies
# =============================================================================


class RoomCodeBody(BaseModel):
    room_code: str = Field(min_length=1)


class AddTrackBody(BaseModel):
    room_code: str = Field(min_length=1)
    track_url: str


class DeleteTrackBody(BaseModel):
    room_code: str = Field(min_length=1)
    track_id: int


class ChangePositionBody(BaseModel):
    room_code: str = Field(min_length=1)
    track_id: int
    position: int


class TransportBody(BaseModel):
    room_code: str | None = None


class NotifyBody(BaseModel):
    message: str = Field(min_length=1)
    room_code: str | None = None


class CommandBody(BaseModel):
    text: str
    room_code: str | None = None


class SettingsBody(BaseModel):
    user_id: int
    access_token: str = Field(min_length=1)


# =============================================================================
# Rooms
# =============================================================================


@router.post("/api/room/create")
async def create_room() -> dict[str, Any]:
    """Create a room with a fresh code."""
    rooms = _require_rooms()
    try:
        room = await rooms.create_room()
    except CoreError as e:
        raise _http_error(e) from e
    return {"id": room.id, "code": room.code}


@router.post("/api/room/join")
async def join_room(body: RoomCodeBody) -> dict[str, Any]:
    """Check that a room exists and return its identity."""
    rooms = _require_rooms()
    try:
        room = await rooms.get_room(body.room_code)
    except CoreError as e:
        raise _http_error(e) from e
    return {"room_id": room.id, "code": room.code}


@router.delete("/api/room/{code}", status_code=204)
async def delete_room(code: str) -> Response:
    """Delete a room and its playlist, closing its WebSocket connections."""
    coordinator = _require_coordinator()
    try:
        deleted = await coordinator.delete_room(code)
    except CoreError as e:
        raise _http_error(e) from e
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Room {code!r} not found")
    return Response(status_code=204)


# =============================================================================
# Playlist
# =============================================================================


async def _resolved_playlist(room_code: str) -> list[dict[str, Any]]:
    coordinator = _require_coordinator()
    try:
        tracks = await coordinator.list_playlist(room_code)
    except CoreError as e:
        raise _http_error(e) from e
    return [track.to_dict() for track in tracks]


@router.get("/api/tracks")
async def list_tracks(room_code: str = Query(min_length=1)) -> list[dict[str, Any]]:
    """Resolved playlist of a room in play order."""
    return await _resolved_playlist(room_code)


@router.get("/api/room/status")
async def room_status(room_code: str = Query(min_length=1)) -> list[dict[str, Any]]:
    """Same listing as /api/tracks, kept for the player page."""
    return await _resolved_playlist(room_code)


@router.get("/api/tracks/all")
async def list_track_ids(room_code: str = Query(min_length=1)) -> list[int]:
    """Track ids of a room's playlist, without catalog lookups."""
    coordinator = _require_coordinator()
    try:
        return await coordinator.list_track_ids(room_code)
    except CoreError as e:
        raise _http_error(e) from e


@router.post("/api/tracks", status_code=201)
async def add_track(body: AddTrackBody) -> dict[str, Any]:
    """Add a track by URL or bare id."""
    coordinator = _require_coordinator()
    try:
        result = await coordinator.add_track(body.room_code, body.track_url)
    except CoreError as e:
        raise _http_error(e) from e
    return result.to_dict()


@router.post("/api/tracks/delete")
async def delete_track(body: DeleteTrackBody) -> dict[str, Any]:
    """Remove a track from a room."""
    coordinator = _require_coordinator()
    try:
        entry = await coordinator.remove_track(body.room_code, body.track_id)
    except CoreError as e:
        raise _http_error(e) from e
    return {"status": "deleted", "track_id": entry.track_id}


@router.post("/api/tracks/changeposition")
async def change_position(body: ChangePositionBody) -> dict[str, Any]:
    """Set a track's position hint."""
    coordinator = _require_coordinator()
    try:
        entry = await coordinator.reposition(body.room_code, body.track_id, body.position)
    except CoreError as e:
        raise _http_error(e) from e
    return entry.to_dict()


@router.get("/api/track/{track_id}")
async def get_track(track_id: int) -> dict[str, Any]:
    """Look up one track in the catalog."""
    coordinator = _require_coordinator()
    if track_id <= 0:
        raise HTTPException(status_code=400, detail="Invalid track ID")
    try:
        meta = await coordinator.resolve_track(track_id)
    except CoreError as e:
        raise _http_error(e) from e
    return meta.to_dict()


# =============================================================================
# Signaling
# =============================================================================


@router.post("/api/transport/{command}")
async def transport(command: str, body: TransportBody | None = None) -> dict[str, Any]:
    """Relay next/prev/pause/now to the room's player."""
    coordinator = _require_coordinator()
    try:
        kind = TransportCommand(command.lower())
    except ValueError:
        valid = ", ".join(c.value for c in TransportCommand)
        raise HTTPException(
            status_code=400, detail=f"Unknown command {command!r} (expected one of: {valid})"
        ) from None

    room_code = body.room_code if body else None
    try:
        event = await coordinator.transport(kind, room_code)
    except CoreError as e:
        raise _http_error(e) from e
    return event.to_dict()


@router.post("/api/notify")
async def notify(body: NotifyBody) -> dict[str, Any]:
    """Broadcast a notification."""
    coordinator = _require_coordinator()
    try:
        event = await coordinator.notify(body.message, body.room_code)
    except CoreError as e:
        raise _http_error(e) from e
    return event.to_dict()


@router.post("/api/command")
async def bot_command(body: CommandBody) -> dict[str, Any]:
    """Run one line of chat text through the bot command dispatcher."""
    if _dispatcher is None:
        raise HTTPException(status_code=503, detail="Server not initialized")
    reply = await _dispatcher.handle(body.text, body.room_code)
    return {"reply": reply}


# =============================================================================
# Settings
# =============================================================================


@router.put("/api/settings")
async def save_settings(body: SettingsBody) -> dict[str, Any]:
    """Store catalog credentials and switch the resolver to them."""
    coordinator = _require_coordinator()
    if _store is None:
        raise HTTPException(status_code=503, detail="Server not initialized")

    try:
        settings = await _store.save_settings(body.user_id, body.access_token)
    except CoreError as e:
        raise _http_error(e) from e

    old = coordinator.set_resolver(build_resolver(settings, _config))
    aclose = getattr(old, "aclose", None)
    if aclose is not None:
        await aclose()

    logger.info("Catalog credentials updated for user %d", settings.user_id)
    return {"status": "saved", "user_id": settings.user_id}
