"""
Tests for musicdirect.web (FastAPI REST + WebSocket).

These tests verify:
- REST endpoints for rooms, playlists, signaling, bot relay and settings
- Mapping of core errors to HTTP status codes
- WebSocket push of room events

REST tests drive the app through httpx's ASGITransport, which does not run
the lifespan, so the fixtures open the store and start the hub themselves.
WebSocket tests use FastAPI's TestClient, whose lifespan does both.
"""

from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient
from fastapi.websockets import WebSocketDisconnect
from httpx import ASGITransport, AsyncClient

from musicdirect.core import ResolutionError
from musicdirect.core.catalog import TrackMetadata, YandexMusicResolver
from musicdirect.core.hub import BroadcastHub
from musicdirect.core.playlist import PlaylistCoordinator
from musicdirect.core.rooms import RoomRegistry
from musicdirect.core.store import StoreDb
from musicdirect.web.routes.ws import CLOSE_ROOM_NOT_FOUND
from musicdirect.web.server import WebServer


class StubResolver:
    """Resolves every id except 404."""

    async def resolve(self, track_id: int) -> TrackMetadata:
        if track_id == 404:
            raise ResolutionError("not in catalog")
        return TrackMetadata(
            track_id=track_id,
            title=f"Song {track_id}",
            artist="Band",
            cover_url=f"https://covers.test/{track_id}",
            duration_ms=180000,
            stream_url=f"https://stream.test/{track_id}.mp3",
        )


def build_web_server(db: StoreDb, hub: BroadcastHub) -> WebServer:
    rooms = RoomRegistry(db)
    coordinator = PlaylistCoordinator(db, rooms, hub, StubResolver())
    return WebServer(store=db, rooms=rooms, hub=hub, coordinator=coordinator)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
async def db() -> StoreDb:
    """Create an in-memory database for testing."""
    db = StoreDb(":memory:")
    await db.open()
    await db.ensure_schema()
    yield db
    await db.close()


@pytest.fixture
async def hub() -> BroadcastHub:
    hub = BroadcastHub()
    await hub.start()
    yield hub
    await hub.stop()


@pytest.fixture
def web_server(db: StoreDb, hub: BroadcastHub) -> WebServer:
    return build_web_server(db, hub)


@pytest.fixture
async def client(web_server: WebServer) -> AsyncClient:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=web_server.app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
async def room_code(client: AsyncClient) -> str:
    response = await client.post("/api/room/create")
    assert response.status_code == 200
    return response.json()["code"]


async def add(client: AsyncClient, room_code: str, track_url: str) -> Any:
    return await client.post("/api/tracks", json={"room_code": room_code, "track_url": track_url})


# =============================================================================
# Health + Rooms
# =============================================================================


class TestHealthCheck:
    async def test_health_check(self, client: AsyncClient) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestRooms:
    """Tests for /api/room/*."""

    async def test_create(self, client: AsyncClient) -> None:
        response = await client.post("/api/room/create")

        data = response.json()
        assert response.status_code == 200
        assert isinstance(data["id"], int)
        assert len(data["code"]) == 5

    async def test_join(self, client: AsyncClient, room_code: str) -> None:
        response = await client.post("/api/room/join", json={"room_code": room_code.lower()})

        assert response.status_code == 200
        assert response.json()["code"] == room_code

    async def test_join_unknown(self, client: AsyncClient) -> None:
        response = await client.post("/api/room/join", json={"room_code": "NOPE0"})
        assert response.status_code == 404

    async def test_delete(self, client: AsyncClient, room_code: str) -> None:
        await add(client, room_code, "1")

        response = await client.delete(f"/api/room/{room_code}")
        assert response.status_code == 204

        response = await client.delete(f"/api/room/{room_code}")
        assert response.status_code == 404

        response = await client.get("/api/tracks/all", params={"room_code": room_code})
        assert response.status_code == 404

    async def test_code_space_exhausted(
        self, client: AsyncClient, web_server: WebServer, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(web_server.rooms, "generate_code", lambda: "SAME0")
        web_server.rooms.max_attempts = 2

        assert (await client.post("/api/room/create")).status_code == 200
        response = await client.post("/api/room/create")
        assert response.status_code == 503


# =============================================================================
# Playlist
# =============================================================================


class TestTracks:
    """Tests for /api/tracks*."""

    async def test_add(self, client: AsyncClient, room_code: str) -> None:
        response = await add(client, room_code, "https://music.yandex.ru/album/9/track/77")

        assert response.status_code == 201
        data = response.json()
        assert data["entry"]["track_id"] == 77
        assert data["track"]["title"] == "Song 77"
        assert "warning" not in data

    async def test_add_without_metadata(self, client: AsyncClient, room_code: str) -> None:
        response = await add(client, room_code, "404")

        assert response.status_code == 201
        data = response.json()
        assert data["track"] is None
        assert "not in catalog" in data["warning"]

    async def test_add_duplicate(self, client: AsyncClient, room_code: str) -> None:
        await add(client, room_code, "77")
        response = await add(client, room_code, "https://music.yandex.ru/track/77")
        assert response.status_code == 409

    async def test_add_invalid_reference(self, client: AsyncClient, room_code: str) -> None:
        response = await add(client, room_code, "https://example.com/song")

        assert response.status_code == 400
        assert "/track/<id>" in response.json()["detail"]

    async def test_add_unknown_room(self, client: AsyncClient) -> None:
        response = await add(client, "NOPE0", "77")
        assert response.status_code == 404

    async def test_add_missing_field(self, client: AsyncClient, room_code: str) -> None:
        response = await client.post("/api/tracks", json={"room_code": room_code})
        assert response.status_code == 422

    async def test_listing_order(self, client: AsyncClient, room_code: str) -> None:
        for track in ("1", "2", "3"):
            await add(client, room_code, track)

        response = await client.post(
            "/api/tracks/changeposition",
            json={"room_code": room_code, "track_id": 2, "position": 5},
        )
        assert response.status_code == 200
        assert response.json()["position"] == 5

        tracks = (await client.get("/api/tracks", params={"room_code": room_code})).json()
        assert [t["track_id"] for t in tracks] == [1, 3, 2]
        assert tracks[0]["track_url"] == "https://stream.test/1.mp3"

        status = (await client.get("/api/room/status", params={"room_code": room_code})).json()
        assert status == tracks

        ids = (await client.get("/api/tracks/all", params={"room_code": room_code})).json()
        assert ids == [1, 3, 2]

    async def test_listing_skips_unresolvable(self, client: AsyncClient, room_code: str) -> None:
        await add(client, room_code, "1")
        await add(client, room_code, "404")

        tracks = (await client.get("/api/tracks", params={"room_code": room_code})).json()
        ids = (await client.get("/api/tracks/all", params={"room_code": room_code})).json()

        assert [t["track_id"] for t in tracks] == [1]
        assert ids == [1, 404]

    async def test_listing_requires_room_code(self, client: AsyncClient) -> None:
        response = await client.get("/api/tracks")
        assert response.status_code == 422

    async def test_delete(self, client: AsyncClient, room_code: str) -> None:
        await add(client, room_code, "1")

        response = await client.post(
            "/api/tracks/delete", json={"room_code": room_code, "track_id": 1}
        )
        assert response.status_code == 200

        response = await client.post(
            "/api/tracks/delete", json={"room_code": room_code, "track_id": 1}
        )
        assert response.status_code == 404

    async def test_changeposition_absent(self, client: AsyncClient, room_code: str) -> None:
        response = await client.post(
            "/api/tracks/changeposition",
            json={"room_code": room_code, "track_id": 9, "position": 1},
        )
        assert response.status_code == 404

    async def test_storage_failure(
        self, client: AsyncClient, db: StoreDb, room_code: str
    ) -> None:
        await db.close()

        response = await client.get("/api/tracks/all", params={"room_code": room_code})
        assert response.status_code == 500


class TestTrackLookup:
    """Tests for /api/track/{id}."""

    async def test_lookup(self, client: AsyncClient) -> None:
        response = await client.get("/api/track/5")

        assert response.status_code == 200
        assert response.json()["title"] == "Song 5"

    async def test_resolution_failure(self, client: AsyncClient) -> None:
        response = await client.get("/api/track/404")
        assert response.status_code == 502

    async def test_invalid_id(self, client: AsyncClient) -> None:
        assert (await client.get("/api/track/0")).status_code == 400
        assert (await client.get("/api/track/abc")).status_code == 422


# =============================================================================
# Signaling, bot relay, settings
# =============================================================================


class TestSignaling:
    """Tests for /api/transport, /api/notify and /api/command."""

    async def test_transport(self, client: AsyncClient, room_code: str) -> None:
        response = await client.post("/api/transport/next", json={"room_code": room_code})

        assert response.status_code == 200
        assert response.json() == {"type": "next", "room": room_code}

    async def test_transport_without_body(self, client: AsyncClient) -> None:
        response = await client.post("/api/transport/PAUSE")

        assert response.status_code == 200
        assert response.json() == {"type": "pause"}

    async def test_unknown_transport(self, client: AsyncClient) -> None:
        response = await client.post("/api/transport/rewind")
        assert response.status_code == 400

    async def test_transport_unknown_room(self, client: AsyncClient) -> None:
        response = await client.post("/api/transport/now", json={"room_code": "NOPE0"})
        assert response.status_code == 404

    async def test_notify(self, client: AsyncClient, room_code: str) -> None:
        response = await client.post(
            "/api/notify", json={"message": "hi", "room_code": room_code}
        )

        assert response.status_code == 200
        assert response.json() == {"type": "notification", "room": room_code, "message": "hi"}

    async def test_command(self, client: AsyncClient, room_code: str) -> None:
        response = await client.post(
            "/api/command",
            json={"text": "https://music.yandex.ru/track/8", "room_code": room_code},
        )

        assert response.status_code == 200
        assert response.json()["reply"] == "Track added to the playlist:\nBand - Song 8"

        ids = (await client.get("/api/tracks/all", params={"room_code": room_code})).json()
        assert ids == [8]


class TestSettings:
    """Tests for /api/settings."""

    async def test_save_swaps_resolver(
        self, client: AsyncClient, web_server: WebServer, db: StoreDb
    ) -> None:
        response = await client.put(
            "/api/settings", json={"user_id": 42, "access_token": "tok"}
        )

        assert response.status_code == 200
        resolver = web_server.coordinator.resolver
        try:
            assert isinstance(resolver, YandexMusicResolver)
            assert resolver.user_id == 42
            assert (await db.get_settings()).access_token == "tok"
        finally:
            await resolver.aclose()

    async def test_empty_token_rejected(self, client: AsyncClient) -> None:
        response = await client.put("/api/settings", json={"user_id": 1, "access_token": ""})
        assert response.status_code == 422


# =============================================================================
# WebSocket
# =============================================================================


class TestWebSocket:
    """Tests for /ws, run through TestClient so the lifespan opens the store."""

    @pytest.fixture
    def ws_client(self) -> TestClient:
        server = build_web_server(StoreDb(":memory:"), BroadcastHub())
        with TestClient(server.app) as client:
            yield client

    def test_room_events_are_pushed(self, ws_client: TestClient) -> None:
        code = ws_client.post("/api/room/create").json()["code"]

        with ws_client.websocket_connect(f"/ws?room={code.lower()}") as ws:
            hello = ws.receive_json()
            assert hello["type"] == "connected"
            assert hello["room"] == code

            ws_client.post("/api/transport/next", json={"room_code": code})
            assert ws.receive_json() == {"type": "next", "room": code}

            ws_client.post("/api/tracks", json={"room_code": code, "track_url": "12"})
            event = ws.receive_json()
            assert event["type"] == "track-added"
            assert event["track"]["track_id"] == 12

            ws_client.post("/api/tracks/delete", json={"room_code": code, "track_id": 12})
            assert ws.receive_json() == {"type": "track-removed", "room": code, "trackID": 12}

    def test_other_rooms_are_not_pushed(self, ws_client: TestClient) -> None:
        mine = ws_client.post("/api/room/create").json()["code"]
        other = ws_client.post("/api/room/create").json()["code"]

        with ws_client.websocket_connect(f"/ws?room={mine}") as ws:
            ws.receive_json()

            ws_client.post("/api/notify", json={"message": "elsewhere", "room_code": other})
            ws_client.post("/api/notify", json={"message": "here", "room_code": mine})

            assert ws.receive_json()["message"] == "here"

    def test_unknown_room_is_closed(self, ws_client: TestClient) -> None:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with ws_client.websocket_connect("/ws?room=NOPE0") as ws:
                ws.receive_json()

        assert exc_info.value.code == CLOSE_ROOM_NOT_FOUND

    def test_deleting_room_closes_its_sockets(self, ws_client: TestClient) -> None:
        code = ws_client.post("/api/room/create").json()["code"]

        with pytest.raises(WebSocketDisconnect):
            with ws_client.websocket_connect(f"/ws?room={code}") as ws:
                ws.receive_json()
                assert ws_client.delete(f"/api/room/{code}").status_code == 204
                ws.receive_json()

        assert ws_client.get("/health").json()["connections"] == 0

    def test_roomless_connection_gets_everything(self, ws_client: TestClient) -> None:
        code = ws_client.post("/api/room/create").json()["code"]

        with ws_client.websocket_connect("/ws") as ws:
            assert ws.receive_json()["room"] is None

            ws_client.post("/api/transport/pause", json={"room_code": code})
            assert ws.receive_json() == {"type": "pause", "room": code}
