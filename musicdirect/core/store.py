"""
Persistent store for rooms, playlists and catalog settings.

Goals:
- One aiosqlite connection to a SQLite file (or ":memory:" in tests).
- Single source of truth for playlist membership and order.
- Translate driver errors into the core taxonomy so callers never see
  `sqlite3` exceptions.

Note:
- Models/DTOs live in `musicdirect.core.db.models`
- Schema/migrations live in `musicdirect.core.db.schema`
- Query functions live in `musicdirect.core.db.queries_*` modules
- `StoreDb` is the public facade used by the rest of the codebase
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from musicdirect.core import DuplicateTrack, StorageError
from musicdirect.core.db import queries_playlist, queries_rooms, queries_settings
from musicdirect.core.db.models import PlaylistEntry, RoomRow, SettingsRow
from musicdirect.core.db.schema import ensure_schema as ensure_schema_sql

logger = logging.getLogger(__name__)


class StoreDb:
    """
    Async access layer for the MusicDirect DB.

    Usage:
        db = StoreDb("musicdirect.sqlite3")
        await db.open()
        await db.ensure_schema()
        ... queries ...
        await db.close()

    Notes:
    - The registry and the coordinator receive the same instance.
    - A single connection is used. Writes are serialized so a rollback can
      never discard another coroutine's uncommitted statement.
    - Every write commits before returning. On failure the transaction is
      rolled back and a `StorageError` is raised.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = str(db_path)
        self._conn: aiosqlite.Connection | None = None
        self._last_timestamp = 0.0
        self._write_lock = asyncio.Lock()

    @property
    def path(self) -> str:
        return self._db_path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self) -> None:
        if self._conn is not None:
            return
        try:
            self._conn = await aiosqlite.connect(self._db_path)
            self._conn.row_factory = aiosqlite.Row

            await self._conn.execute("PRAGMA foreign_keys = ON;")
            await self._conn.execute("PRAGMA journal_mode = WAL;")
            await self._conn.execute("PRAGMA synchronous = NORMAL;")
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to open database {self._db_path}: {e}") from e
        logger.debug("Opened store at %s", self._db_path)

    async def close(self) -> None:
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StorageError("StoreDb is not open. Call await db.open() first.")
        return self._conn

    async def ensure_schema(self) -> None:
        """Create the tables or upgrade them to the current schema version."""
        async with self._read() as conn:
            await ensure_schema_sql(conn)

    @asynccontextmanager
    async def _read(self) -> AsyncIterator[aiosqlite.Connection]:
        conn = self._require_conn()
        try:
            yield conn
        except aiosqlite.Error as e:
            raise StorageError(str(e)) from e

    @asynccontextmanager
    async def _write(self) -> AsyncIterator[aiosqlite.Connection]:
        conn = self._require_conn()
        async with self._write_lock:
            try:
                yield conn
                await conn.commit()
            except aiosqlite.Error:
                await self._rollback(conn)
                raise

    async def _rollback(self, conn: aiosqlite.Connection) -> None:
        try:
            await conn.rollback()
        except aiosqlite.Error as e:
            logger.warning("Rollback failed: %s", e)

    def _next_timestamp(self) -> float:
        """Server-assigned timestamp, never earlier than the previous one."""
        now = time.time()
        self._last_timestamp = max(now, self._last_timestamp)
        return self._last_timestamp

    # ===========================================================================
    # Rooms
    # ===========================================================================

    async def insert_room(self, code: str) -> RoomRow | None:
        """
        Persist a new room.

        Returns None if the code is already taken (UNIQUE violation), so the
        caller can resample.
        """
        try:
            async with self._write() as conn:
                return await queries_rooms.insert_room(conn, code, self._next_timestamp())
        except aiosqlite.IntegrityError:
            return None
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to create room: {e}") from e

    async def get_room_by_code(self, code: str) -> RoomRow | None:
        async with self._read() as conn:
            return await queries_rooms.get_room_by_code(conn, code)

    async def get_room_by_id(self, room_id: int) -> RoomRow | None:
        async with self._read() as conn:
            return await queries_rooms.get_room_by_id(conn, room_id)

    async def room_code_exists(self, code: str) -> bool:
        async with self._read() as conn:
            return await queries_rooms.room_code_exists(conn, code)

    async def delete_room(self, room_id: int) -> bool:
        """Delete a room; its playlist entries go with it (ON DELETE CASCADE)."""
        try:
            async with self._write() as conn:
                return await queries_rooms.delete_room(conn, room_id)
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to delete room {room_id}: {e}") from e

    async def list_rooms_created_before(self, cutoff: float) -> list[RoomRow]:
        async with self._read() as conn:
            return await queries_rooms.list_rooms_created_before(conn, cutoff)

    async def count_rooms(self) -> int:
        async with self._read() as conn:
            return await queries_rooms.count_rooms(conn)

    # ===========================================================================
    # Playlist
    # ===========================================================================

    async def entry_exists(self, room_id: int, track_id: int) -> bool:
        async with self._read() as conn:
            return await queries_playlist.entry_exists(conn, room_id, track_id)

    async def get_entry(self, room_id: int, track_id: int) -> PlaylistEntry | None:
        async with self._read() as conn:
            return await queries_playlist.get_entry(conn, room_id, track_id)

    async def insert_entry(self, room_id: int, track_id: int, position: int = 0) -> PlaylistEntry:
        """
        Insert a playlist entry.

        Raises:
            DuplicateTrack: if (room_id, track_id) already exists.
            StorageError: on any other database failure.
        """
        try:
            async with self._write() as conn:
                return await queries_playlist.insert_entry(
                    conn,
                    room_id=room_id,
                    track_id=track_id,
                    position=position,
                    date_added=self._next_timestamp(),
                )
        except aiosqlite.IntegrityError as e:
            if "UNIQUE" in str(e).upper():
                raise DuplicateTrack(room_id, track_id) from e
            raise StorageError(f"Failed to add track {track_id} to room {room_id}: {e}") from e
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to add track {track_id} to room {room_id}: {e}") from e

    async def delete_entry(self, room_id: int, track_id: int) -> bool:
        try:
            async with self._write() as conn:
                return await queries_playlist.delete_entry(conn, room_id, track_id)
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to remove track {track_id}: {e}") from e

    async def set_position(self, room_id: int, track_id: int, position: int) -> bool:
        try:
            async with self._write() as conn:
                return await queries_playlist.set_position(conn, room_id, track_id, position)
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to reposition track {track_id}: {e}") from e

    async def list_entries(self, room_id: int) -> list[PlaylistEntry]:
        async with self._read() as conn:
            return await queries_playlist.list_entries(conn, room_id)

    async def count_entries(self, room_id: int) -> int:
        async with self._read() as conn:
            return await queries_playlist.count_entries(conn, room_id)

    # ===========================================================================
    # Settings
    # ===========================================================================

    async def get_settings(self) -> SettingsRow | None:
        async with self._read() as conn:
            return await queries_settings.get_latest_settings(conn)

    async def save_settings(self, user_id: int, access_token: str) -> SettingsRow:
        try:
            async with self._write() as conn:
                return await queries_settings.insert_settings(conn, user_id, access_token)
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to save settings: {e}") from e
