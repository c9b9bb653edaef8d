"""
Database schema + migrations for MusicDirect.

The `StoreDb` facade in `core/store.py` owns the connection; this module only
creates tables and upgrades them. The schema version is stored in SQLite's
`PRAGMA user_version` and upgrades only ever move forward.
"""

from __future__ import annotations

from typing import Final

import aiosqlite

from musicdirect.core import StorageError

# Every bump needs a matching step in `migrate()`.
SCHEMA_VERSION: Final[int] = 2


async def ensure_schema(conn: aiosqlite.Connection) -> None:
    """
    Bring the database up to SCHEMA_VERSION.

    The caller passes an open connection with foreign keys already switched on.
    A database written by a newer release is refused with StorageError.
    """
    cursor = await conn.execute("PRAGMA user_version;")
    row = await cursor.fetchone()
    current = int(row[0]) if row is not None else 0

    if current > SCHEMA_VERSION:
        raise StorageError(
            f"Database schema version {current} is newer than supported {SCHEMA_VERSION}."
        )

    if current == SCHEMA_VERSION:
        return

    await migrate(conn, from_version=current, to_version=SCHEMA_VERSION)
    await conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION};")
    await conn.commit()


async def migrate(conn: aiosqlite.Connection, *, from_version: int, to_version: int) -> None:
    """Apply each upgrade step between the two versions in order."""
    # v0 -> v1: base tables
    if from_version == 0 and to_version >= 1:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS rooms (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                code TEXT NOT NULL UNIQUE,
                created_at REAL NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS playlist (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                track_id INTEGER NOT NULL,
                room_id INTEGER NOT NULL DEFAULT 0
                    REFERENCES rooms(id) ON DELETE CASCADE,
                position INTEGER NOT NULL DEFAULT 0,
                date_added REAL NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS settings (
                id INTEGER PRIMARY KEY,
                user_id INTEGER NOT NULL,
                access_token TEXT NOT NULL
            )
            """
        )
        await conn.commit()
        from_version = 1

    # v1 -> v2: dedup constraint + listing index
    if from_version == 1 and to_version >= 2:
        await conn.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_playlist_room_track "
            "ON playlist(room_id, track_id);"
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_playlist_room_order "
            "ON playlist(room_id, position, id);"
        )
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_rooms_created ON rooms(created_at);")
        await conn.commit()
        from_version = 2
