"""
Playlist queries used by `musicdirect.core.store.StoreDb`.

Ordering contract: entries are listed by `position` ascending, ties broken by
row id (insertion order). Positions are independent hints, so updating one
entry never renumbers the others.

These functions assume `conn.row_factory = aiosqlite.Row`; callers own commits.
"""

from __future__ import annotations

import aiosqlite

from musicdirect.core.db.models import PlaylistEntry

_COLUMNS = "id, room_id, track_id, position, date_added"


def _row_to_entry(row: aiosqlite.Row) -> PlaylistEntry:
    return PlaylistEntry(
        id=int(row["id"]),
        room_id=int(row["room_id"]),
        track_id=int(row["track_id"]),
        position=int(row["position"]),
        date_added=float(row["date_added"]),
    )


async def entry_exists(conn: aiosqlite.Connection, room_id: int, track_id: int) -> bool:
    cursor = await conn.execute(
        "SELECT EXISTS(SELECT 1 FROM playlist WHERE room_id = ? AND track_id = ?) AS e;",
        (int(room_id), int(track_id)),
    )
    row = await cursor.fetchone()
    return bool(row["e"]) if row else False


async def get_entry(
    conn: aiosqlite.Connection, room_id: int, track_id: int
) -> PlaylistEntry | None:
    cursor = await conn.execute(
        f"SELECT {_COLUMNS} FROM playlist WHERE room_id = ? AND track_id = ?;",
        (int(room_id), int(track_id)),
    )
    row = await cursor.fetchone()
    return _row_to_entry(row) if row is not None else None


async def insert_entry(
    conn: aiosqlite.Connection,
    *,
    room_id: int,
    track_id: int,
    position: int,
    date_added: float,
) -> PlaylistEntry:
    cursor = await conn.execute(
        """
        INSERT INTO playlist (track_id, room_id, position, date_added)
        VALUES (?, ?, ?, ?);
        """,
        (int(track_id), int(room_id), int(position), float(date_added)),
    )
    return PlaylistEntry(
        id=int(cursor.lastrowid),
        room_id=int(room_id),
        track_id=int(track_id),
        position=int(position),
        date_added=float(date_added),
    )


async def delete_entry(conn: aiosqlite.Connection, room_id: int, track_id: int) -> bool:
    cursor = await conn.execute(
        "DELETE FROM playlist WHERE room_id = ? AND track_id = ?;",
        (int(room_id), int(track_id)),
    )
    return cursor.rowcount > 0


async def set_position(
    conn: aiosqlite.Connection, room_id: int, track_id: int, position: int
) -> bool:
    cursor = await conn.execute(
        "UPDATE playlist SET position = ? WHERE room_id = ? AND track_id = ?;",
        (int(position), int(room_id), int(track_id)),
    )
    return cursor.rowcount > 0


async def list_entries(conn: aiosqlite.Connection, room_id: int) -> list[PlaylistEntry]:
    cursor = await conn.execute(
        f"""
        SELECT {_COLUMNS}
        FROM playlist
        WHERE room_id = ?
        ORDER BY position ASC, id ASC;
        """,
        (int(room_id),),
    )
    rows = await cursor.fetchall()
    return [_row_to_entry(r) for r in rows]


async def count_entries(conn: aiosqlite.Connection, room_id: int) -> int:
    cursor = await conn.execute(
        "SELECT COUNT(*) AS c FROM playlist WHERE room_id = ?;",
        (int(room_id),),
    )
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0
