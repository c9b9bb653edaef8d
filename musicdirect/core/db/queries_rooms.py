"""
Room queries used by `musicdirect.core.store.StoreDb`.

Each helper takes an open connection whose row_factory is `aiosqlite.Row`
and returns `RoomRow` values. Room codes are always bound as parameters.
Committing is left to the caller.
"""

from __future__ import annotations

import aiosqlite

from musicdirect.core.db.models import RoomRow


def _row_to_room(row: aiosqlite.Row) -> RoomRow:
    return RoomRow(id=int(row["id"]), code=row["code"], created_at=float(row["created_at"]))


async def insert_room(conn: aiosqlite.Connection, code: str, created_at: float) -> RoomRow:
    cursor = await conn.execute(
        "INSERT INTO rooms (code, created_at) VALUES (?, ?);",
        (code, float(created_at)),
    )
    return RoomRow(id=int(cursor.lastrowid), code=code, created_at=float(created_at))


async def get_room_by_code(conn: aiosqlite.Connection, code: str) -> RoomRow | None:
    cursor = await conn.execute(
        "SELECT id, code, created_at FROM rooms WHERE code = ?;",
        (code,),
    )
    row = await cursor.fetchone()
    return _row_to_room(row) if row is not None else None


async def get_room_by_id(conn: aiosqlite.Connection, room_id: int) -> RoomRow | None:
    cursor = await conn.execute(
        "SELECT id, code, created_at FROM rooms WHERE id = ?;",
        (int(room_id),),
    )
    row = await cursor.fetchone()
    return _row_to_room(row) if row is not None else None


async def room_code_exists(conn: aiosqlite.Connection, code: str) -> bool:
    cursor = await conn.execute(
        "SELECT EXISTS(SELECT 1 FROM rooms WHERE code = ?) AS e;",
        (code,),
    )
    row = await cursor.fetchone()
    return bool(row["e"]) if row else False


async def delete_room(conn: aiosqlite.Connection, room_id: int) -> bool:
    cursor = await conn.execute("DELETE FROM rooms WHERE id = ?;", (int(room_id),))
    return cursor.rowcount > 0


async def list_rooms_created_before(conn: aiosqlite.Connection, cutoff: float) -> list[RoomRow]:
    cursor = await conn.execute(
        "SELECT id, code, created_at FROM rooms WHERE created_at < ? ORDER BY id;",
        (float(cutoff),),
    )
    rows = await cursor.fetchall()
    return [_row_to_room(r) for r in rows]


async def count_rooms(conn: aiosqlite.Connection) -> int:
    cursor = await conn.execute("SELECT COUNT(*) AS c FROM rooms;")
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0
