"""
Settings queries (catalog credentials).

The most recently saved row wins; older rows are kept for reference only.
"""

from __future__ import annotations

import aiosqlite

from musicdirect.core.db.models import SettingsRow


async def get_latest_settings(conn: aiosqlite.Connection) -> SettingsRow | None:
    cursor = await conn.execute(
        "SELECT id, user_id, access_token FROM settings ORDER BY id DESC LIMIT 1;"
    )
    row = await cursor.fetchone()
    if row is None:
        return None
    return SettingsRow(
        id=int(row["id"]),
        user_id=int(row["user_id"]),
        access_token=row["access_token"],
    )


async def insert_settings(
    conn: aiosqlite.Connection, user_id: int, access_token: str
) -> SettingsRow:
    cursor = await conn.execute(
        "INSERT INTO settings (user_id, access_token) VALUES (?, ?);",
        (int(user_id), access_token),
    )
    return SettingsRow(id=int(cursor.lastrowid), user_id=int(user_id), access_token=access_token)
