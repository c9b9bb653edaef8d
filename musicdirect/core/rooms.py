"""
Room Registry - maps shareable room codes to room identities.

Codes are short strings (default: 5 characters from [A-Z0-9]) that users read
out to each other. Uniqueness is enforced twice: an existence check before
insert, and the UNIQUE constraint on `rooms.code` (a violation there is
treated like any other collision and resampled).
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import string
import time
from typing import Final

from musicdirect.core import CodeSpaceExhausted, NotFoundError
from musicdirect.core.db.models import RoomRow
from musicdirect.core.store import StoreDb

logger = logging.getLogger(__name__)

DEFAULT_ALPHABET: Final[str] = string.ascii_uppercase + string.digits
DEFAULT_CODE_LENGTH: Final[int] = 5
DEFAULT_MAX_ATTEMPTS: Final[int] = 32


def normalize_code(code: str) -> str:
    """Room codes are case-insensitive for lookup; stored upper-case."""
    return (code or "").strip().upper()


class RoomRegistry:
    """
    Creates rooms and resolves room codes.

    Thread-safety: code generation holds an asyncio lock so two concurrent
    `create_room()` calls cannot both pass the existence check for the same
    code.
    """

    def __init__(
        self,
        db: StoreDb,
        *,
        code_length: int = DEFAULT_CODE_LENGTH,
        alphabet: str = DEFAULT_ALPHABET,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        if code_length < 1:
            raise ValueError("code_length must be positive")
        if len(set(alphabet)) < 2:
            raise ValueError("alphabet needs at least two distinct characters")
        if alphabet != alphabet.upper():
            raise ValueError("alphabet must not contain lower-case letters")
        if max_attempts < 1:
            raise ValueError("max_attempts must be positive")

        self._db = db
        self.code_length = code_length
        self.alphabet = alphabet
        self.max_attempts = max_attempts
        self._lock = asyncio.Lock()

    def generate_code(self) -> str:
        """Sample one candidate code. Does not check uniqueness."""
        return "".join(secrets.choice(self.alphabet) for _ in range(self.code_length))

    async def create_room(self) -> RoomRow:
        """
        Create a room with a fresh unique code.

        Raises:
            CodeSpaceExhausted: if every sampled code collided within
                `max_attempts` tries (a configuration problem: the code space
                is too small for the number of rooms).
            StorageError: if the store fails.
        """
        async with self._lock:
            for attempt in range(1, self.max_attempts + 1):
                code = self.generate_code()
                if await self._db.room_code_exists(code):
                    logger.debug("Room code collision on %s (attempt %d)", code, attempt)
                    continue

                room = await self._db.insert_room(code)
                if room is None:
                    logger.debug("Room code %s taken at insert (attempt %d)", code, attempt)
                    continue

                logger.info("Created room %s (id=%d)", room.code, room.id)
                return room

        raise CodeSpaceExhausted(
            f"No unused room code after {self.max_attempts} attempts "
            f"(length={self.code_length}, alphabet size={len(self.alphabet)})"
        )

    async def get_room(self, code: str) -> RoomRow:
        """
        Look up a room by code.

        Raises:
            NotFoundError: if no room has this code.
        """
        room = await self._db.get_room_by_code(normalize_code(code))
        if room is None:
            raise NotFoundError(f"Room {code!r} not found")
        return room

    async def get_room_or_none(self, code: str) -> RoomRow | None:
        return await self._db.get_room_by_code(normalize_code(code))

    async def resolve_code(self, code: str) -> int:
        """Return the room id for a code, or raise NotFoundError."""
        return (await self.get_room(code)).id

    async def room_exists(self, code: str) -> bool:
        return await self._db.room_code_exists(normalize_code(code))

    async def delete_room(self, code: str) -> bool:
        """Delete a room and its playlist. Returns False if it did not exist."""
        room = await self._db.get_room_by_code(normalize_code(code))
        if room is None:
            return False
        deleted = await self._db.delete_room(room.id)
        if deleted:
            logger.info("Deleted room %s (id=%d)", room.code, room.id)
        return deleted

    async def reap_expired(self, max_age_s: float, *, now: float | None = None) -> list[RoomRow]:
        """
        Delete rooms created more than `max_age_s` seconds ago.

        Returns the rooms that were deleted.
        """
        cutoff = (time.time() if now is None else now) - max_age_s
        expired = await self._db.list_rooms_created_before(cutoff)
        reaped: list[RoomRow] = []
        for room in expired:
            if await self._db.delete_room(room.id):
                reaped.append(room)

        if reaped:
            logger.info("Reaped %d expired rooms (max age %.0fs)", len(reaped), max_age_s)
        return reaped
