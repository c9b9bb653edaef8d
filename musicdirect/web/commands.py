"""
Chat-bot command dispatcher for MusicDirect.

Turns one line of chat text into an action on the playlist coordinator and
returns a plain-text reply. Any chat front-end can relay messages here (see
`POST /api/command`).

Commands:
- /start, /help: usage text
- /next, /prev, /pause, /now: transport relay
- /playlist: numbered "Artist - Title" listing
- /notify <text>: notification broadcast
- anything containing a catalog link (or a bare track id): add that track

Each handler is a stateless coroutine receiving a CommandContext, in the
same shape as a dispatch table entry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Coroutine

from musicdirect.core import (
    CoreError,
    DuplicateTrack,
    InvalidTrackReference,
    NotFoundError,
)
from musicdirect.core.events import TransportCommand

if TYPE_CHECKING:
    from musicdirect.core.playlist import PlaylistCoordinator

logger = logging.getLogger(__name__)

CATALOG_HOST_MARKER = "music.yandex"

HELP_TEXT = (
    "Available commands:\n"
    "/playlist - show the current playlist\n"
    "/help - show this help\n\n"
    "/next - skip to the next track\n"
    "/prev - go back to the previous track\n"
    "/now - show the current track\n"
    "/pause - pause playback\n"
    "/notify <text> - send a message to every screen in the room\n\n"
    "Send a Yandex Music track link to add it to the playlist.\n"
    "Use the delete button in the playlist to remove a track."
)

START_TEXT = (
    "Hi! I manage your room's playlist. Commands:\n"
    "/playlist - show the current playlist\n"
    "/help - show help\n"
    "You can also send me a Yandex Music track link to add it."
)

NO_ROOM_TEXT = "Join a room first: this command needs a room code."

_TRANSPORT_REPLIES = {
    TransportCommand.NEXT: "Skipping to the next track",
    TransportCommand.PREV: "Going back to the previous track",
    TransportCommand.PAUSE: "Paused",
    TransportCommand.NOW: "Showing the current track",
}


@dataclass
class CommandContext:
    """Everything a command handler needs."""

    coordinator: PlaylistCoordinator
    room_code: str | None
    """Room the chat is bound to, or None for room-less chats."""

    args: str = ""
    """Text after the command word."""


CommandHandler = Callable[[CommandContext], Coroutine[None, None, str]]


async def cmd_start(ctx: CommandContext) -> str:
    return START_TEXT


async def cmd_help(ctx: CommandContext) -> str:
    return HELP_TEXT


def _transport(command: TransportCommand) -> CommandHandler:
    async def handler(ctx: CommandContext) -> str:
        await ctx.coordinator.transport(command, ctx.room_code)
        return _TRANSPORT_REPLIES[command]

    handler.__name__ = f"cmd_{command.value}"
    return handler


async def cmd_playlist(ctx: CommandContext) -> str:
    if not ctx.room_code:
        return NO_ROOM_TEXT

    tracks = await ctx.coordinator.list_playlist(ctx.room_code)
    if not tracks:
        return "The playlist is empty"

    lines = ["Your playlist:", ""]
    lines.extend(
        f"{i}. {track.artist} - {track.title}" for i, track in enumerate(tracks, start=1)
    )
    return "\n".join(lines)


async def cmd_notify(ctx: CommandContext) -> str:
    if not ctx.args:
        return "Usage: /notify <text>"
    await ctx.coordinator.notify(f"New message from the bot: {ctx.args}", ctx.room_code)
    return "Notification sent"


COMMAND_HANDLERS: dict[str, CommandHandler] = {
    "start": cmd_start,
    "help": cmd_help,
    "next": _transport(TransportCommand.NEXT),
    "prev": _transport(TransportCommand.PREV),
    "pause": _transport(TransportCommand.PAUSE),
    "now": _transport(TransportCommand.NOW),
    "playlist": cmd_playlist,
    "notify": cmd_notify,
}


def find_track_reference(text: str) -> str | None:
    """
    Pick the track reference out of a chat message.

    Returns the first word containing a catalog link, the whole message if it
    is a bare number, or None if the message does not look like a track.
    """
    stripped = text.strip()
    if stripped.isascii() and stripped.isdigit():
        return stripped
    for word in stripped.split():
        if CATALOG_HOST_MARKER in word:
            return word
    return None


async def add_from_text(ctx: CommandContext, reference: str) -> str:
    if not ctx.room_code:
        return NO_ROOM_TEXT

    try:
        result = await ctx.coordinator.add_track(ctx.room_code, reference)
    except InvalidTrackReference:
        return "Unrecognised format. Send a track link or its id"
    except DuplicateTrack:
        return "This track is already in the playlist"

    if result.track is None:
        return f"Track {result.entry.track_id} added to the playlist (details unavailable)"
    return f"Track added to the playlist:\n{result.track.artist} - {result.track.title}"


class CommandDispatcher:
    """
    Routes chat text to command handlers.

    Errors from the coordinator are turned into short replies; nothing is
    raised back to the chat front-end except unexpected failures.
    """

    def __init__(self, coordinator: PlaylistCoordinator) -> None:
        self.coordinator = coordinator

    async def handle(self, text: str, room_code: str | None = None) -> str | None:
        """
        Handle one chat message.

        Args:
            text: The message as typed.
            room_code: Room the chat is bound to, if any.

        Returns:
            Reply text, or None when the message is neither a command nor a
            track link (ordinary chatter is ignored).
        """
        text = (text or "").strip()
        ctx = CommandContext(coordinator=self.coordinator, room_code=room_code or None)

        if text.startswith("/"):
            word, _, rest = text[1:].partition(" ")
            # Telegram appends "@botname" to commands in group chats
            name = word.split("@", 1)[0].lower()
            ctx.args = rest.strip()

            handler = COMMAND_HANDLERS.get(name)
            if handler is None:
                logger.debug("Unknown bot command: %s", name)
                return "Unknown command. Use /help to see the available commands"
            return await self._run(name, handler, ctx)

        reference = find_track_reference(text)
        if reference is None:
            return None
        return await self._run("add", lambda c: add_from_text(c, reference), ctx)

    async def _run(self, name: str, handler: CommandHandler, ctx: CommandContext) -> str:
        try:
            return await handler(ctx)
        except NotFoundError:
            return f"Room {ctx.room_code} does not exist"
        except CoreError as e:
            logger.warning("Bot command %s failed: %s", name, e)
            return f"Something went wrong: {e}"
