"""
MusicDirect - Main Server Module

This module contains the MusicDirectServer class that wires the track store,
room registry, broadcast hub, catalog resolver and playlist coordinator
together and manages the application lifecycle.
"""

import asyncio
import logging
import signal

from musicdirect.config import ServerConfig
from musicdirect.core.catalog import UnconfiguredResolver, build_resolver
from musicdirect.core.hub import BroadcastHub
from musicdirect.core.playlist import PlaylistCoordinator
from musicdirect.core.rooms import RoomRegistry
from musicdirect.core.store import StoreDb
from musicdirect.web.server import WebServer

logger = logging.getLogger(__name__)


class MusicDirectServer:
    """
    Main MusicDirect server that coordinates all components.

    The server manages:
    - Track store (SQLite) holding rooms, playlists and catalog settings
    - Room registry issuing room codes
    - Broadcast hub pushing events to WebSocket clients
    - Playlist coordinator enforcing dedup and ordering
    - Web server for REST, WebSocket and bot-relay endpoints
    - Optional reaper deleting rooms older than the configured TTL
    """

    def __init__(self, config: ServerConfig | None = None) -> None:
        """
        Initialize the MusicDirect server.

        Args:
            config: Server configuration. Defaults to ServerConfig().
        """
        self.config = config or ServerConfig()

        self.store = StoreDb(self.config.db_path)
        self.rooms = RoomRegistry(
            self.store,
            code_length=self.config.code_length,
            alphabet=self.config.code_alphabet,
            max_attempts=self.config.max_attempts,
        )
        self.hub = BroadcastHub(
            scope=self.config.broadcast_scope,
            send_timeout_s=self.config.send_timeout_s,
            max_queue=self.config.max_queue,
        )
        # Replaced by the stored credentials once the store is open
        self.coordinator = PlaylistCoordinator(
            self.store,
            self.rooms,
            self.hub,
            UnconfiguredResolver(),
            resolve_timeout_s=self.config.catalog_timeout_s,
        )

        self.web_server: WebServer | None = None

        # Server state
        self._running = False
        self._shutdown_event: asyncio.Event | None = None
        self._reaper_task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        """Start all server components."""
        logger.info("Starting MusicDirect server on %s:%d", self.config.host, self.config.port)

        self._running = True
        self._shutdown_event = asyncio.Event()

        await self.store.open()
        await self.store.ensure_schema()

        settings = await self.store.get_settings()
        self.coordinator.set_resolver(build_resolver(settings, self.config))

        await self.hub.start()

        if self.config.room_ttl_s > 0:
            self._reaper_task = asyncio.create_task(self._reap_loop(), name="room-reaper")
            logger.info(
                "Rooms expire after %.0fs (checked every %.0fs)",
                self.config.room_ttl_s,
                self.config.reap_interval_s,
            )

        self.web_server = WebServer(
            store=self.store,
            rooms=self.rooms,
            hub=self.hub,
            coordinator=self.coordinator,
            config=self.config,
        )
        await self.web_server.start(host=self.config.host, port=self.config.port)

        logger.info("MusicDirect server started successfully")

    async def stop(self) -> None:
        """Stop all server components gracefully."""
        if not self._running:
            return

        logger.info("Stopping MusicDirect server...")
        self._running = False

        # Stop Web server first so no new requests arrive
        if self.web_server:
            await self.web_server.stop()

        reaper, self._reaper_task = self._reaper_task, None
        if reaper is not None:
            reaper.cancel()
            try:
                await reaper
            except asyncio.CancelledError:
                pass

        await self.hub.stop()

        aclose = getattr(self.coordinator.resolver, "aclose", None)
        if aclose is not None:
            await aclose()

        # Close the store last, after all components are stopped.
        await self.store.close()

        if self._shutdown_event:
            self._shutdown_event.set()

        logger.info("MusicDirect server stopped")

    async def run(self) -> None:
        """
        Run the server until shutdown is requested.

        This method starts all components and waits for a shutdown signal
        (SIGINT or SIGTERM).
        """
        await self.start()

        loop = asyncio.get_running_loop()

        def handle_signal() -> None:
            logger.info("Received shutdown signal")
            if self._shutdown_event:
                self._shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, handle_signal)
            except NotImplementedError:
                # Signal handlers not supported on Windows
                pass

        if self._shutdown_event:
            await self._shutdown_event.wait()

        await self.stop()

    @property
    def is_running(self) -> bool:
        """Check if the server is currently running."""
        return self._running

    async def reap_once(self) -> int:
        """Delete rooms older than the TTL. Returns how many were deleted."""
        reaped = await self.coordinator.reap_expired(self.config.room_ttl_s)
        return len(reaped)

    async def _reap_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.reap_interval_s)
            try:
                await self.reap_once()
            except Exception as e:
                # Keep reaping on the next tick; a failed pass deletes nothing
                logger.exception("Room reaper failed: %s", e)
