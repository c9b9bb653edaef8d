"""
Web Server Module for MusicDirect.

This module provides the WebServer class that creates and manages the
FastAPI application and registers all routes.

The WebServer integrates:
- REST API for the web UI and chat front-ends
- WebSocket endpoint for real-time room events
- Health check
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from musicdirect import __version__
from musicdirect.web.commands import CommandDispatcher
from musicdirect.web.routes.api import register_api_routes
from musicdirect.web.routes.ws import register_ws_routes

if TYPE_CHECKING:
    from musicdirect.config import ServerConfig
    from musicdirect.core.hub import BroadcastHub
    from musicdirect.core.playlist import PlaylistCoordinator
    from musicdirect.core.rooms import RoomRegistry
    from musicdirect.core.store import StoreDb

logger = logging.getLogger(__name__)


class WebServer:
    """
    FastAPI-based web server for MusicDirect.

    The app's lifespan opens the store and starts the hub when nobody else
    has, so the app also works standalone (e.g. under a test client).
    Whatever the lifespan opened it also closes.
    """

    def __init__(
        self,
        store: StoreDb,
        rooms: RoomRegistry,
        hub: BroadcastHub,
        coordinator: PlaylistCoordinator,
        config: ServerConfig | None = None,
    ) -> None:
        """
        Initialize the WebServer.

        Args:
            store: Track store
            rooms: Room registry
            hub: Broadcast hub owning the WebSocket connections
            coordinator: Playlist coordinator
            config: Optional server configuration (CORS origins, catalog)
        """
        self.store = store
        self.rooms = rooms
        self.hub = hub
        self.coordinator = coordinator
        self.config = config
        self.dispatcher = CommandDispatcher(coordinator)

        self.app = FastAPI(
            title="MusicDirect",
            description="Shared room playlists with real-time control",
            version=__version__,
            lifespan=self._lifespan,
        )

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=list(config.cors_origins) if config else ["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        # Server state
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task[None] | None = None
        self._host = "0.0.0.0"
        self._port = 8080

        self._register_routes()

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI) -> AsyncIterator[None]:
        opened_store = not self.store.is_open
        if opened_store:
            await self.store.open()
            await self.store.ensure_schema()

        started_hub = not self.hub.is_running
        if started_hub:
            await self.hub.start()

        try:
            yield
        finally:
            if started_hub:
                await self.hub.stop()
            if opened_store:
                await self.store.close()

    def _register_routes(self) -> None:
        """Register all routes with the FastAPI app."""

        @self.app.get("/health")
        async def health_check() -> dict[str, object]:
            """Health check endpoint."""
            return {
                "status": "ok",
                "server": "musicdirect",
                "connections": self.hub.connection_count,
            }

        register_api_routes(
            self.app,
            store=self.store,
            rooms=self.rooms,
            coordinator=self.coordinator,
            dispatcher=self.dispatcher,
            config=self.config,
        )
        register_ws_routes(self.app, hub=self.hub, rooms=self.rooms)

    async def start(self, host: str = "0.0.0.0", port: int = 8080) -> None:
        """
        Start the web server in the background.

        Args:
            host: Host address to bind to
            port: Port to listen on
        """
        self._host = host
        self._port = port

        config = uvicorn.Config(
            self.app,
            host=host,
            port=port,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)
        self._serve_task = asyncio.create_task(self._server.serve(), name="web-server")

        logger.info("Web server started on http://%s:%d", host, port)

    async def stop(self) -> None:
        """Stop the web server and wait for uvicorn to shut down."""
        server, self._server = self._server, None
        task, self._serve_task = self._serve_task, None

        if server is not None:
            server.should_exit = True
        if task is not None:
            try:
                await asyncio.wait_for(task, timeout=10.0)
            except asyncio.TimeoutError:
                logger.warning("Web server did not stop in time; cancelling")
                task.cancel()

        logger.info("Web server stopped")

    @property
    def port(self) -> int:
        """Get the server port."""
        return self._port

    @property
    def host(self) -> str:
        """Get the server host."""
        return self._host
