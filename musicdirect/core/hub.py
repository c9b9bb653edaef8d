"""
Broadcast Hub for MusicDirect.

The hub owns the set of live real-time connections and fans events out to
them. All publishing goes through one ordered queue drained by a single
worker task, so:

- events reach every connection in the order they were published
- mutation of the connection set never races with a delivery pass

Each send is bounded by `send_timeout_s`. A connection whose send fails or
times out is closed and removed inline, during the same delivery pass; the
publisher never sees the failure.

Usage:
    hub = BroadcastHub(scope=BroadcastScope.ROOM)
    await hub.start()

    await hub.attach(connection, room="AB12C")
    await hub.publish(TransportEvent(command=TransportCommand.NEXT, room="AB12C"))

    await hub.stop()
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from musicdirect.core.events import Event

logger = logging.getLogger(__name__)

_connection_ids = itertools.count(1)


class ConnectionState(Enum):
    """Lifecycle of a connection. CLOSED is terminal."""

    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSED = "closed"


class BroadcastScope(Enum):
    """
    Which connections receive a room-tagged event.

    ROOM: only connections attached to that room (plus room-less listeners).
    GLOBAL: every connection; clients filter on the `room` field themselves.
    """

    ROOM = "room"
    GLOBAL = "global"


class Connection(ABC):
    """
    Handle to one live bidirectional real-time channel.

    Subclasses implement `send()` and `close()` for a concrete transport
    (see `musicdirect.web.routes.ws.WebSocketConnection`).
    """

    def __init__(self) -> None:
        self.connection_id = next(_connection_ids)
        self.room: str | None = None
        self.state = ConnectionState.CONNECTING

    @property
    def is_active(self) -> bool:
        return self.state is ConnectionState.ACTIVE

    @abstractmethod
    async def send(self, payload: dict[str, Any]) -> None:
        """Deliver one JSON-serializable payload."""

    async def close(self) -> None:
        """Close the underlying channel. Default: nothing to close."""

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} id={self.connection_id} room={self.room} "
            f"state={self.state.value}>"
        )


class BroadcastHub:
    """
    In-memory fan-out of events to live connections.

    Supports:
    - Room-partitioned or global delivery (see BroadcastScope)
    - FIFO delivery per connection relative to publish order
    - Bounded, concurrent sends within one delivery pass
    - Pruning of dead connections inline during delivery

    The hub is an injectable collaborator; tests create isolated instances.
    """

    def __init__(
        self,
        *,
        scope: BroadcastScope = BroadcastScope.ROOM,
        send_timeout_s: float = 5.0,
        max_queue: int = 1000,
    ) -> None:
        self.scope = scope
        self.send_timeout_s = send_timeout_s
        self._connections: dict[int, Connection] = {}
        self._lock = asyncio.Lock()
        self._queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=max_queue)
        self._worker: asyncio.Task[None] | None = None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def start(self) -> None:
        """Start the publish worker. Safe to call more than once."""
        if self.is_running:
            return
        self._worker = asyncio.create_task(self._run(), name="broadcast-hub")
        logger.debug("Broadcast hub started (scope=%s)", self.scope.value)

    async def stop(self) -> None:
        """Stop the worker and close every connection."""
        worker, self._worker = self._worker, None
        if worker is not None:
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass

        async with self._lock:
            connections = list(self._connections.values())
            self._connections.clear()

        # Close outside the lock to avoid holding it during I/O
        for connection in connections:
            await self._close_quietly(connection)

        if connections:
            logger.info("Broadcast hub stopped (%d connections closed)", len(connections))

    # -------------------------------------------------------------------------
    # Connection set
    # -------------------------------------------------------------------------

    async def attach(self, connection: Connection, room: str | None = None) -> None:
        """
        Add a connection to the active set.

        Args:
            connection: A connection in CONNECTING state.
            room: Room code to subscribe to, or None for every event.
        """
        if connection.state is ConnectionState.CLOSED:
            raise ValueError(f"Cannot attach closed connection {connection!r}")

        async with self._lock:
            connection.room = room
            connection.state = ConnectionState.ACTIVE
            self._connections[connection.connection_id] = connection

        logger.info(
            "Connection %d attached (room=%s, total=%d)",
            connection.connection_id,
            room or "*",
            len(self._connections),
        )

    async def detach(self, connection: Connection) -> bool:
        """
        Remove a connection. Idempotent.

        Returns True if the connection was in the active set.
        """
        async with self._lock:
            removed = self._connections.pop(connection.connection_id, None) is not None
            connection.state = ConnectionState.CLOSED

        if removed:
            logger.info(
                "Connection %d detached (remaining=%d)",
                connection.connection_id,
                len(self._connections),
            )
        return removed

    async def close_room(self, room: str) -> int:
        """
        Detach and close every connection attached to `room`.

        Used when a room is deleted. Returns the number of connections closed.
        """
        async with self._lock:
            closing = [c for c in self._connections.values() if c.room == room]
            for connection in closing:
                self._connections.pop(connection.connection_id, None)
                connection.state = ConnectionState.CLOSED

        for connection in closing:
            await self._close_quietly(connection)
        return len(closing)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def connections(self, room: str | None = None) -> list[Connection]:
        """Snapshot of active connections, optionally only those attached to `room`."""
        return [
            c for c in self._connections.values() if room is None or c.room == room
        ]

    def __contains__(self, connection: object) -> bool:
        return (
            isinstance(connection, Connection)
            and self._connections.get(connection.connection_id) is connection
        )

    def __len__(self) -> int:
        return len(self._connections)

    # -------------------------------------------------------------------------
    # Publishing
    # -------------------------------------------------------------------------

    async def publish(self, event: Event) -> None:
        """
        Queue an event for delivery.

        Delivery happens on the worker task; this only waits if the queue is
        full. Delivery failures are never reported back to the publisher.
        """
        await self._queue.put(event)
        if not self.is_running:
            logger.debug("Event %s queued while hub is not running", event.event_type)

    async def flush(self) -> None:
        """Wait until every event queued so far has been delivered."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._deliver(event)
            except Exception as e:
                logger.exception("Error delivering %s: %s", event.event_type, e)
            finally:
                self._queue.task_done()

    def _targets(self, event: Event) -> list[Connection]:
        if self.scope is BroadcastScope.GLOBAL or event.room is None:
            return list(self._connections.values())
        return [c for c in self._connections.values() if c.room in (None, event.room)]

    async def _deliver(self, event: Event) -> int:
        """Deliver one event to its targets. Returns the number of successful sends."""
        async with self._lock:
            targets = self._targets(event)

        if not targets:
            return 0

        payload = event.to_dict()
        results = await asyncio.gather(
            *(self._send(connection, payload) for connection in targets)
        )

        failed = [c for c, ok in zip(targets, results) if not ok]
        if failed:
            async with self._lock:
                for connection in failed:
                    self._connections.pop(connection.connection_id, None)
                    connection.state = ConnectionState.CLOSED
            for connection in failed:
                await self._close_quietly(connection)

        delivered = len(targets) - len(failed)
        logger.debug(
            "Published %s to %d connections (%d pruned)",
            event.event_type,
            delivered,
            len(failed),
        )
        return delivered

    async def _send(self, connection: Connection, payload: dict[str, Any]) -> bool:
        try:
            await asyncio.wait_for(connection.send(payload), timeout=self.send_timeout_s)
            return True
        except asyncio.TimeoutError:
            logger.warning(
                "Send to connection %d timed out after %.1fs; dropping it",
                connection.connection_id,
                self.send_timeout_s,
            )
        except Exception as e:
            logger.warning("Send to connection %d failed: %s", connection.connection_id, e)
        return False

    async def _close_quietly(self, connection: Connection) -> None:
        connection.state = ConnectionState.CLOSED
        try:
            await asyncio.wait_for(connection.close(), timeout=self.send_timeout_s)
        except Exception as e:
            logger.debug("Error closing connection %d: %s", connection.connection_id, e)
