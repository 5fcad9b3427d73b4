"""In-memory registry of attached plugin connections."""

from __future__ import annotations

from typing import Awaitable, Callable

from loguru import logger

from studiobridge.bridge.models import ConnectionState, PeerConnection

ReadyListener = Callable[[PeerConnection], Awaitable[None]]


class ConnectionRegistry:
    """Tracks attached connections and which of them completed the handshake."""

    def __init__(self):
        self._connections: dict[str, PeerConnection] = {}
        self._ready_listeners: list[ReadyListener] = []

    def add_ready_listener(self, listener: ReadyListener) -> None:
        self._ready_listeners.append(listener)

    def add(self, connection: PeerConnection) -> None:
        self._connections[connection.id] = connection
        logger.info(
            "Plugin connection {} attached from {} ({} total)",
            connection.id,
            connection.remote_ip or "unknown",
            len(self._connections),
        )

    def remove(self, connection: PeerConnection) -> bool:
        """Detach a connection. Returns True when it was the last ready one."""
        existing = self._connections.pop(connection.id, None)
        was_ready = connection.ready
        connection.state = ConnectionState.CLOSED
        connection.ready = False
        if existing is None:
            return False
        remaining_ready = self.ready_count()
        logger.info(
            "Plugin connection {} detached ({} total, {} ready)",
            connection.id,
            len(self._connections),
            remaining_ready,
        )
        return was_ready and remaining_ready == 0

    async def mark_ready(self, connection: PeerConnection, version: str) -> None:
        """Flag a connection as ready after a valid handshake and notify listeners."""
        connection.ready = True
        connection.version = version
        connection.state = ConnectionState.READY
        logger.info("Plugin connection {} ready (version {})", connection.id, version)
        for listener in list(self._ready_listeners):
            await listener(connection)

    def get(self, connection_id: str) -> PeerConnection | None:
        return self._connections.get(connection_id)

    def list_connections(self) -> list[PeerConnection]:
        return sorted(self._connections.values(), key=lambda c: c.connected_at_ms)

    def count(self) -> int:
        return len(self._connections)

    def ready_count(self) -> int:
        return sum(1 for c in self._connections.values() if c.ready)

    def ready_connections(self) -> list[PeerConnection]:
        return [c for c in self._connections.values() if c.ready]

    def for_each_ready(self, fn: Callable[[PeerConnection], None]) -> None:
        for connection in self.ready_connections():
            fn(connection)
