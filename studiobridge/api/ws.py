"""WebSocket endpoint helpers for plugin connections."""

from __future__ import annotations

from typing import Any

from loguru import logger

from studiobridge.bridge.core import StudioBridge
from studiobridge.bridge.models import ConnectionState, PeerConnection


async def bootstrap_plugin_ws_connection(*, websocket: Any, bridge: StudioBridge) -> PeerConnection:
    """Accept the socket, register it with the bridge and send the greeting."""
    await websocket.accept()
    client_host = getattr(websocket.client, "host", None) if websocket.client else None
    return await bridge.protocol.open(websocket, client_host)


async def run_plugin_ws_loop(*, websocket: Any, connection: PeerConnection, bridge: StudioBridge) -> None:
    """Feed inbound frames to the protocol handler until the socket goes away."""
    while connection.state is not ConnectionState.CLOSED:
        message = await websocket.receive()
        if message.get("type") == "websocket.disconnect":
            break
        raw = message.get("text")
        if raw is None:
            raw = message.get("bytes")
        if raw is None:
            continue
        await bridge.protocol.handle_message(connection, raw)


def handle_plugin_ws_close(
    *,
    connection: PeerConnection,
    bridge: StudioBridge,
    exc: Exception | None = None,
) -> None:
    """Detach the connection on disconnect or error."""
    if exc is not None:
        logger.error("Plugin WebSocket error on {}: {}", connection.id, exc)
    bridge.protocol.close(connection)
