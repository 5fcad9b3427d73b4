"""Per-connection message state machine for the plugin WebSocket protocol.

Frames (JSON text):

    server -> plugin   connected      {clientId, serverVersion}
    plugin -> server   handshake      {version, observer?}
    server -> plugin   handshake_ok   {serverVersion, pluginVersion, observer?}
    server -> plugin   error          {code?, message, serverVersion?}
    server -> plugin   commands       {data: [Command]}
    plugin -> server   result         {data: Result}
    server -> plugin   ack            {id}
    plugin -> server   ping
    server -> plugin   pong           {timestamp}
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from loguru import logger

from studiobridge.bridge.models import PeerConnection, now_ms
from studiobridge.bridge.version import is_compatible
from studiobridge.utils.exceptions import ValidationError, VersionMismatchError

if TYPE_CHECKING:
    from studiobridge.bridge.core import StudioBridge

POLICY_VIOLATION = 1008


def decode_frame(raw: str | bytes | bytearray) -> dict[str, Any] | None:
    """Parse one inbound frame. Returns None when it is not a JSON object."""
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError:
            return None
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return frame if isinstance(frame, dict) else None


class ProtocolHandler:
    """Drives handshake, keepalive and result delivery for each plugin connection."""

    def __init__(self, bridge: "StudioBridge"):
        self._bridge = bridge

    async def _send(self, connection: PeerConnection, payload: dict[str, Any]) -> bool:
        try:
            await connection.send(json.dumps(payload))
            return True
        except Exception as e:
            logger.warning("Failed to send {} frame to {}: {}", payload.get("type"), connection.id, e)
            return False

    async def open(self, socket: Any, remote_ip: str | None = None) -> PeerConnection:
        """Register an accepted transport and greet the plugin."""
        connection = self._bridge.attach(socket, remote_ip)
        await self._send(
            connection,
            {"type": "connected", "clientId": connection.id, "serverVersion": self._bridge.server_version},
        )
        return connection

    def close(self, connection: PeerConnection) -> None:
        self._bridge.detach(connection)

    async def handle_message(self, connection: PeerConnection, raw: str | bytes | bytearray) -> None:
        frame = decode_frame(raw)
        if frame is None:
            logger.warning("Invalid frame from plugin connection {}", connection.id)
            await self._send(connection, {"type": "error", "message": "Invalid JSON"})
            return

        frame_type = frame.get("type")
        if frame_type == "handshake":
            await self._handle_handshake(connection, frame)
        elif frame_type == "result":
            await self._handle_result(connection, frame.get("data"))
        elif frame_type == "ping":
            await self._send(connection, {"type": "pong", "timestamp": now_ms()})
        else:
            logger.debug("Ignoring unknown frame type {!r} from {}", frame_type, connection.id)

    async def _handle_handshake(self, connection: PeerConnection, frame: dict[str, Any]) -> None:
        version = frame.get("version")
        server_version = self._bridge.server_version
        if not is_compatible(server_version, version):
            err = VersionMismatchError(server_version, version)
            logger.warning("Rejecting plugin connection {}: {}", connection.id, err.message)
            # terminal for this connection, even one that was already ready
            self._bridge.detach(connection)
            await self._send(
                connection,
                {
                    "type": "error",
                    "code": err.code,
                    "message": err.message,
                    "serverVersion": server_version,
                },
            )
            try:
                await connection.socket.close(code=POLICY_VIOLATION, reason=err.code)
            except Exception as e:
                logger.debug("Close after version mismatch failed for {}: {}", connection.id, e)
            return

        if frame.get("observer") is True:
            # observers pass the version gate but never receive commands
            connection.version = version
            await self._send(
                connection,
                {
                    "type": "handshake_ok",
                    "serverVersion": server_version,
                    "pluginVersion": version,
                    "observer": True,
                },
            )
            logger.info("Observer connection {} attached (version {})", connection.id, version)
            return

        await self._send(
            connection,
            {"type": "handshake_ok", "serverVersion": server_version, "pluginVersion": version},
        )
        await self._bridge.registry.mark_ready(connection, version)

    async def _handle_result(self, connection: PeerConnection, payload: Any) -> None:
        try:
            matched = self._bridge.handle_result(payload)
        except ValidationError as e:
            logger.warning("Rejected result from plugin connection {}: {}", connection.id, e.message)
            await self._send(connection, {"type": "error", "code": "INVALID_RESULT", "message": e.message})
            return
        if not matched:
            logger.debug("Result {} from {} matched no pending command", payload.get("id"), connection.id)
        await self._send(connection, {"type": "ack", "id": payload["id"]})
