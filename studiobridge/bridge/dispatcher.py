"""Command queue and broadcast to ready plugin connections."""

from __future__ import annotations

import json

from loguru import logger

from studiobridge.bridge.models import Command, PeerConnection
from studiobridge.bridge.registry import ConnectionRegistry


def encode_commands(commands: list[Command]) -> str:
    return json.dumps({"type": "commands", "data": [c.to_dict() for c in commands]})


class CommandDispatcher:
    """Queues commands and fans them out to every ready connection.

    The queue is drained in one step before any send is awaited, so a command
    is never delivered twice by concurrent flushes.
    """

    def __init__(self, registry: ConnectionRegistry):
        self._registry = registry
        self._queue: list[Command] = []

    def queued_count(self) -> int:
        return len(self._queue)

    def queued(self) -> list[Command]:
        return list(self._queue)

    async def enqueue(self, command: Command) -> int:
        self._queue.append(command)
        return await self.flush()

    def discard(self, command_id: str) -> bool:
        """Drop an undelivered command. Returns True when it was still queued."""
        for index, command in enumerate(self._queue):
            if command.id == command_id:
                del self._queue[index]
                return True
        return False

    def clear(self) -> None:
        self._queue.clear()

    async def flush(self) -> int:
        """Deliver the whole queue if a ready connection exists. Returns commands sent."""
        targets = self._registry.ready_connections()
        if not targets or not self._queue:
            return 0
        batch = self._queue
        self._queue = []
        frame = encode_commands(batch)
        for connection in targets:
            await self._send(connection, frame, len(batch))
        return len(batch)

    async def _send(self, connection: PeerConnection, frame: str, size: int) -> None:
        try:
            await connection.send(frame)
            logger.debug("Sent {} command(s) to plugin connection {}", size, connection.id)
        except Exception as e:
            logger.warning("Failed to send commands to plugin connection {}: {}", connection.id, e)
