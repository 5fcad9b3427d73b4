"""Bridge facade: execute() with timeout/retry over the connection registry."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping
from uuid import uuid4

from loguru import logger

from studiobridge import __version__
from studiobridge.bridge.dispatcher import CommandDispatcher
from studiobridge.bridge.metrics import DEFAULT_HISTORY_SIZE, DEFAULT_RECENT_COUNT, MetricsCollector, MetricsSnapshot
from studiobridge.bridge.models import Command, CommandResult, PeerConnection, parse_result
from studiobridge.bridge.pending import PendingCall, PendingCallTable
from studiobridge.bridge.protocol import ProtocolHandler
from studiobridge.bridge.registry import ConnectionRegistry
from studiobridge.utils.exceptions import BridgeConnectionError, BridgeTimeoutError

if TYPE_CHECKING:
    from studiobridge.config.schema import BridgeConfig

DEFAULT_TIMEOUT_MS = 30_000
DEFAULT_RETRIES = 2
DEFAULT_RETRY_DELAY_MS = 1_000


class DisconnectPolicy(str, Enum):
    """What happens to in-flight calls when the last ready plugin disconnects."""
    WAIT = "wait"  # calls keep waiting for their own deadline
    FAIL_FAST = "fail_fast"  # delivered calls fail immediately as not-connected timeouts


class StudioBridge:
    """Turns one-shot calls into commands for the studio plugin and awaits their results."""

    def __init__(
        self,
        *,
        server_version: str = __version__,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        retries: int = DEFAULT_RETRIES,
        retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS,
        metrics_capacity: int = DEFAULT_HISTORY_SIZE,
        recent_commands: int = DEFAULT_RECENT_COUNT,
        disconnect_policy: DisconnectPolicy | str = DisconnectPolicy.WAIT,
    ):
        self.server_version = server_version
        self.timeout_ms = timeout_ms
        self.retries = retries
        self.retry_delay_ms = retry_delay_ms
        self.disconnect_policy = DisconnectPolicy(disconnect_policy)
        self.registry = ConnectionRegistry()
        self.dispatcher = CommandDispatcher(self.registry)
        self.metrics = MetricsCollector(capacity=metrics_capacity, recent_count=recent_commands)
        self.pending = PendingCallTable(
            self.metrics,
            is_connected=self.is_connected,
            on_expire=self.dispatcher.discard,
        )
        self.protocol = ProtocolHandler(self)
        self.registry.add_ready_listener(self._on_connection_ready)
        self._closed = False

    @classmethod
    def from_config(cls, config: "BridgeConfig", *, server_version: str = __version__) -> "StudioBridge":
        return cls(
            server_version=server_version,
            timeout_ms=config.timeout_ms,
            retries=config.retries,
            retry_delay_ms=config.retry_delay_ms,
            metrics_capacity=config.metrics_capacity,
            recent_commands=config.recent_commands,
            disconnect_policy=config.disconnect_policy,
        )

    # ------------------------------------------------------------------
    # Caller-facing API
    # ------------------------------------------------------------------

    async def execute(self, method: str, params: Mapping[str, Any] | None = None, retries: int | None = None) -> Any:
        """Run ``method`` in the plugin and return its data.

        Raises BridgeTimeoutError after the last timed-out attempt and
        ExecutionError as soon as the plugin reports a failure.
        """
        if self._closed:
            raise BridgeConnectionError("Bridge shut down")
        max_retries = self.retries if retries is None else max(0, int(retries))
        last_error: BridgeTimeoutError | None = None
        for attempt in range(1, max_retries + 2):
            try:
                return await self._attempt(method, params, attempt)
            except BridgeTimeoutError as e:
                last_error = e
                if attempt > max_retries:
                    break
                logger.info(
                    "Retrying {} in {}ms (attempt {}/{})",
                    method,
                    self.retry_delay_ms,
                    attempt + 1,
                    max_retries + 1,
                )
                await asyncio.sleep(self.retry_delay_ms / 1000.0)
                if self._closed:
                    raise BridgeConnectionError("Bridge shut down") from e
        assert last_error is not None
        raise last_error

    async def _attempt(self, method: str, params: Mapping[str, Any] | None, attempt: int) -> Any:
        command = Command.create(method, params)
        entry = self.pending.open(command, attempt=attempt, timeout_ms=self.timeout_ms)
        logger.debug("Queued command {} ({}) attempt {}", command.id, method, attempt)
        try:
            await self.dispatcher.enqueue(command)
            return await entry.future
        except asyncio.CancelledError:
            self.pending.cancel(command.id)
            self.dispatcher.discard(command.id)
            raise

    def handle_result(self, payload: CommandResult | dict[str, Any]) -> bool:
        """Route a plugin result to its waiting caller.

        Raises ValidationError for malformed payloads. Returns False when the id
        is not pending (already resolved, timed out, or never issued).
        """
        return self.pending.resolve(parse_result(payload))

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def attach(self, socket: Any, remote_ip: str | None = None) -> PeerConnection:
        connection = PeerConnection(id=f"plugin_{uuid4().hex[:12]}", socket=socket, remote_ip=remote_ip)
        self.registry.add(connection)
        return connection

    def detach(self, connection: PeerConnection) -> None:
        last_ready_gone = self.registry.remove(connection)
        if last_ready_gone and self.disconnect_policy is DisconnectPolicy.FAIL_FAST:
            self._fail_delivered_calls()

    def _fail_delivered_calls(self) -> None:
        queued = {c.id for c in self.dispatcher.queued()}
        delivered = [cid for cid in self.pending.ids() if cid not in queued]

        def _error(entry: PendingCall) -> BridgeTimeoutError:
            return BridgeTimeoutError(
                method=entry.method,
                attempt=entry.attempt,
                timeout_ms=entry.timeout_ms,
                connected=False,
            )

        failed = self.pending.fail_many(delivered, _error, "Disconnected")
        if failed:
            logger.warning("Failed {} in-flight command(s) after the last plugin disconnected", failed)

    async def _on_connection_ready(self, connection: PeerConnection) -> None:
        sent = await self.dispatcher.flush()
        if sent:
            logger.info("Flushed {} queued command(s) after {} became ready", sent, connection.id)

    async def shutdown(self) -> None:
        """Fail every pending call, drop the queue and close all plugin connections."""
        if self._closed:
            return
        self._closed = True
        failed = self.pending.fail_many(
            self.pending.ids(),
            lambda _entry: BridgeConnectionError("Bridge shut down"),
            "Shutdown",
        )
        self.dispatcher.clear()
        for connection in self.registry.list_connections():
            try:
                await connection.socket.close(code=1001, reason="server shutdown")
            except Exception as e:
                logger.debug("Closing plugin connection {} failed: {}", connection.id, e)
            self.registry.remove(connection)
        logger.info("Bridge shut down ({} pending call(s) failed)", failed)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def is_connected(self) -> bool:
        return self.registry.ready_count() > 0

    def connection_count(self) -> int:
        return self.registry.count()

    def ready_count(self) -> int:
        return self.registry.ready_count()

    def pending_count(self) -> int:
        return len(self.pending)

    def queued_count(self) -> int:
        return self.dispatcher.queued_count()

    def get_metrics(self) -> MetricsSnapshot:
        return self.metrics.snapshot()

    def reset_metrics(self) -> None:
        self.metrics.reset()

    def connection_info(self) -> dict[str, Any]:
        return {
            "clients": self.connection_count(),
            "ready": self.ready_count(),
            "connected": self.is_connected(),
            "pending": self.pending_count(),
            "queued": self.queued_count(),
            "connections": [c.to_dict() for c in self.registry.list_connections()],
        }
