"""Pending call table: id -> (future, deadline timer)."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from loguru import logger

from studiobridge.bridge.metrics import MetricsCollector
from studiobridge.bridge.models import Command, CommandMetric, CommandResult, now_ms
from studiobridge.utils.exceptions import BridgeTimeoutError, ExecutionError, StudioBridgeError


@dataclass
class PendingCall:
    command: Command
    attempt: int
    timeout_ms: int
    started_at: float
    future: asyncio.Future[Any]
    timer: asyncio.TimerHandle | None = None

    @property
    def id(self) -> str:
        return self.command.id

    @property
    def method(self) -> str:
        return self.command.method

    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started_at) * 1000.0


class PendingCallTable:
    """Exactly one live entry per in-flight command.

    Both completion paths (result arrival, deadline) start by popping the entry,
    so whichever runs first wins and the other finds nothing to do.
    """

    def __init__(
        self,
        metrics: MetricsCollector,
        *,
        is_connected: Callable[[], bool],
        on_expire: Callable[[str], Any] | None = None,
    ):
        self._metrics = metrics
        self._is_connected = is_connected
        self._on_expire = on_expire
        self._entries: dict[str, PendingCall] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def ids(self) -> list[str]:
        return list(self._entries)

    def open(self, command: Command, *, attempt: int, timeout_ms: int) -> PendingCall:
        """Insert an entry for ``command`` and arm its deadline timer."""
        if command.id in self._entries:
            raise ValueError(f"Command id already pending: {command.id}")
        loop = asyncio.get_running_loop()
        entry = PendingCall(
            command=command,
            attempt=attempt,
            timeout_ms=timeout_ms,
            started_at=time.monotonic(),
            future=loop.create_future(),
        )
        self._entries[command.id] = entry
        entry.timer = loop.call_later(max(0, timeout_ms) / 1000.0, self._expire, command.id)
        return entry

    def _take(self, command_id: str) -> PendingCall | None:
        entry = self._entries.pop(command_id, None)
        if entry is not None and entry.timer is not None:
            entry.timer.cancel()
        return entry

    def _record(self, entry: PendingCall, success: bool, error: str | None = None) -> None:
        self._metrics.record(
            CommandMetric(
                method=entry.method,
                timestamp=now_ms(),
                duration_ms=entry.elapsed_ms(),
                success=success,
                error=error,
            )
        )

    def _expire(self, command_id: str) -> None:
        entry = self._take(command_id)
        if entry is None:
            return
        if self._on_expire is not None:
            self._on_expire(command_id)
        connected = self._is_connected()
        self._record(entry, False, "Timeout")
        logger.warning(
            "Command {} ({}) timed out after {}ms on attempt {} (plugin connected: {})",
            entry.id,
            entry.method,
            entry.timeout_ms,
            entry.attempt,
            connected,
        )
        if not entry.future.done():
            entry.future.set_exception(
                BridgeTimeoutError(
                    method=entry.method,
                    attempt=entry.attempt,
                    timeout_ms=entry.timeout_ms,
                    connected=connected,
                )
            )

    def resolve(self, result: CommandResult) -> bool:
        """Apply a plugin result. Returns False for ids that are not pending."""
        entry = self._take(result.id)
        if entry is None:
            logger.debug("Ignoring result for unknown command id {}", result.id)
            return False
        if result.success:
            self._record(entry, True)
            if not entry.future.done():
                entry.future.set_result(result.data)
            return True
        error = result.error or "Unknown plugin error"
        self._record(entry, False, error)
        logger.info("Command {} ({}) failed in plugin: {}", entry.id, entry.method, error)
        if not entry.future.done():
            entry.future.set_exception(ExecutionError(error, entry.method, entry.command.params))
        return True

    def fail(self, command_id: str, exc: StudioBridgeError, metric_error: str) -> bool:
        entry = self._take(command_id)
        if entry is None:
            return False
        self._record(entry, False, metric_error)
        if not entry.future.done():
            entry.future.set_exception(exc)
        return True

    def fail_many(
        self,
        command_ids: Iterable[str],
        make_error: Callable[[PendingCall], StudioBridgeError],
        metric_error: str,
    ) -> int:
        failed = 0
        for command_id in list(command_ids):
            entry = self._entries.get(command_id)
            if entry is None:
                continue
            if self.fail(command_id, make_error(entry), metric_error):
                failed += 1
        return failed

    def cancel(self, command_id: str) -> None:
        """Drop an entry without recording a metric (caller was cancelled)."""
        self._take(command_id)
