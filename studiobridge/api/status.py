"""Status and diagnostics documents served over HTTP."""

from __future__ import annotations

import time
from typing import Any

from studiobridge import __version__
from studiobridge.bridge.core import StudioBridge


def uptime_seconds(started_at: float) -> float:
    return round(time.monotonic() - started_at, 3)


def build_status(bridge: StudioBridge, *, port: int, started_at: float) -> dict[str, Any]:
    """Short health document for load balancers and the CLI."""
    return {
        "service": "studiobridge",
        "version": __version__,
        "port": port,
        "clients": bridge.connection_count(),
        "ready": bridge.ready_count(),
        "connected": bridge.is_connected(),
        "uptime": uptime_seconds(started_at),
    }


def build_diagnostics(
    bridge: StudioBridge,
    *,
    port: int,
    preferred_port: int,
    started_at: float,
) -> dict[str, Any]:
    """Full diagnostics: server, plugin connections, metrics and effective settings."""
    connected = bridge.is_connected()
    return {
        "bridge": {
            "running": not bridge.closed,
            "version": bridge.server_version,
            "port": port,
            "preferredPort": preferred_port,
            "usingFallback": port != preferred_port,
        },
        "connection": {
            "pluginConnected": connected,
            "clients": bridge.connection_count(),
            "readyClients": bridge.ready_count(),
            "pendingCommands": bridge.pending_count(),
            "queuedCommands": bridge.queued_count(),
            "status": "connected" if connected else "waiting_for_plugin",
            "connections": [c.to_dict() for c in bridge.registry.list_connections()],
        },
        "metrics": bridge.get_metrics().to_dict(),
        "config": {
            "timeoutMs": bridge.timeout_ms,
            "retries": bridge.retries,
            "retryDelayMs": bridge.retry_delay_ms,
            "disconnectPolicy": bridge.disconnect_policy.value,
        },
        "uptime": uptime_seconds(started_at),
    }
