"""Command bridge between tool callers and the studio plugin."""

from studiobridge.bridge.core import StudioBridge, DisconnectPolicy
from studiobridge.bridge.metrics import MetricsCollector, MetricsSnapshot, MethodStats
from studiobridge.bridge.models import Command, CommandResult, CommandMetric, ConnectionState, PeerConnection
from studiobridge.bridge.version import is_compatible

__all__ = [
    "StudioBridge",
    "DisconnectPolicy",
    "MetricsCollector",
    "MetricsSnapshot",
    "MethodStats",
    "Command",
    "CommandResult",
    "CommandMetric",
    "ConnectionState",
    "PeerConnection",
    "is_compatible",
]
