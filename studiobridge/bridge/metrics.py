"""Rolling command execution metrics."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any

from studiobridge.bridge.models import CommandMetric

DEFAULT_HISTORY_SIZE = 100
DEFAULT_RECENT_COUNT = 10


@dataclass
class MethodStats:
    count: int = 0
    average_duration: float = 0.0
    failures: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"count": self.count, "averageDuration": self.average_duration, "failures": self.failures}


@dataclass
class MetricsSnapshot:
    total_commands: int = 0
    success_count: int = 0
    failure_count: int = 0
    success_rate: float = 0.0
    average_duration: float = 0.0
    recent_commands: list[CommandMetric] = field(default_factory=list)
    method_stats: dict[str, MethodStats] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalCommands": self.total_commands,
            "successCount": self.success_count,
            "failureCount": self.failure_count,
            "successRate": self.success_rate,
            "averageDuration": self.average_duration,
            "recentCommands": [m.to_dict() for m in self.recent_commands],
            "methodStats": {name: stats.to_dict() for name, stats in self.method_stats.items()},
        }


class MetricsCollector:
    """Bounded FIFO of completed commands plus derived aggregates."""

    def __init__(self, *, capacity: int = DEFAULT_HISTORY_SIZE, recent_count: int = DEFAULT_RECENT_COUNT):
        self._history: deque[CommandMetric] = deque(maxlen=max(1, capacity))
        self._recent_count = max(0, recent_count)

    @property
    def capacity(self) -> int:
        return self._history.maxlen or 0

    def __len__(self) -> int:
        return len(self._history)

    def record(self, metric: CommandMetric) -> None:
        self._history.append(metric)

    def reset(self) -> None:
        self._history.clear()

    def snapshot(self) -> MetricsSnapshot:
        total = 0
        successes = 0
        duration_sum = 0.0
        per_method: dict[str, MethodStats] = {}
        for metric in self._history:
            total += 1
            duration_sum += metric.duration_ms
            if metric.success:
                successes += 1
            stats = per_method.get(metric.method)
            if stats is None:
                stats = MethodStats()
                per_method[metric.method] = stats
            stats.count += 1
            stats.average_duration += (metric.duration_ms - stats.average_duration) / stats.count
            if not metric.success:
                stats.failures += 1

        recent = list(self._history)[-self._recent_count:] if self._recent_count else []
        return MetricsSnapshot(
            total_commands=total,
            success_count=successes,
            failure_count=total - successes,
            success_rate=(successes / total) if total else 0.0,
            average_duration=(duration_sum / total) if total else 0.0,
            recent_commands=recent,
            method_stats=per_method,
        )
