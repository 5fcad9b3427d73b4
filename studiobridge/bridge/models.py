"""Bridge data model: commands, results, peer connections and metrics."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, StrictBool, ValidationError as PydanticValidationError

from studiobridge.utils.exceptions import ValidationError


def now_ms() -> int:
    return int(time.time() * 1000)


def new_command_id() -> str:
    return uuid4().hex


@dataclass(frozen=True)
class Command:
    """One remote invocation request sent to the plugin."""
    id: str
    method: str
    params: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(cls, method: str, params: Mapping[str, Any] | None = None) -> "Command":
        return cls(id=new_command_id(), method=method, params=dict(params or {}))

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "method": self.method, "params": dict(self.params)}


class CommandResult(BaseModel):
    """Outcome reported by the plugin for one command, matched by id."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    success: StrictBool
    data: Any = None
    error: str | None = None


def parse_result(payload: Any) -> CommandResult:
    """Validate a raw result payload. Raises ValidationError on a bad shape."""
    if isinstance(payload, CommandResult):
        return payload
    if not isinstance(payload, dict):
        raise ValidationError("Result payload must be an object", field="data")
    try:
        return CommandResult.model_validate(payload)
    except PydanticValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        loc = ".".join(str(x) for x in first.get("loc", ())) or None
        raise ValidationError(f"Invalid result payload: {first.get('msg', str(e))}", field=loc) from e


class ConnectionState(Enum):
    CONNECTED = "connected"
    READY = "ready"
    CLOSED = "closed"


@dataclass(eq=False)
class PeerConnection:
    """A plugin attached over WebSocket.

    ``socket`` needs async ``send_text(str)`` and ``close(code=..., reason=...)``.
    """
    id: str
    socket: Any
    connected_at_ms: int = field(default_factory=now_ms)
    remote_ip: str | None = None
    ready: bool = False
    version: str | None = None
    state: ConnectionState = ConnectionState.CONNECTED

    async def send(self, text: str) -> None:
        await self.socket.send_text(text)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "connectedAt": self.connected_at_ms,
            "ready": self.ready,
            "version": self.version,
            "state": self.state.value,
            "remoteIp": self.remote_ip,
        }


@dataclass(frozen=True)
class CommandMetric:
    method: str
    timestamp: int
    duration_ms: float
    success: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "method": self.method,
            "timestamp": self.timestamp,
            "durationMs": self.duration_ms,
            "success": self.success,
        }
        if self.error is not None:
            data["error"] = self.error
        return data
