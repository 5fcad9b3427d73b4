"""Plugin/server version compatibility check."""

from __future__ import annotations

from typing import Any


def _segments(version: Any) -> list[str] | None:
    if not isinstance(version, str):
        return None
    parts = version.strip().split(".")
    if len(parts) < 2:
        return None
    return parts


def is_compatible(server_version: Any, peer_version: Any) -> bool:
    """Return True when major and minor match; the patch segment is ignored.

    Malformed input (non-strings, fewer than two segments) is never compatible.
    """
    server = _segments(server_version)
    peer = _segments(peer_version)
    if server is None or peer is None:
        return False
    return server[0] == peer[0] and server[1] == peer[1]
