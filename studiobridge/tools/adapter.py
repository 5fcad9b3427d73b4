"""Adapter between named tool invocations and the bridge.

Every tool is a thin wrapper: validate the call, forward it as one command,
render the plugin's data as text for the caller.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Mapping

from studiobridge.utils.exceptions import ValidationError, format_tool_error

if TYPE_CHECKING:
    from studiobridge.bridge.core import StudioBridge

__all__ = ["validate_call", "render_result", "invoke_tool", "format_tool_error"]


def validate_call(method: Any, params: Any = None) -> tuple[str, dict[str, Any]]:
    """Check a tool call's shape. Returns the normalized (method, params)."""
    if not isinstance(method, str) or not method.strip():
        raise ValidationError("Method name must be a non-empty string", field="method")
    if params is None:
        return method.strip(), {}
    if not isinstance(params, Mapping):
        raise ValidationError("Params must be an object", field="params")
    return method.strip(), dict(params)


def render_result(data: Any) -> str:
    if isinstance(data, str):
        return data
    return json.dumps(data, indent=2, default=str)


async def invoke_tool(
    bridge: "StudioBridge",
    method: str,
    params: Mapping[str, Any] | None = None,
    retries: int | None = None,
) -> str:
    """Run one tool call through the bridge and return its text result.

    Bridge errors (timeouts, plugin failures) propagate unchanged.
    """
    method, bag = validate_call(method, params)
    data = await bridge.execute(method, bag, retries=retries)
    return render_result(data)
