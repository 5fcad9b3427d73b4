"""Tool-facing entry points onto the bridge."""

from studiobridge.tools.adapter import invoke_tool, validate_call, render_result, format_tool_error

__all__ = ["invoke_tool", "validate_call", "render_result", "format_tool_error"]
