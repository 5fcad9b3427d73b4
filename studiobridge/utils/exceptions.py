"""
Exception hierarchy and error handling utilities for studiobridge.

Provides:
- Custom exception classes with error codes
- Error categorization (retryable, fatal, timeout, validation)
- Safe error message formatting (no sensitive data leak)
"""

from __future__ import annotations

import asyncio
import json
import re
from enum import Enum
from typing import Any


class ErrorCategory(Enum):
    """Error categories for classification."""
    RETRYABLE = "retryable"
    FATAL = "fatal"
    VALIDATION = "validation"
    TIMEOUT = "timeout"


class StudioBridgeError(Exception):
    """Base exception for all studiobridge errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        category: ErrorCategory = ErrorCategory.FATAL,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "category": self.category.value,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class BridgeTimeoutError(StudioBridgeError):
    """No result arrived before the command deadline.

    ``connected`` records whether a ready plugin existed when the deadline
    fired; the message differs for the two cases.
    """

    def __init__(
        self,
        method: str,
        attempt: int,
        timeout_ms: int,
        connected: bool,
        message: str | None = None,
    ):
        if message is None:
            if connected:
                message = f"Command '{method}' timed out after {timeout_ms}ms (attempt {attempt})"
            else:
                message = (
                    "No studio plugin connected. Open the editor and enable the bridge plugin. "
                    f"(method '{method}', attempt {attempt})"
                )
        super().__init__(
            message,
            code="TIMEOUT",
            category=ErrorCategory.TIMEOUT,
            details={
                "method": method,
                "attempt": attempt,
                "timeout_ms": timeout_ms,
                "connected": connected,
            },
        )
        self.method = method
        self.attempt = attempt
        self.timeout_ms = timeout_ms
        self.connected = connected


class ExecutionError(StudioBridgeError):
    """The plugin ran the command and reported a failure."""

    def __init__(self, error: str, method: str, params: dict[str, Any] | None = None):
        super().__init__(
            f"Method '{method}' failed: {error}",
            code="EXECUTION_ERROR",
            category=ErrorCategory.FATAL,
            details={"method": method, "params": dict(params or {}), "error": error},
        )
        self.error = error
        self.method = method
        self.params = dict(params or {})


class ValidationError(StudioBridgeError):
    """Input validation error."""

    def __init__(self, message: str, field: str | None = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION_ERROR", category=ErrorCategory.VALIDATION, details=details)


class VersionMismatchError(StudioBridgeError):
    """Plugin version is not compatible with the server version."""

    def __init__(self, server_version: str, peer_version: Any):
        super().__init__(
            f"Plugin version {peer_version!s} is incompatible with server version {server_version}",
            code="VERSION_MISMATCH",
            category=ErrorCategory.FATAL,
            details={"server_version": server_version, "peer_version": peer_version},
        )
        self.server_version = server_version
        self.peer_version = peer_version


class BridgeConnectionError(StudioBridgeError):
    """The bridge itself is unavailable (shut down or unreachable)."""

    def __init__(self, message: str = "Cannot reach the studio bridge. Is the server running?"):
        super().__init__(message, code="BRIDGE_UNAVAILABLE", category=ErrorCategory.RETRYABLE)


_SENSITIVE_PATTERNS = [
    re.compile(r"(api[_-]?key|token|secret|password|auth)[=:]\s*['\"]?([^\s'\"]+)['\"]?", re.IGNORECASE),
    re.compile(r"bearer\s+[a-zA-Z0-9\-._~+/]+=*", re.IGNORECASE),
    re.compile(r"sk-[a-zA-Z0-9]{20,}"),
]


def sanitize_error_message(message: str, replacement: str = "[REDACTED]") -> str:
    """Remove sensitive information from error messages."""
    sanitized = message
    for pattern in _SENSITIVE_PATTERNS:
        sanitized = pattern.sub(replacement, sanitized)
    return sanitized


def classify_exception(exc: Exception) -> tuple[str, ErrorCategory, bool]:
    """
    Classify an exception and return (error_code, category, should_retry).

    Only timeouts are retried by the bridge; everything else is surfaced.
    """
    if isinstance(exc, StudioBridgeError):
        return exc.code, exc.category, exc.category is ErrorCategory.TIMEOUT

    if isinstance(exc, asyncio.TimeoutError):
        return "TIMEOUT", ErrorCategory.TIMEOUT, True

    if isinstance(exc, ConnectionError):
        return "CONNECTION_ERROR", ErrorCategory.RETRYABLE, False

    if isinstance(exc, json.JSONDecodeError):
        return "JSON_PARSE_ERROR", ErrorCategory.VALIDATION, False

    if isinstance(exc, (ValueError, KeyError, TypeError)):
        return "INVALID_VALUE", ErrorCategory.VALIDATION, False

    return "INTERNAL_ERROR", ErrorCategory.FATAL, False


def format_tool_error(method: str, exc: Exception, include_details: bool = False) -> str:
    """Format an exception raised while running ``method`` as a one-line message."""
    code, category, _ = classify_exception(exc)

    if isinstance(exc, StudioBridgeError):
        message = exc.message
    else:
        message = sanitize_error_message(str(exc))

    if include_details:
        return f"Error [{code}] ({category.value}) in {method}: {message}"
    return f"Error: {message}"
