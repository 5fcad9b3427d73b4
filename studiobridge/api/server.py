"""FastAPI server hosting the plugin WebSocket and the status endpoints.

The plugin attaches on ``/`` or ``/ws``; HTTP callers get status,
diagnostics and a one-shot ``POST /execute``.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel

from studiobridge import __version__
from studiobridge.api.status import build_diagnostics, build_status
from studiobridge.api.ws import bootstrap_plugin_ws_connection, handle_plugin_ws_close, run_plugin_ws_loop
from studiobridge.bridge.core import StudioBridge
from studiobridge.config.schema import BridgeConfig
from studiobridge.tools.adapter import validate_call
from studiobridge.utils.exceptions import StudioBridgeError, classify_exception, sanitize_error_message

_HTTP_STATUS_BY_CODE = {
    "TIMEOUT": 504,
    "EXECUTION_ERROR": 502,
    "VALIDATION_ERROR": 400,
    "VERSION_MISMATCH": 409,
    "BRIDGE_UNAVAILABLE": 503,
}


def classify_http_status(exc: StudioBridgeError) -> int:
    return _HTTP_STATUS_BY_CODE.get(exc.code, 500)


class ExecuteRequest(BaseModel):
    """Body of POST /execute."""
    method: str
    params: dict[str, Any] | None = None
    retries: int | None = None


def create_app(
    bridge: StudioBridge,
    *,
    config: BridgeConfig | None = None,
    port: int | None = None,
) -> FastAPI:
    """Build the ASGI app around an existing bridge instance."""
    config = config or BridgeConfig()
    preferred_port = config.port
    bound_port = port or preferred_port
    started_at = time.monotonic()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Studio bridge listening on port {}", bound_port)
        try:
            yield
        finally:
            await bridge.shutdown()
            logger.info("Studio bridge stopped")

    app = FastAPI(
        title="Studio Bridge",
        description="Command bridge between tool callers and the studio plugin",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.bridge = bridge

    @app.exception_handler(StudioBridgeError)
    async def studiobridge_exception_handler(request: Request, exc: StudioBridgeError):
        return JSONResponse(
            status_code=classify_http_status(exc),
            content={"ok": False, **exc.to_dict()},
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        code, _category, _ = classify_exception(exc)
        logger.exception("Unhandled exception [{}]: {}", code, sanitize_error_message(str(exc)))
        return JSONResponse(
            status_code=500,
            content={"ok": False, "error": "INTERNAL_ERROR", "message": "An unexpected error occurred", "code": code},
        )

    @app.get("/status")
    async def status() -> dict[str, Any]:
        return build_status(bridge, port=bound_port, started_at=started_at)

    @app.get("/diagnostics")
    async def diagnostics() -> dict[str, Any]:
        return build_diagnostics(
            bridge,
            port=bound_port,
            preferred_port=preferred_port,
            started_at=started_at,
        )

    @app.post("/execute")
    async def execute(body: ExecuteRequest) -> dict[str, Any]:
        method, params = validate_call(body.method, body.params)
        result = await bridge.execute(method, params, retries=body.retries)
        return {"ok": True, "result": result}

    async def plugin_socket(websocket: WebSocket) -> None:
        connection = await bootstrap_plugin_ws_connection(websocket=websocket, bridge=bridge)
        try:
            await run_plugin_ws_loop(websocket=websocket, connection=connection, bridge=bridge)
        except WebSocketDisconnect:
            pass
        except Exception as e:
            handle_plugin_ws_close(connection=connection, bridge=bridge, exc=e)
            return
        handle_plugin_ws_close(connection=connection, bridge=bridge)

    app.add_api_websocket_route("/", plugin_socket)
    app.add_api_websocket_route("/ws", plugin_socket)

    @app.get("/")
    @app.get("/ws")
    async def upgrade_required() -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": "WebSocket upgrade failed"})

    @app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
    async def fallback(path: str) -> JSONResponse:
        return JSONResponse(status_code=426, content={"error": "Use WebSocket connection"})

    return app
