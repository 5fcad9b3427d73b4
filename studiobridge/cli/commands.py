"""CLI commands for studiobridge.

``serve`` runs the bridge; ``status``, ``call`` and ``ping`` talk to a running
one over HTTP or WebSocket.
"""

import asyncio
import json
from pathlib import Path
from typing import Any

import httpx
import typer
import websockets
from rich.console import Console
from rich.table import Table

from studiobridge import __logo__, __version__
from studiobridge.bridge.version import is_compatible
from studiobridge.cli.shared.logging_utils import configure_console_logging, ensure_rotating_log_file
from studiobridge.cli.shared.network_utils import find_free_port

app = typer.Typer(
    name="studiobridge",
    help=f"{__logo__} studiobridge - command bridge to the studio plugin",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} studiobridge v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-V", callback=version_callback, is_eager=True
    ),
):
    """studiobridge - command bridge to the studio plugin."""
    pass


@app.command()
def version():
    """Print the package version."""
    console.print(f"{__logo__} studiobridge v{__version__}")


@app.command()
def compat(
    server_version: str = typer.Argument(..., help="Server version, e.g. 1.1.0"),
    peer_version: str = typer.Argument(..., help="Plugin version, e.g. 1.1.7"),
):
    """Check whether a plugin version may attach to a server version."""
    if is_compatible(server_version, peer_version):
        console.print(f"[green]✓[/green] {peer_version} is compatible with {server_version}")
        return
    console.print(f"[red]✗[/red] {peer_version} is incompatible with {server_version}")
    raise typer.Exit(1)


# ============================================================================
# Server
# ============================================================================


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", "-h", help="Bind host"),
    port: int | None = typer.Option(None, "--port", "-p", help="Preferred port"),
    timeout_ms: int | None = typer.Option(None, "--timeout-ms", help="Per-attempt command timeout"),
    retries: int | None = typer.Option(None, "--retries", help="Retries after a timed-out attempt"),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Start the bridge server (plugin WebSocket + HTTP status)."""
    from studiobridge.api.server import create_app
    from studiobridge.bridge.core import StudioBridge
    from studiobridge.config.access import get_config

    try:
        config = get_config(config_path=config_path)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    updates: dict[str, Any] = {}
    if host is not None:
        updates["host"] = host
    if port is not None:
        updates["port"] = port
    if timeout_ms is not None:
        updates["timeout_ms"] = timeout_ms
    if retries is not None:
        updates["retries"] = retries
    bridge_config = config.bridge.model_copy(update=updates)

    level = "DEBUG" if verbose else config.logging.level
    configure_console_logging(level)
    log_path = ensure_rotating_log_file("serve", level=level) if config.logging.file else None

    bound_port = find_free_port(bridge_config.host, bridge_config.port, bridge_config.port_fallback_attempts)
    if bound_port is None:
        console.print(
            f"[red]No free port in {bridge_config.port}-"
            f"{bridge_config.port + bridge_config.port_fallback_attempts}.[/red] "
            "Close the process holding the port, or use [cyan]--port[/cyan] to pick another."
        )
        raise typer.Exit(1)
    if bound_port != bridge_config.port:
        console.print(
            f"[yellow]Port {bridge_config.port} is in use, falling back to {bound_port}.[/yellow] "
            "Point the studio plugin at the new port."
        )

    bridge = StudioBridge.from_config(bridge_config)
    api_app = create_app(bridge, config=bridge_config, port=bound_port)

    console.print(f"{__logo__} Starting studiobridge on {bridge_config.host}:{bound_port}...")
    if log_path is not None:
        console.print(f"[dim]Logs: {log_path}[/dim]")

    import uvicorn

    uvicorn_config = uvicorn.Config(
        api_app,
        host=bridge_config.host,
        port=bound_port,
        log_level="debug" if verbose else "warning",
    )
    server = uvicorn.Server(uvicorn_config)
    console.print(
        f"[green]✓[/green] Plugin WebSocket: ws://{bridge_config.host}:{bound_port}/ws "
        "(GET /status, GET /diagnostics, POST /execute)"
    )
    try:
        asyncio.run(server.serve())
    except KeyboardInterrupt:
        console.print("\nShutting down...")


# ============================================================================
# Client commands
# ============================================================================


def _base_url(host: str, port: int) -> str:
    return f"http://{host}:{port}"


def _json_body(response: httpx.Response) -> dict[str, Any]:
    """Decode a bridge reply, exiting cleanly when a proxy answered with non-JSON."""
    try:
        data = response.json()
    except ValueError:
        data = None
    if not isinstance(data, dict):
        text = response.text.strip()
        console.print(f"[red]✗[/red] Unexpected HTTP {response.status_code} response (not a JSON object)")
        if text:
            console.print(text[:500], markup=False)
        raise typer.Exit(1)
    return data


@app.command()
def status(
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Bridge host"),
    port: int = typer.Option(8081, "--port", "-p", help="Bridge port"),
):
    """Show a running bridge's diagnostics."""
    try:
        response = httpx.get(f"{_base_url(host, port)}/diagnostics", timeout=5.0)
        response.raise_for_status()
    except httpx.HTTPError as e:
        console.print(f"[red]✗[/red] Bridge not reachable at {host}:{port}: {e}")
        raise typer.Exit(1)

    data = _json_body(response)
    bridge = data.get("bridge", {})
    connection = data.get("connection", {})
    metrics = data.get("metrics", {})
    settings = data.get("config", {})

    console.print(f"{__logo__} studiobridge Status\n")
    port_line = f"Port: {bridge.get('port')}"
    if bridge.get("usingFallback"):
        port_line += f" [yellow](fallback from {bridge.get('preferredPort')})[/yellow]"
    console.print(port_line)
    if connection.get("pluginConnected"):
        console.print(f"Plugin: [green]✓ connected[/green] ({connection.get('readyClients')} ready)")
    else:
        console.print("Plugin: [yellow]waiting for plugin[/yellow]")
    console.print(
        f"Pending: {connection.get('pendingCommands', 0)}  Queued: {connection.get('queuedCommands', 0)}"
    )
    console.print(
        f"Timeout: {settings.get('timeoutMs')}ms  Retries: {settings.get('retries')}  "
        f"Retry delay: {settings.get('retryDelayMs')}ms"
    )
    console.print(f"Uptime: {data.get('uptime', 0):.0f}s")

    method_stats = metrics.get("methodStats") or {}
    if method_stats:
        table = Table(title=f"Commands ({metrics.get('successRate', 0.0):.0%} success)")
        table.add_column("Method")
        table.add_column("Count", justify="right")
        table.add_column("Avg ms", justify="right")
        table.add_column("Failures", justify="right")
        for name, stats in sorted(method_stats.items()):
            table.add_row(
                name,
                str(stats.get("count", 0)),
                f"{stats.get('averageDuration', 0.0):.1f}",
                str(stats.get("failures", 0)),
            )
        console.print(table)


@app.command()
def call(
    method: str = typer.Argument(..., help="Plugin method name"),
    params: str = typer.Option("{}", "--params", help="JSON object of parameters"),
    retries: int | None = typer.Option(None, "--retries", help="Override retries for this call"),
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Bridge host"),
    port: int = typer.Option(8081, "--port", "-p", help="Bridge port"),
    timeout: float = typer.Option(120.0, "--timeout", help="HTTP timeout in seconds"),
):
    """Run one command through a running bridge and print its result."""
    try:
        bag = json.loads(params)
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid --params JSON: {e}[/red]")
        raise typer.Exit(2)

    body: dict[str, Any] = {"method": method, "params": bag}
    if retries is not None:
        body["retries"] = retries
    try:
        response = httpx.post(f"{_base_url(host, port)}/execute", json=body, timeout=timeout)
    except httpx.HTTPError as e:
        console.print(f"[red]✗[/red] Bridge not reachable at {host}:{port}: {e}")
        raise typer.Exit(1)

    data = _json_body(response)
    if response.status_code != 200 or not data.get("ok"):
        console.print(f"[red]Error [{data.get('error')}][/red] {data.get('message', '')}")
        raise typer.Exit(1)
    result = data.get("result")
    if isinstance(result, str):
        console.print(result)
    else:
        console.print_json(data=result)


async def _recv_frame(ws: Any, timeout: float) -> dict[str, Any]:
    return json.loads(await asyncio.wait_for(ws.recv(), timeout))


async def _ping_bridge(url: str, plugin_version: str, timeout: float) -> dict[str, Any]:
    async with websockets.connect(url, open_timeout=timeout) as ws:
        greeting = await _recv_frame(ws, timeout)
        # observer handshake: the bridge never routes commands to this connection
        await ws.send(json.dumps({"type": "handshake", "version": plugin_version, "observer": True}))
        reply = await _recv_frame(ws, timeout)
        if reply.get("type") != "handshake_ok":
            return {"greeting": greeting, "handshake": reply, "pong": None, "skipped": []}
        await ws.send(json.dumps({"type": "ping"}))
        skipped: list[str] = []
        deadline = asyncio.get_running_loop().time() + timeout
        while True:
            remaining = deadline - asyncio.get_running_loop().time()
            if remaining <= 0:
                raise asyncio.TimeoutError("no pong before deadline")
            frame = await _recv_frame(ws, remaining)
            if frame.get("type") == "pong":
                return {"greeting": greeting, "handshake": reply, "pong": frame, "skipped": skipped}
            skipped.append(str(frame.get("type")))


@app.command()
def ping(
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Bridge host"),
    port: int = typer.Option(8081, "--port", "-p", help="Bridge port"),
    plugin_version: str = typer.Option(__version__, "--plugin-version", help="Version to present in the handshake"),
    timeout: float = typer.Option(5.0, "--timeout", help="Seconds to wait for the handshake and the pong"),
):
    """Attach to a bridge as a read-only observer: handshake, then ping."""
    url = f"ws://{host}:{port}/ws"
    try:
        outcome = asyncio.run(_ping_bridge(url, plugin_version, timeout))
    except (OSError, ValueError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as e:
        console.print(f"[red]✗[/red] Ping of {url} failed: {e}")
        raise typer.Exit(1)

    greeting = outcome["greeting"]
    console.print(f"Connected as {greeting.get('clientId')} (server {greeting.get('serverVersion')})")
    handshake = outcome["handshake"]
    if handshake.get("type") != "handshake_ok":
        console.print(f"[red]✗[/red] Handshake rejected: {handshake.get('message')}")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Handshake ok (plugin {handshake.get('pluginVersion')})")
    if outcome["skipped"]:
        console.print(f"[dim]Skipped frames before pong: {', '.join(outcome['skipped'])}[/dim]")
    if outcome["pong"] is not None:
        console.print(f"[green]✓[/green] Pong at {outcome['pong'].get('timestamp')}")


if __name__ == "__main__":
    app()
