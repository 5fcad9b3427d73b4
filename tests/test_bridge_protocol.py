import asyncio
import json

import pytest

from studiobridge.bridge.core import StudioBridge
from studiobridge.bridge.models import ConnectionState
from studiobridge.bridge.protocol import decode_frame
from studiobridge.utils.exceptions import BridgeTimeoutError


async def _open(make_socket, server_version="1.1.0"):
    bridge = StudioBridge(server_version=server_version, timeout_ms=1000, retries=0)
    ws = make_socket()
    conn = await bridge.protocol.open(ws, "10.0.0.5")
    return bridge, conn, ws


@pytest.mark.asyncio
async def test_open_sends_greeting_with_client_id(make_socket):
    bridge, conn, ws = await _open(make_socket)
    assert ws.sent == [{"type": "connected", "clientId": conn.id, "serverVersion": "1.1.0"}]
    assert conn.id.startswith("plugin_")
    assert conn.remote_ip == "10.0.0.5"
    assert conn.state is ConnectionState.CONNECTED
    assert bridge.connection_count() == 1
    assert bridge.is_connected() is False


@pytest.mark.asyncio
async def test_handshake_with_different_patch_marks_ready(make_socket):
    bridge, conn, ws = await _open(make_socket)
    await bridge.protocol.handle_message(conn, json.dumps({"type": "handshake", "version": "1.1.7"}))

    assert ws.sent[-1] == {"type": "handshake_ok", "serverVersion": "1.1.0", "pluginVersion": "1.1.7"}
    assert conn.ready is True
    assert conn.version == "1.1.7"
    assert bridge.is_connected() is True


@pytest.mark.asyncio
@pytest.mark.parametrize("version", ["1.2.0", "2.1.0", "1", None, 11])
async def test_handshake_mismatch_rejects_and_closes(make_socket, version):
    bridge, conn, ws = await _open(make_socket)
    await bridge.protocol.handle_message(conn, json.dumps({"type": "handshake", "version": version}))

    error = ws.sent[-1]
    assert error["type"] == "error"
    assert error["code"] == "VERSION_MISMATCH"
    assert error["serverVersion"] == "1.1.0"
    assert ws.closed == (1008, "VERSION_MISMATCH")
    assert conn.state is ConnectionState.CLOSED
    assert conn.ready is False
    assert bridge.is_connected() is False


@pytest.mark.asyncio
async def test_incompatible_rehandshake_drops_a_ready_connection(make_socket):
    bridge, conn, ws = await _open(make_socket)
    await bridge.protocol.handle_message(conn, json.dumps({"type": "handshake", "version": "1.1.0"}))
    assert bridge.is_connected() is True

    await bridge.protocol.handle_message(conn, json.dumps({"type": "handshake", "version": "9.0.0"}))

    assert ws.closed == (1008, "VERSION_MISMATCH")
    assert conn.ready is False
    assert conn.state is ConnectionState.CLOSED
    assert bridge.is_connected() is False
    assert bridge.connection_count() == 0

    bridge.timeout_ms = 30
    with pytest.raises(BridgeTimeoutError) as excinfo:
        await bridge.execute("x")
    assert excinfo.value.connected is False
    assert ws.commands() == []


@pytest.mark.asyncio
async def test_observer_handshake_never_receives_commands(make_socket):
    bridge, _conn, _ws = await _open(make_socket)
    task = asyncio.create_task(bridge.execute("get_selection"))
    await asyncio.sleep(0.005)
    assert bridge.queued_count() == 1

    ws = make_socket()
    observer = await bridge.protocol.open(ws, "127.0.0.1")
    await bridge.protocol.handle_message(
        observer, json.dumps({"type": "handshake", "version": "1.1.0", "observer": True})
    )
    await bridge.protocol.handle_message(observer, json.dumps({"type": "ping"}))

    assert ws.frames("handshake_ok") == [
        {"type": "handshake_ok", "serverVersion": "1.1.0", "pluginVersion": "1.1.0", "observer": True}
    ]
    assert ws.frames("pong")
    assert ws.commands() == []
    assert observer.ready is False
    assert bridge.is_connected() is False
    assert bridge.queued_count() == 1

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
async def test_ping_answers_pong_with_timestamp(make_socket):
    bridge, conn, ws = await _open(make_socket)
    await bridge.protocol.handle_message(conn, '{"type": "ping"}')
    pong = ws.sent[-1]
    assert pong["type"] == "pong"
    assert isinstance(pong["timestamp"], int)


@pytest.mark.asyncio
async def test_bytes_frames_are_decoded(make_socket):
    bridge, conn, ws = await _open(make_socket)
    await bridge.protocol.handle_message(conn, b'{"type": "ping"}')
    assert ws.sent[-1]["type"] == "pong"


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", ["{not json", "", "   ", "[1, 2]", '"text"', b"\xff\xfe"])
async def test_unparseable_frames_get_invalid_json_error(make_socket, raw):
    bridge, conn, ws = await _open(make_socket)
    await bridge.protocol.handle_message(conn, raw)
    assert ws.sent[-1] == {"type": "error", "message": "Invalid JSON"}
    assert bridge.connection_count() == 1


@pytest.mark.asyncio
async def test_unknown_frame_type_is_ignored(make_socket):
    bridge, conn, ws = await _open(make_socket)
    await bridge.protocol.handle_message(conn, json.dumps({"type": "telemetry", "data": {}}))
    assert len(ws.sent) == 1


@pytest.mark.asyncio
async def test_result_for_unknown_id_is_still_acked(make_socket):
    bridge, conn, ws = await _open(make_socket)
    await bridge.protocol.handle_message(
        conn, json.dumps({"type": "result", "data": {"id": "stale", "success": True}})
    )
    assert ws.sent[-1] == {"type": "ack", "id": "stale"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "data",
    [
        None,
        "oops",
        {"success": True},
        {"id": "", "success": True},
        {"id": "abc"},
        {"id": "abc", "success": "yes"},
    ],
)
async def test_malformed_result_gets_error_and_no_ack(make_socket, data):
    bridge, conn, ws = await _open(make_socket)
    await bridge.protocol.handle_message(conn, json.dumps({"type": "result", "data": data}))

    reply = ws.sent[-1]
    assert reply["type"] == "error"
    assert reply["code"] == "INVALID_RESULT"
    assert ws.frames("ack") == []


@pytest.mark.asyncio
async def test_close_detaches_connection(make_socket):
    bridge, conn, ws = await _open(make_socket)
    bridge.protocol.close(conn)
    assert bridge.connection_count() == 0
    assert conn.state is ConnectionState.CLOSED


def test_decode_frame_accepts_objects_only():
    assert decode_frame('{"type": "ping"}') == {"type": "ping"}
    assert decode_frame(bytearray(b'{"a": 1}')) == {"a": 1}
    assert decode_frame("null") is None
    assert decode_frame("42") is None
