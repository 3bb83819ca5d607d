"""
Integration tests for the aiohttp gateway connector against a local
aiohttp WebSocket server that scripts the worker side of the handshake.
"""

import json
from types import SimpleNamespace

import aiohttp
import pytest
from aiohttp import test_utils, web

from pairing_service.approval.gateway import AiohttpConnection, AiohttpConnector, GatewaySession
from pairing_service.core.exceptions import GatewayUnreachableError
from pairing_service.core.types import WorkerName

pytestmark = pytest.mark.integration

LOCAL_WORKER = WorkerName(service_id="svc1", name="local-worker", host="127.0.0.1")


@pytest.fixture
def client_sessions(monkeypatch):
    """Record every ClientSession the connector opens."""
    sessions: list[aiohttp.ClientSession] = []
    real_session = aiohttp.ClientSession

    def _session(*args, **kwargs):
        session = real_session(*args, **kwargs)
        sessions.append(session)
        return session

    monkeypatch.setattr(aiohttp, "ClientSession", _session)
    return sessions


def _session(port: int, path: str = "/") -> GatewaySession:
    return GatewaySession(port=port, path=path, watchdog_seconds=2.0, connector=AiohttpConnector())


@pytest.mark.asyncio
async def test_full_handshake_over_websocket(client_sessions):
    received = []

    async def worker(request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        await ws.send_json({"type": "challenge", "nonce": "n-1"})
        connect = await ws.receive_json()
        received.append(connect)
        # connect ack arrives as a binary frame
        await ws.send_bytes(json.dumps({"type": "res", "id": connect["id"], "ok": True}).encode())
        approve = await ws.receive_json()
        received.append(approve)
        await ws.send_str(json.dumps(
            {"type": "res", "id": approve["id"], "ok": True, "payload": {"paired": True}}
        ))
        await ws.receive()
        return ws

    app = web.Application()
    app.router.add_get("/", worker)

    async with test_utils.TestServer(app) as server:
        payload = await _session(server.port).approve(LOCAL_WORKER, "telegram", "AB12", auth_token="gw")

    assert payload == {"paired": True}
    assert [m["method"] for m in received] == ["connect", "node.pair.approve"]
    assert received[0]["params"]["auth"] == {"token": "gw"}
    assert received[1]["params"] == {"channel": "telegram", "code": "AB12"}
    assert len(client_sessions) == 1
    assert client_sessions[0].closed


@pytest.mark.asyncio
async def test_worker_closing_mid_handshake_is_unreachable(client_sessions):
    async def worker(request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        await ws.send_json({"type": "challenge"})
        await ws.receive_json()
        await ws.close()
        return ws

    app = web.Application()
    app.router.add_get("/", worker)

    async with test_utils.TestServer(app) as server:
        with pytest.raises(GatewayUnreachableError, match="closed by worker"):
            await _session(server.port).approve(LOCAL_WORKER, "telegram", "AB12")

    assert client_sessions[0].closed


@pytest.mark.asyncio
async def test_failed_upgrade_closes_client_session(client_sessions):
    async def plain(request: web.Request) -> web.Response:
        return web.Response(text="not a websocket")

    app = web.Application()
    app.router.add_get("/plain", plain)

    async with test_utils.TestServer(app) as server:
        with pytest.raises(GatewayUnreachableError):
            await _session(server.port, path="/plain").approve(LOCAL_WORKER, "telegram", "AB12")

    assert len(client_sessions) == 1
    assert client_sessions[0].closed


class _StubWebSocket:
    """Minimal stand-in for ClientWebSocketResponse replaying messages."""

    def __init__(self, messages, error=None) -> None:
        self._messages = messages
        self._error = error
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for msg in self._messages:
            yield msg

    def exception(self):
        return self._error

    async def close(self) -> None:
        self.closed = True


class _StubSession:
    def __init__(self) -> None:
        self.closed = False

    async def close(self) -> None:
        self.closed = True


@pytest.mark.asyncio
async def test_error_message_becomes_connection_reset():
    ws = _StubWebSocket(
        [
            SimpleNamespace(type=aiohttp.WSMsgType.TEXT, data='{"type": "challenge"}'),
            SimpleNamespace(type=aiohttp.WSMsgType.ERROR, data=None),
        ],
        error=RuntimeError("frame too large"),
    )
    conn = AiohttpConnection(_StubSession(), ws)

    frames = []
    with pytest.raises(ConnectionResetError, match="frame too large"):
        async for raw in conn.frames():
            frames.append(raw)
    assert frames == ['{"type": "challenge"}']


@pytest.mark.asyncio
async def test_binary_frames_are_decoded():
    ws = _StubWebSocket([SimpleNamespace(type=aiohttp.WSMsgType.BINARY, data=b'{"type": "challenge"}')])
    conn = AiohttpConnection(_StubSession(), ws)
    assert [raw async for raw in conn.frames()] == ['{"type": "challenge"}']


@pytest.mark.asyncio
async def test_close_shuts_socket_and_session():
    ws = _StubWebSocket([])
    session = _StubSession()
    await AiohttpConnection(session, ws).close()
    assert ws.closed
    assert session.closed
