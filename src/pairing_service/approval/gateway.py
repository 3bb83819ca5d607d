"""
GatewaySession: drives one approval handshake over a worker's WebSocket.

The handshake logic lives in handshake.transition(); this module owns the
connection, the watchdog and the translation of terminal states into
payloads or GatewayError subclasses.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import Any, Protocol

import aiohttp

from pairing_service.approval.handshake import (
    ConnectionLost,
    ConnectionOpened,
    ConnectParams,
    FailureKind,
    FrameReceived,
    SessionPhase,
    SessionState,
    WatchdogExpired,
    initial_state,
    parse_frame,
    transition,
)
from pairing_service.core.exceptions import (
    GatewayRejectedError,
    GatewayTimeoutError,
    GatewayUnreachableError,
)
from pairing_service.core.structured_logger import get_logger
from pairing_service.core.types import WorkerName

logger = get_logger("GatewaySession")


class FrameConnection(Protocol):
    """A bidirectional text-frame connection."""

    def frames(self) -> AsyncIterator[str]: ...

    async def send_json(self, data: dict[str, Any]) -> None: ...

    async def close(self) -> None: ...


class Connector(Protocol):
    async def connect(self, url: str) -> FrameConnection: ...


class AiohttpConnection:
    """WebSocket connection backed by its own aiohttp ClientSession."""

    def __init__(self, session: aiohttp.ClientSession, ws: aiohttp.ClientWebSocketResponse) -> None:
        self._session = session
        self._ws = ws

    async def frames(self) -> AsyncIterator[str]:
        async for msg in self._ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                yield msg.data
            elif msg.type == aiohttp.WSMsgType.BINARY:
                yield msg.data.decode("utf-8", errors="replace")
            elif msg.type == aiohttp.WSMsgType.ERROR:
                raise ConnectionResetError(str(self._ws.exception() or "websocket error"))

    async def send_json(self, data: dict[str, Any]) -> None:
        await self._ws.send_json(data)

    async def close(self) -> None:
        try:
            await self._ws.close()
        finally:
            await self._session.close()


class AiohttpConnector:
    """Opens gateway WebSockets with aiohttp."""

    async def connect(self, url: str) -> AiohttpConnection:
        session = aiohttp.ClientSession()
        try:
            ws = await session.ws_connect(url, autoping=True)
        except BaseException:
            await session.close()
            raise
        return AiohttpConnection(session, ws)


class GatewaySession:
    """Runs the challenge/connect/approve handshake against a worker gateway.

    One instance can serve many approvals; every call to approve() opens a
    fresh connection and starts a fresh correlation-id sequence.
    """

    def __init__(
        self,
        port: int = 18789,
        path: str = "/",
        watchdog_seconds: float = 15.0,
        protocol_version: int = 3,
        client_name: str = "openclaw-pairing-service",
        client_version: str = "0.0.0-dev",
        role: str = "operator",
        scopes: tuple[str, ...] = ("operator.pairing",),
        connector: Connector | None = None,
    ) -> None:
        self.port = port
        self.path = path
        self.watchdog_seconds = watchdog_seconds
        self.protocol_version = protocol_version
        self.client_name = client_name
        self.client_version = client_version
        self.role = role
        self.scopes = tuple(scopes)
        self._connector = connector or AiohttpConnector()

    def url_for(self, worker: WorkerName) -> str:
        return f"ws://{worker.host}:{self.port}{self.path}"

    async def approve(
        self,
        worker: WorkerName,
        channel: str,
        code: str,
        auth_token: str | None = None,
    ) -> dict[str, Any]:
        """Approve a pairing code through the gateway.

        Returns:
            The payload of the worker's approve response

        Raises:
            GatewayTimeoutError: Watchdog elapsed before a terminal frame
            GatewayRejectedError: Worker answered connect or approve with an error
            GatewayUnreachableError: Connection refused, reset or closed early
        """
        connect = ConnectParams(
            protocol=self.protocol_version,
            client_name=self.client_name,
            client_version=self.client_version,
            role=self.role,
            scopes=self.scopes,
            auth_token=auth_token,
        )
        state = await self._run(self.url_for(worker), initial_state(channel, code, connect))
        return self._result(worker, state)

    async def _run(self, url: str, state: SessionState) -> SessionState:
        started = time.monotonic()
        conn: FrameConnection | None = None
        logger.info("Connecting to gateway", url=url)
        try:
            async with asyncio.timeout(self.watchdog_seconds):
                conn = await self._connector.connect(url)
                state, _ = transition(state, ConnectionOpened())
                async with aclosing(conn.frames()) as frames:
                    async for raw in frames:
                        frame = parse_frame(raw)
                        if frame is None:
                            logger.warning("Ignoring unparseable gateway frame", frame=str(raw)[:200])
                            continue
                        state, outgoing = transition(state, FrameReceived(frame))
                        if outgoing is not None:
                            logger.debug("Sending gateway request", method=outgoing["method"], id=outgoing["id"])
                            await conn.send_json(outgoing)
                        if state.terminal:
                            break
                    else:
                        state, _ = transition(state, ConnectionLost("closed by worker"))
        except TimeoutError:
            state, _ = transition(state, WatchdogExpired())
        except (aiohttp.ClientError, OSError) as e:
            state, _ = transition(state, ConnectionLost(str(e) or e.__class__.__name__))
        finally:
            if conn is not None:
                await conn.close()

        logger.info(
            "Gateway session finished",
            phase=state.phase.value,
            elapsed_ms=round((time.monotonic() - started) * 1000, 1),
        )
        return state

    def _result(self, worker: WorkerName, state: SessionState) -> dict[str, Any]:
        if state.phase is SessionPhase.DONE:
            return state.payload or {}

        details = {"worker": worker.name, "failed_in": state.failed_in.value if state.failed_in else None}
        message = state.error or "Gateway session failed"
        if state.failure is FailureKind.TIMEOUT:
            raise GatewayTimeoutError(message, details)
        if state.failure is FailureKind.REJECTED:
            raise GatewayRejectedError(message, details)
        raise GatewayUnreachableError(message, details)
