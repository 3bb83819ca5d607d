"""
Gateway handshake state machine
===============================

Pure transition function for the challenge → connect → node.pair.approve
exchange. It never touches a socket or a clock: the GatewaySession driver
feeds it events and sends whatever frame it returns.

    CONNECTING ──opened──▶ AWAITING_CHALLENGE ──challenge──▶ AWAITING_CONNECT_ACK
        ──res(ok)──▶ AWAITING_APPROVE_ACK ──res(ok)──▶ DONE

Any non-terminal phase goes to FAILED on a watchdog expiry (timeout), a lost
connection (unreachable) or an error response to one of our requests
(rejected). Response frames whose id matches no outstanding request are
ignored.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

CONNECT_METHOD = "connect"
APPROVE_METHOD = "node.pair.approve"


class SessionPhase(Enum):
    CONNECTING = "connecting"
    AWAITING_CHALLENGE = "awaiting_challenge"
    AWAITING_CONNECT_ACK = "awaiting_connect_ack"
    AWAITING_APPROVE_ACK = "awaiting_approve_ack"
    DONE = "done"
    FAILED = "failed"


class FailureKind(Enum):
    TIMEOUT = "timeout"
    REJECTED = "rejected"
    UNREACHABLE = "unreachable"


TERMINAL_PHASES = frozenset({SessionPhase.DONE, SessionPhase.FAILED})


# =============================================================================
# WIRE FRAMES
# =============================================================================

class FrameError(BaseModel):
    message: str = "Unknown error"
    code: str | None = None

    model_config = ConfigDict(extra='allow')


class ChallengeFrame(BaseModel):
    type: Literal["challenge"]

    model_config = ConfigDict(extra='allow')


class ResponseFrame(BaseModel):
    type: Literal["res"]
    id: int
    ok: bool
    payload: Any = None
    error: FrameError | None = None

    model_config = ConfigDict(extra='allow')


class EventFrame(BaseModel):
    """Push frames the worker may send; never advance the handshake."""
    type: Literal["event"]
    event: str | None = None

    model_config = ConfigDict(extra='allow')


InboundFrame = Annotated[ChallengeFrame | ResponseFrame | EventFrame, Field(discriminator="type")]
_inbound_adapter: TypeAdapter[ChallengeFrame | ResponseFrame | EventFrame] = TypeAdapter(InboundFrame)


def parse_frame(raw: str | bytes) -> ChallengeFrame | ResponseFrame | EventFrame | None:
    """Decode one inbound frame; return None when it is not a known shape."""
    try:
        return _inbound_adapter.validate_python(json.loads(raw))
    except (ValueError, PydanticValidationError):
        return None


def request_frame(request_id: int, method: str, params: dict[str, Any]) -> dict[str, Any]:
    return {"type": "req", "id": request_id, "method": method, "params": params}


def _as_payload(value: Any) -> dict[str, Any]:
    """Approve results are objects; lists and scalars are wrapped under 'value'."""
    if value is None:
        return {}
    if isinstance(value, dict):
        return value
    return {"value": value}


# =============================================================================
# EVENTS
# =============================================================================

@dataclass(frozen=True)
class ConnectionOpened:
    pass


@dataclass(frozen=True)
class FrameReceived:
    frame: ChallengeFrame | ResponseFrame | EventFrame


@dataclass(frozen=True)
class WatchdogExpired:
    pass


@dataclass(frozen=True)
class ConnectionLost:
    reason: str


SessionEvent = ConnectionOpened | FrameReceived | WatchdogExpired | ConnectionLost


# =============================================================================
# STATE
# =============================================================================

@dataclass(frozen=True)
class ConnectParams:
    """Identity sent in the connect request."""

    protocol: int
    client_name: str
    client_version: str
    role: str
    scopes: tuple[str, ...]
    auth_token: str | None = None

    def to_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {
            "protocol": self.protocol,
            "client": {"name": self.client_name, "version": self.client_version},
            "role": self.role,
            "scopes": list(self.scopes),
        }
        if self.auth_token:
            params["auth"] = {"token": self.auth_token}
        return params


@dataclass(frozen=True)
class SessionState:
    channel: str
    code: str
    connect: ConnectParams
    phase: SessionPhase = SessionPhase.CONNECTING
    next_id: int = 1
    connect_id: int | None = None
    approve_id: int | None = None
    payload: dict[str, Any] | None = None
    failure: FailureKind | None = None
    failed_in: SessionPhase | None = None
    error: str | None = None

    @property
    def terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    @property
    def outstanding_ids(self) -> frozenset[int]:
        if self.phase is SessionPhase.AWAITING_CONNECT_ACK and self.connect_id is not None:
            return frozenset({self.connect_id})
        if self.phase is SessionPhase.AWAITING_APPROVE_ACK and self.approve_id is not None:
            return frozenset({self.approve_id})
        return frozenset()


def initial_state(channel: str, code: str, connect: ConnectParams) -> SessionState:
    return SessionState(channel=channel, code=code, connect=connect)


def _fail(state: SessionState, kind: FailureKind, error: str) -> SessionState:
    return replace(state, phase=SessionPhase.FAILED, failure=kind, failed_in=state.phase, error=error)


def transition(
    state: SessionState, event: SessionEvent
) -> tuple[SessionState, dict[str, Any] | None]:
    """Advance the handshake by one event.

    Returns the new state and, when the step requires it, the request frame
    to transmit. Terminal states absorb every event unchanged.
    """
    if state.terminal:
        return state, None

    if isinstance(event, WatchdogExpired):
        return _fail(state, FailureKind.TIMEOUT, "Gateway timeout"), None

    if isinstance(event, ConnectionLost):
        return _fail(state, FailureKind.UNREACHABLE, f"Gateway connection failed: {event.reason}"), None

    if isinstance(event, ConnectionOpened):
        if state.phase is SessionPhase.CONNECTING:
            return replace(state, phase=SessionPhase.AWAITING_CHALLENGE), None
        return state, None

    frame = event.frame

    if isinstance(frame, ChallengeFrame):
        if state.phase is not SessionPhase.AWAITING_CHALLENGE:
            return state, None
        request_id = state.next_id
        outgoing = request_frame(request_id, CONNECT_METHOD, state.connect.to_params())
        return replace(
            state,
            phase=SessionPhase.AWAITING_CONNECT_ACK,
            connect_id=request_id,
            next_id=request_id + 1,
        ), outgoing

    if isinstance(frame, ResponseFrame):
        if frame.id not in state.outstanding_ids:
            return state, None

        if state.phase is SessionPhase.AWAITING_CONNECT_ACK:
            if not frame.ok:
                message = frame.error.message if frame.error else "Connect rejected"
                return _fail(state, FailureKind.REJECTED, message), None
            request_id = state.next_id
            outgoing = request_frame(
                request_id, APPROVE_METHOD, {"channel": state.channel, "code": state.code}
            )
            return replace(
                state,
                phase=SessionPhase.AWAITING_APPROVE_ACK,
                approve_id=request_id,
                next_id=request_id + 1,
            ), outgoing

        # AWAITING_APPROVE_ACK
        if frame.ok:
            return replace(state, phase=SessionPhase.DONE, payload=_as_payload(frame.payload)), None
        message = frame.error.message if frame.error else "Approval failed"
        return _fail(state, FailureKind.REJECTED, message), None

    # EventFrame and anything else pushed by the worker
    return state, None
