"""
Approval Orchestrator
=====================

Sequential pipeline for one pairing approval:

    resolve ─▶ gateway × K (fixed backoff between attempts) ─▶ fallback × 1
        └──────────────── any failure path ────────────────▶ ManualFallback

Every collaborator error is a PairingError subclass; those are caught here,
recorded in the attempt log and never re-raised. A run always ends in an
ApprovalSuccess or a ManualFallback.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from pairing_service.core.exceptions import (
    DirectoryError,
    ExhaustedError,
    FallbackError,
    GatewayError,
    PairingError,
)
from pairing_service.core.structured_logger import get_logger
from pairing_service.core.types import (
    ApprovalMethod,
    ApprovalOutcome,
    ApprovalRequest,
    ApprovalSuccess,
    AttemptRecord,
    ManualFallback,
    WorkerName,
)

logger = get_logger("Orchestrator")

MANUAL_INSTRUCTIONS = (
    "1. Open the Railway dashboard and select your OpenClaw service",
    "2. Open a shell on the service (Railway Terminal, or `railway ssh`)",
    "3. Run the command shown in the `command` field",
    "4. Message the bot again to confirm the pairing was approved",
)


class Resolver(Protocol):
    async def resolve(self, worker_id: str) -> WorkerName: ...


class Gateway(Protocol):
    async def approve(
        self, worker: WorkerName, channel: str, code: str, auth_token: str | None = None
    ) -> dict[str, Any]: ...


class Fallback(Protocol):
    async def approve(self, worker: WorkerName, channel: str, code: str) -> dict[str, Any]: ...


def manual_command(control_tool: str, channel: str, code: str) -> str:
    return f"{control_tool} pairing approve {channel} {code}"


def dashboard_url(project_id: str | None, environment_id: str | None, service_id: str) -> str | None:
    if not project_id:
        return None
    url = f"https://railway.app/project/{project_id}/service/{service_id}"
    if environment_id:
        url += f"?environmentId={environment_id}"
    return url


def raise_for_manual(outcome: ApprovalOutcome) -> ApprovalSuccess:
    """Return the success or raise ExhaustedError carrying the manual fallback."""
    if isinstance(outcome, ApprovalSuccess):
        return outcome
    raise ExhaustedError(
        outcome.last_error,
        {"command": outcome.command, "attempts": [a.to_dict() for a in outcome.attempts]},
    )


class ApprovalOrchestrator:
    """Coordinates resolver, gateway and fallback for one request at a time.

    Holds no per-run state, so a single instance serves concurrent requests.
    """

    def __init__(
        self,
        resolver: Resolver,
        gateway: Gateway,
        fallback: Fallback,
        gateway_attempts: int = 2,
        backoff_seconds: float = 3.0,
        control_tool: str = "openclaw",
        project_id: str | None = None,
        environment_id: str | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if gateway_attempts < 1:
            raise ValueError("gateway_attempts must be at least 1")
        self.resolver = resolver
        self.gateway = gateway
        self.fallback = fallback
        self.gateway_attempts = gateway_attempts
        self.backoff_seconds = backoff_seconds
        self.control_tool = control_tool
        self.project_id = project_id
        self.environment_id = environment_id
        self._sleep = sleep

    async def run(self, request: ApprovalRequest) -> ApprovalOutcome:
        attempts: list[AttemptRecord] = []
        logger.info(
            "Approving pairing",
            service_id=request.worker_id,
            channel=request.channel,
            code=request.code,
        )

        try:
            worker = await self.resolver.resolve(request.worker_id)
        except DirectoryError as e:
            self._record(attempts, ApprovalMethod.DIRECTORY, e)
            return self._manual(request, attempts)

        outcome = await self._try_gateway(request, worker, attempts)
        if outcome is None:
            outcome = await self._try_fallback(request, worker, attempts)
        return outcome or self._manual(request, attempts)

    async def _try_gateway(
        self, request: ApprovalRequest, worker: WorkerName, attempts: list[AttemptRecord]
    ) -> ApprovalSuccess | None:
        for attempt in range(1, self.gateway_attempts + 1):
            if attempt > 1:
                logger.info("Backing off before next gateway attempt", seconds=self.backoff_seconds)
                await self._sleep(self.backoff_seconds)
            try:
                payload = await self.gateway.approve(
                    worker, request.channel, request.code, request.gateway_token
                )
            except GatewayError as e:
                self._record(attempts, ApprovalMethod.GATEWAY, e, attempt=attempt)
                continue
            logger.info("Pairing approved via gateway", attempt=attempt, worker=worker.name)
            return ApprovalSuccess(method=ApprovalMethod.GATEWAY, payload=payload)
        return None

    async def _try_fallback(
        self, request: ApprovalRequest, worker: WorkerName, attempts: list[AttemptRecord]
    ) -> ApprovalSuccess | None:
        try:
            payload = await self.fallback.approve(worker, request.channel, request.code)
        except FallbackError as e:
            self._record(attempts, ApprovalMethod.FALLBACK, e)
            return None
        logger.info("Pairing approved via fallback", worker=worker.name)
        return ApprovalSuccess(method=ApprovalMethod.FALLBACK, payload=payload)

    @staticmethod
    def _record(
        attempts: list[AttemptRecord],
        method: ApprovalMethod,
        error: PairingError,
        attempt: int | None = None,
    ) -> None:
        attempts.append(
            AttemptRecord(method=method, error=error.message, error_type=error.__class__.__name__)
        )
        logger.warning(
            f"{method.value.capitalize()} step failed",
            attempt=attempt,
            error=error.message,
            error_type=error.__class__.__name__,
            error_code=int(error.error_code),
        )

    def _manual(self, request: ApprovalRequest, attempts: list[AttemptRecord]) -> ManualFallback:
        last_error = attempts[-1].error if attempts else "No approval method succeeded"
        logger.error("All approval methods failed", attempts=len(attempts), last_error=last_error)
        return ManualFallback(
            command=manual_command(self.control_tool, request.channel, request.code),
            instructions=MANUAL_INSTRUCTIONS,
            last_error=last_error,
            attempts=tuple(attempts),
            dashboard_url=dashboard_url(self.project_id, self.environment_id, request.worker_id),
        )
