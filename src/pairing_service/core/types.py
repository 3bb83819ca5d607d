"""
Core Type Definitions
=====================

Value objects shared by the approval pipeline and the interfaces.

ApprovalRequest is built once at the boundary and is immutable for the rest of
the run. ApprovalOutcome is either ApprovalSuccess or ManualFallback; the
orchestrator produces exactly one per run.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pairing_service.core.exceptions import ValidationError

CODE_PATTERN = re.compile(r"[A-Za-z0-9_-]{2,32}")
CHANNEL_PATTERN = re.compile(r"[A-Za-z0-9_.-]{1,64}")


class ApprovalMethod(str, Enum):
    """Which step of the pipeline produced a result or an error."""

    DIRECTORY = "directory"
    GATEWAY = "gateway"
    FALLBACK = "fallback"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ApprovalRequest:
    """A validated pairing approval request."""

    worker_id: str
    channel: str
    code: str
    gateway_token: str | None = None

    @classmethod
    def create(
        cls,
        worker_id: Any,
        channel: Any,
        code: Any,
        gateway_token: Any = None,
    ) -> "ApprovalRequest":
        """Validate raw boundary values and build a request.

        Raises:
            ValidationError: If any field is missing or malformed
        """
        if not worker_id or not isinstance(worker_id, str) or not worker_id.strip():
            raise ValidationError("Missing or invalid serviceId", {"field": "serviceId"})
        if not channel or not isinstance(channel, str) or not CHANNEL_PATTERN.fullmatch(channel):
            raise ValidationError("Missing or invalid channel", {"field": "channel"})
        if not code or not isinstance(code, str) or not CODE_PATTERN.fullmatch(code):
            raise ValidationError("Missing or invalid code", {"field": "code"})
        if gateway_token is not None and not isinstance(gateway_token, str):
            raise ValidationError("Invalid gatewayToken", {"field": "gatewayToken"})
        return cls(
            worker_id=worker_id.strip(),
            channel=channel,
            code=code,
            gateway_token=gateway_token or None,
        )


@dataclass(frozen=True)
class WorkerName:
    """Resolved, network-routable identity of a worker service."""

    service_id: str
    name: str
    host: str


@dataclass(frozen=True)
class AttemptRecord:
    """One failed step of an orchestration run."""

    method: ApprovalMethod
    error: str
    error_type: str

    def to_dict(self) -> dict[str, str]:
        return {"method": self.method.value, "error": self.error, "errorType": self.error_type}


@dataclass(frozen=True)
class ApprovalSuccess:
    method: ApprovalMethod
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ManualFallback:
    """Actionable result returned when every approval method failed."""

    command: str
    instructions: tuple[str, ...]
    last_error: str
    attempts: tuple[AttemptRecord, ...] = ()
    dashboard_url: str | None = None


ApprovalOutcome = ApprovalSuccess | ManualFallback
