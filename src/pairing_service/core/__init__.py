"""Core pairing service module: canonical public API."""

from pairing_service.core.exceptions import (
    AuthorizationError,
    ConfigurationError,
    DirectoryError,
    DirectoryNotFoundError,
    DirectoryUpstreamError,
    ErrorCode,
    ExhaustedError,
    FallbackError,
    FallbackRejectedError,
    FallbackTimeoutError,
    FallbackUnreachableError,
    GatewayError,
    GatewayRejectedError,
    GatewayTimeoutError,
    GatewayUnreachableError,
    PairingError,
    ValidationError,
)
from pairing_service.core.types import (
    ApprovalMethod,
    ApprovalOutcome,
    ApprovalRequest,
    ApprovalSuccess,
    AttemptRecord,
    ManualFallback,
    WorkerName,
)

__all__ = [
    "ApprovalMethod",
    "ApprovalOutcome",
    "ApprovalRequest",
    "ApprovalSuccess",
    "AttemptRecord",
    "AuthorizationError",
    "ConfigurationError",
    "DirectoryError",
    "DirectoryNotFoundError",
    "DirectoryUpstreamError",
    "ErrorCode",
    "ExhaustedError",
    "FallbackError",
    "FallbackRejectedError",
    "FallbackTimeoutError",
    "FallbackUnreachableError",
    "GatewayError",
    "GatewayRejectedError",
    "GatewayTimeoutError",
    "GatewayUnreachableError",
    "ManualFallback",
    "PairingError",
    "ValidationError",
    "WorkerName",
]
