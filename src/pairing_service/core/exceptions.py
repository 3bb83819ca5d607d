"""
Custom Exceptions for the Pairing Service
=========================================

Structured error handling lets the orchestrator and the web interface react
to failures by type instead of parsing messages.

Error Codes:
- 1xxx: Client errors (input validation)
- 2xxx: Security errors (auth)
- 3xxx: Directory errors (service lookup)
- 4xxx: Approval errors (gateway, fallback, exhaustion)
- 5xxx: System errors (internal, configuration)
"""

from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Structured error codes for user-friendly messages"""

    # 1xxx: Client Errors
    VALIDATION_ERROR = 1001

    # 2xxx: Security Errors
    UNAUTHORIZED = 2001

    # 3xxx: Directory Errors
    DIRECTORY_NOT_FOUND = 3001
    DIRECTORY_UPSTREAM = 3002

    # 4xxx: Approval Errors
    GATEWAY_TIMEOUT = 4101
    GATEWAY_REJECTED = 4102
    GATEWAY_UNREACHABLE = 4103
    FALLBACK_TIMEOUT = 4201
    FALLBACK_REJECTED = 4202
    FALLBACK_UNREACHABLE = 4203
    EXHAUSTED = 4301

    # 5xxx: System Errors
    INTERNAL_ERROR = 5001
    CONFIGURATION_ERROR = 5003


class PairingError(Exception):
    """Base exception for all pairing service errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for structured logging"""
        return {
            'error_type': self.__class__.__name__,
            'error_code': int(self.error_code),
            'message': self.message,
            'details': self.details
        }

    def user_message(self) -> str:
        """Get user-friendly error message based on error code"""
        code_messages = {
            ErrorCode.VALIDATION_ERROR: "Invalid input provided",
            ErrorCode.UNAUTHORIZED: "Authentication required",
            ErrorCode.DIRECTORY_NOT_FOUND: "Worker service not found",
            ErrorCode.DIRECTORY_UPSTREAM: "Service directory unavailable",
            ErrorCode.GATEWAY_TIMEOUT: "Worker gateway timed out",
            ErrorCode.GATEWAY_REJECTED: "Worker gateway rejected the request",
            ErrorCode.GATEWAY_UNREACHABLE: "Worker gateway unreachable",
            ErrorCode.FALLBACK_TIMEOUT: "Worker fallback endpoint timed out",
            ErrorCode.FALLBACK_REJECTED: "Worker fallback endpoint rejected the request",
            ErrorCode.FALLBACK_UNREACHABLE: "Worker fallback endpoint unreachable",
            ErrorCode.EXHAUSTED: "All approval methods failed",
            ErrorCode.INTERNAL_ERROR: "Internal server error",
            ErrorCode.CONFIGURATION_ERROR: "Configuration error",
        }
        return f"Error {self.error_code}: {code_messages.get(self.error_code, self.message)}"


class ValidationError(PairingError):
    """Raised when input validation fails"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.VALIDATION_ERROR, details)


class AuthorizationError(PairingError):
    """Raised when the caller is not authorized"""

    def __init__(self, message: str = "Unauthorized", details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.UNAUTHORIZED, details)


class ConfigurationError(PairingError):
    """Raised at startup when required configuration is missing or invalid"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)


# =============================================================================
# DIRECTORY
# =============================================================================

class DirectoryError(PairingError):
    """Base class for service directory lookup failures"""


class DirectoryNotFoundError(DirectoryError):
    """Raised when the directory has no record for the worker id"""

    def __init__(self, worker_id: str, details: dict[str, Any] | None = None):
        super().__init__(
            f"Service {worker_id} not found in directory",
            ErrorCode.DIRECTORY_NOT_FOUND,
            details,
        )
        self.worker_id = worker_id


class DirectoryUpstreamError(DirectoryError):
    """Raised when the directory call fails or returns an unusable response"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.DIRECTORY_UPSTREAM, details)


# =============================================================================
# GATEWAY
# =============================================================================

class GatewayError(PairingError):
    """Base class for gateway handshake failures"""


class GatewayTimeoutError(GatewayError):
    """Raised when the session watchdog elapses before a terminal frame"""

    def __init__(self, message: str = "Gateway timeout", details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.GATEWAY_TIMEOUT, details)


class GatewayRejectedError(GatewayError):
    """Raised when the worker answers connect or approve with an error"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.GATEWAY_REJECTED, details)


class GatewayUnreachableError(GatewayError):
    """Raised on connection-level failures (refused, reset, closed)"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.GATEWAY_UNREACHABLE, details)


# =============================================================================
# FALLBACK
# =============================================================================

class FallbackError(PairingError):
    """Base class for fallback endpoint failures"""


class FallbackTimeoutError(FallbackError):
    """Raised when the fallback call exceeds its timeout"""

    def __init__(self, message: str = "Fallback timeout", details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.FALLBACK_TIMEOUT, details)


class FallbackRejectedError(FallbackError):
    """Raised when the fallback endpoint answers but does not approve"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.FALLBACK_REJECTED, details)


class FallbackUnreachableError(FallbackError):
    """Raised on transport failures or malformed fallback responses"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.FALLBACK_UNREACHABLE, details)


class ExhaustedError(PairingError):
    """Raised by callers that want an exception form of a manual fallback"""

    def __init__(self, last_error: str, details: dict[str, Any] | None = None):
        super().__init__(f"All approval methods failed: {last_error}", ErrorCode.EXHAUSTED, details)
        self.last_error = last_error
