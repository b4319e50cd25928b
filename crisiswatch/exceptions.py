"""
CrisisWatch Exceptions.

Centralized error taxonomy:
- Provider unavailability: raised inside adapters, absorbed at the adapter boundary
- Configuration errors: fatal at startup
- Model call / parse errors: absorbed by the orchestrator per model
"""

from enum import Enum
from typing import Any, Dict, Optional


# ============================================================================
# ERROR CODES
# ============================================================================


class ErrorCode(str, Enum):
    """Application error codes."""

    # General errors (1xxx)
    INTERNAL_ERROR = "E1000"
    CONFIGURATION_ERROR = "E1001"

    # Provider errors (5xxx)
    PROVIDER_UNAVAILABLE = "E5000"
    CIRCUIT_BREAKER_OPEN = "E5001"
    TIMEOUT_ERROR = "E5002"

    # Data errors (6xxx)
    MALFORMED_PAYLOAD = "E6000"

    # Model errors (7xxx)
    MODEL_CALL_FAILED = "E7000"
    MODEL_RESPONSE_INVALID = "E7001"


# ============================================================================
# BASE EXCEPTION
# ============================================================================


class CrisisWatchError(Exception):
    """Base exception for CrisisWatch."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a structured dict for logging."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


# ============================================================================
# SPECIFIC EXCEPTIONS
# ============================================================================


class ConfigurationError(CrisisWatchError):
    """Invalid configuration. Halts initialization."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.CONFIGURATION_ERROR, details=details)


class ProviderError(CrisisWatchError):
    """An external data provider failed or returned an error status."""

    def __init__(
        self,
        provider: str,
        message: str,
        code: ErrorCode = ErrorCode.PROVIDER_UNAVAILABLE,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.provider = provider
        super().__init__(f"{provider}: {message}", code=code, details=details)


class ProviderTransientError(ProviderError):
    """Retryable provider failure: transport error, 5xx or 429."""


class MalformedPayloadError(ProviderError):
    """Provider answered, but not with the expected shape."""

    def __init__(self, provider: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(provider, message, code=ErrorCode.MALFORMED_PAYLOAD, details=details)


class CircuitOpenError(CrisisWatchError):
    """Raised when a circuit breaker is open and rejects a call."""

    def __init__(self, breaker: str, message: Optional[str] = None):
        self.breaker = breaker
        super().__init__(
            message or f"Circuit breaker '{breaker}' is OPEN",
            code=ErrorCode.CIRCUIT_BREAKER_OPEN,
            details={"breaker": breaker},
        )


class ModelCallError(CrisisWatchError):
    """A reasoning model call failed at the transport or HTTP level."""

    def __init__(self, model: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.model = model
        super().__init__(
            f"{model}: {message}",
            code=ErrorCode.MODEL_CALL_FAILED,
            details=details,
        )
