"""Error taxonomy for the AI tutor orchestrator."""

from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from tutor_orchestrator.models import Capability, ExecutionResult, ProviderAttempt


class ErrorKind(str, Enum):
    """Classification carried by every orchestrator error."""

    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    OVERLOADED = "overloaded"
    NOT_FOUND = "not_found"
    MALFORMED_RESPONSE = "malformed_response"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"
    ALL_PROVIDERS_FAILED = "all_providers_failed"
    NO_PROVIDER_AVAILABLE = "no_provider_available"
    INVALID_PAYLOAD = "invalid_payload"


class OrchestratorError(Exception):
    """Base exception for the orchestrator."""

    kind: ErrorKind = ErrorKind.UNKNOWN
    status_code: int = 500

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind.value, "message": self.message, "details": self.details}


class ProviderError(OrchestratorError):
    """A single provider call failed."""

    status_code = 502
    retryable = True

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        upstream_status: Optional[int] = None,
        details: Optional[Dict] = None,
        retryable: Optional[bool] = None,
    ):
        """
        Initialize provider error.

        Args:
            message: Error message
            provider: Provider id
            upstream_status: HTTP status returned by the backend, if any
            details: Additional error details
            retryable: Override the class default retry decision
        """
        super().__init__(message, details=details)
        self.provider = provider
        self.upstream_status = upstream_status
        if retryable is not None:
            self.retryable = retryable
        # Set by the retry executor once the provider's policy is exhausted.
        self.attempts = 1

    def __str__(self) -> str:
        if self.provider:
            return f"[{self.provider}] {self.message}"
        return self.message


class UnauthorizedError(ProviderError):
    """Credential rejected by the backend."""

    kind = ErrorKind.UNAUTHORIZED
    retryable = False


class RateLimitedError(ProviderError):
    """Rate limit exceeded error."""

    kind = ErrorKind.RATE_LIMITED

    def __init__(self, message: str, provider: Optional[str] = None, retry_after: Optional[float] = None, **kwargs):
        super().__init__(message, provider=provider, upstream_status=kwargs.pop("upstream_status", 429), **kwargs)
        self.retry_after = retry_after


class OverloadedError(ProviderError):
    """Backend temporarily unable to serve (503 and friends)."""

    kind = ErrorKind.OVERLOADED


class NotFoundError(ProviderError):
    """Unknown model, endpoint or executable; the provider identity itself is wrong."""

    kind = ErrorKind.NOT_FOUND
    retryable = False


class MalformedResponseError(ProviderError):
    """Backend answered with something we cannot use."""

    kind = ErrorKind.MALFORMED_RESPONSE


class ProviderTimeoutError(ProviderError):
    """Request or job timed out."""

    kind = ErrorKind.TIMEOUT


class UnknownProviderError(ProviderError):
    """Anything else: transport failures, unexpected status codes, client bugs."""

    kind = ErrorKind.UNKNOWN


class InvalidPayloadError(OrchestratorError):
    """Payload does not match the capability; rejected before any provider call."""

    kind = ErrorKind.INVALID_PAYLOAD
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        if field:
            self.details["field"] = field


class NoProviderAvailableError(OrchestratorError):
    """No provider is configured for the capability."""

    kind = ErrorKind.NO_PROVIDER_AVAILABLE
    status_code = 503

    def __init__(self, capability: "Capability", message: Optional[str] = None):
        super().__init__(
            message or f"No provider configured for capability '{capability.value}'",
            details={"capability": capability.value},
        )
        self.capability = capability


class AllProvidersFailedError(OrchestratorError):
    """Every provider in the fallback chain failed."""

    kind = ErrorKind.ALL_PROVIDERS_FAILED
    status_code = 502

    def __init__(
        self,
        capability: "Capability",
        attempts: List["ProviderAttempt"],
        elapsed_ms: float = 0.0,
        request_id: Optional[str] = None,
    ):
        summary = "; ".join(f"{a.provider}: {a.kind} ({a.message})" for a in attempts)
        super().__init__(
            f"All providers failed for '{capability.value}': {summary}",
            details={
                "capability": capability.value,
                "attempts": [a.model_dump() for a in attempts],
            },
        )
        self.capability = capability
        self.attempts = list(attempts)
        self.elapsed_ms = elapsed_ms
        self.request_id = request_id

    @property
    def last_provider(self) -> Optional[str]:
        return self.attempts[-1].provider if self.attempts else None

    def to_result(self) -> "ExecutionResult":
        """Render as a ``failure`` result tagged with the last attempted provider."""
        from tutor_orchestrator.models import ExecutionResult, ResultStatus

        extra = {"request_id": self.request_id} if self.request_id else {}
        return ExecutionResult(
            capability=self.capability,
            producing_provider=self.last_provider,
            status=ResultStatus.FAILURE,
            diagnostics=self.message,
            elapsed_ms=self.elapsed_ms,
            attempts=self.attempts,
            **extra,
        )


__all__ = [
    "AllProvidersFailedError",
    "ErrorKind",
    "InvalidPayloadError",
    "MalformedResponseError",
    "NoProviderAvailableError",
    "NotFoundError",
    "OrchestratorError",
    "OverloadedError",
    "ProviderError",
    "ProviderTimeoutError",
    "RateLimitedError",
    "UnauthorizedError",
    "UnknownProviderError",
]
