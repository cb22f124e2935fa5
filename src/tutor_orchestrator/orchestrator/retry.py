"""Retry executor with per-error-kind exponential backoff."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, TypeVar

import structlog
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from tutor_orchestrator.exceptions import ErrorKind, ProviderError
from tutor_orchestrator.telemetry.metrics import MetricsCollector, metrics_collector

if TYPE_CHECKING:
    from tutor_orchestrator.config import Settings

logger = structlog.get_logger()

T = TypeVar("T")

DEFAULT_BASE_DELAYS = {
    ErrorKind.OVERLOADED.value: 2.0,
    ErrorKind.RATE_LIMITED.value: 5.0,
    ErrorKind.TIMEOUT.value: 1.0,
    "default": 1.0,
}


@dataclass
class RetryPolicy:
    """How often and how patiently one provider is retried."""

    max_attempts: int = 3
    base_delays: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_BASE_DELAYS))
    multiplier: float = 2.0
    max_delay: float = 30.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_for(self, error: BaseException, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        kind = getattr(error, "kind", None)
        key = kind.value if isinstance(kind, ErrorKind) else "default"
        base = self.base_delays.get(key, self.base_delays.get("default", 1.0))
        delay = base * self.multiplier ** (attempt - 1)
        retry_after = getattr(error, "retry_after", None)
        if retry_after:
            delay = max(delay, float(retry_after))
        return min(delay, self.max_delay)

    @classmethod
    def from_settings(cls, settings: "Settings", provider: Optional[str] = None) -> "RetryPolicy":
        """Build the policy for ``provider``, applying its ``RETRY_POLICIES`` override if any."""
        overrides: Dict[str, Any] = dict(settings.retry_policies.get(provider, {})) if provider else {}
        base_delays = {
            ErrorKind.OVERLOADED.value: settings.retry_overloaded_delay,
            ErrorKind.RATE_LIMITED.value: settings.retry_rate_limited_delay,
            ErrorKind.TIMEOUT.value: settings.retry_default_delay,
            "default": settings.retry_default_delay,
        }
        for key in list(base_delays):
            if f"{key}_delay" in overrides:
                base_delays[key] = float(overrides[f"{key}_delay"])
        base_delays.update({k: float(v) for k, v in (overrides.get("base_delays") or {}).items()})
        return cls(
            max_attempts=int(overrides.get("max_attempts", settings.retry_max_attempts)),
            base_delays=base_delays,
            multiplier=float(overrides.get("multiplier", settings.retry_multiplier)),
            max_delay=float(overrides.get("max_delay", settings.retry_max_delay)),
        )


@dataclass
class RetryState:
    """Progress of one ``RetryExecutor.execute`` call."""

    attempt: int = 0
    last_error: Optional[BaseException] = None
    next_delay: float = 0.0
    delays: List[float] = field(default_factory=list)


def is_retryable(error: BaseException) -> bool:
    return isinstance(error, ProviderError) and error.retryable


class RetryExecutor:
    """Run a provider call under a ``RetryPolicy``.

    Only retryable ``ProviderError``s are retried. Anything else, and the last
    error once attempts run out, propagates unchanged with ``attempts`` set.
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        provider: str = "",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.policy = policy or RetryPolicy()
        self.provider = provider
        self.sleep = sleep
        self.metrics = metrics or metrics_collector

    async def execute(
        self,
        func: Callable[..., Awaitable[T]],
        *args,
        on_retry: Callable[[BaseException, int, float], None] | None = None,
        state: Optional[RetryState] = None,
        **kwargs,
    ) -> T:
        """Execute ``func`` with retry logic."""
        state = state if state is not None else RetryState()

        def wait(retry_state: RetryCallState) -> float:
            error = retry_state.outcome.exception()
            state.next_delay = self.policy.delay_for(error, retry_state.attempt_number)
            return state.next_delay

        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception()
            state.delays.append(state.next_delay)
            kind = getattr(error, "kind", ErrorKind.UNKNOWN)
            logger.warning(
                "Retrying provider call",
                provider=self.provider,
                attempt=retry_state.attempt_number,
                max_attempts=self.policy.max_attempts,
                delay=state.next_delay,
                kind=kind.value,
                error=str(error),
            )
            self.metrics.record_retry(self.provider or "unknown", kind.value)
            if on_retry:
                on_retry(error, retry_state.attempt_number, state.next_delay)

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.policy.max_attempts),
                wait=wait,
                retry=retry_if_exception(is_retryable),
                before_sleep=before_sleep,
                sleep=self.sleep,
                reraise=True,
            ):
                with attempt:
                    state.attempt = attempt.retry_state.attempt_number
                    return await func(*args, **kwargs)
        except BaseException as e:
            state.last_error = e
            if isinstance(e, ProviderError):
                e.attempts = state.attempt
            raise

        # This should never be reached
        raise RuntimeError("Retry loop completed without returning")
