"""Sequential provider fallback with per-provider retries and an overall deadline."""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional
from uuid import uuid4

import structlog
from pydantic import ValidationError

from tutor_orchestrator.config import Settings
from tutor_orchestrator.exceptions import (
    AllProvidersFailedError,
    ErrorKind,
    InvalidPayloadError,
    ProviderError,
    UnknownProviderError,
)
from tutor_orchestrator.models import (
    Capability,
    ExecutionOutput,
    ExecutionResult,
    Payload,
    ProviderAttempt,
    ResultBody,
    ResultStatus,
    validate_payload,
)
from tutor_orchestrator.orchestrator.registry import ProviderRegistry
from tutor_orchestrator.orchestrator.retry import RetryExecutor, RetryPolicy, RetryState
from tutor_orchestrator.providers.base import Handler
from tutor_orchestrator.telemetry.logger import RequestContext, request_id_var
from tutor_orchestrator.telemetry.metrics import MetricsCollector, metrics_collector

logger = structlog.get_logger()


@dataclass
class _Progress:
    """What a resolution has done so far; read when the deadline cuts it short."""

    attempts: List[ProviderAttempt] = field(default_factory=list)
    in_flight: Optional[str] = None
    retry_state: Optional[RetryState] = None


class FallbackOrchestrator:
    """Resolve a capability request against the registry's providers in order.

    Each provider runs under its own retry policy; the first success wins. A
    provider that exhausts its retries is recorded and the next one is tried.
    The whole resolution is bounded by ``deadline`` seconds.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        policies: Optional[Mapping[str, RetryPolicy]] = None,
        default_policy: Optional[RetryPolicy] = None,
        deadline: float = 60.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.registry = registry
        self.policies: Dict[str, RetryPolicy] = dict(policies or {})
        self.default_policy = default_policy or RetryPolicy()
        self.deadline = deadline
        self.sleep = sleep
        self.clock = clock
        self.metrics = metrics or metrics_collector

    @classmethod
    def from_settings(
        cls, settings: Settings, registry: Optional[ProviderRegistry] = None, **kwargs
    ) -> "FallbackOrchestrator":
        registry = registry or ProviderRegistry.from_settings(settings)
        policies = {pid: RetryPolicy.from_settings(settings, pid) for pid in registry.provider_ids}
        return cls(
            registry,
            policies=policies,
            default_policy=RetryPolicy.from_settings(settings),
            deadline=settings.request_deadline,
            **kwargs,
        )

    def policy_for(self, provider_id: str) -> RetryPolicy:
        return self.policies.get(provider_id, self.default_policy)

    def plan(self, capability: Capability, preferred_provider: Optional[str] = None) -> List[str]:
        """Order in which providers will be tried for ``capability``."""
        available = self.registry.available_providers(capability)
        if not available:
            # Raises NoProviderAvailableError.
            self.registry.primary_provider(capability)

        first = available[0]
        if preferred_provider:
            if preferred_provider in available:
                first = preferred_provider
            else:
                logger.warning(
                    "Requested provider unavailable, using primary",
                    requested=preferred_provider,
                    primary=first,
                    capability=capability.value,
                )
        return [first] + [p for p in available if p != first]

    async def resolve(
        self,
        capability: Capability,
        payload: Any,
        preferred_provider: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> ExecutionResult:
        """
        Run ``payload`` through the providers for ``capability``.

        Args:
            capability: Requested capability
            payload: Typed payload model or a plain dict of its fields
            preferred_provider: Provider to try first, when available
            timeout: Overall deadline in seconds (defaults to ``self.deadline``)

        Returns:
            ExecutionResult: ``success``, or ``partial_failure`` for code that
            ran but did not finish cleanly

        Raises:
            InvalidPayloadError: Payload does not match the capability
            NoProviderAvailableError: Nothing is configured for the capability
            AllProvidersFailedError: Every provider failed, or the deadline passed
        """
        try:
            capability = Capability(capability)
        except ValueError as e:
            raise InvalidPayloadError(f"Unknown capability '{capability}'") from e
        try:
            typed = validate_payload(capability, payload)
        except (ValidationError, ValueError) as e:
            raise InvalidPayloadError(
                f"Invalid payload for {capability.value}: {e}", details={"capability": capability.value}
            ) from e

        order = self.plan(capability, preferred_provider)
        deadline = self.deadline if timeout is None else timeout
        request_id = request_id_var.get() or str(uuid4())
        progress = _Progress()
        started = self.clock()

        with RequestContext(request_id, capability.value):
            logger.info("Resolving request", providers=order, deadline=deadline)
            try:
                result = await asyncio.wait_for(
                    self._run(capability, typed, order, progress, started, request_id),
                    timeout=deadline,
                )
            except asyncio.TimeoutError:
                attempts = list(progress.attempts)
                if progress.in_flight is not None:
                    state = progress.retry_state
                    attempts.append(
                        ProviderAttempt(
                            provider=progress.in_flight,
                            kind=ErrorKind.TIMEOUT.value,
                            message=f"Request deadline of {deadline}s exceeded",
                            attempts=max(state.attempt, 1) if state else 1,
                        )
                    )
                    self.metrics.record_provider_attempt(progress.in_flight, capability.value, "timeout")
                error = AllProvidersFailedError(
                    capability, attempts, elapsed_ms=self._elapsed_ms(started), request_id=request_id
                )
                self._finish(capability, ResultStatus.FAILURE, started)
                logger.error("Request deadline exceeded", attempts=len(attempts), deadline=deadline)
                raise error from None
            except AllProvidersFailedError:
                self._finish(capability, ResultStatus.FAILURE, started)
                raise

            self._finish(capability, result.status, started)
            return result

    async def _run(
        self,
        capability: Capability,
        payload: Payload,
        order: List[str],
        progress: _Progress,
        started: float,
        request_id: str,
    ) -> ExecutionResult:
        for index, provider_id in enumerate(order):
            handler = self.registry.handler(capability, provider_id)
            executor = RetryExecutor(
                self.policy_for(provider_id), provider=provider_id, sleep=self.sleep, metrics=self.metrics
            )
            state = RetryState()
            progress.in_flight, progress.retry_state = provider_id, state

            try:
                body = await executor.execute(self._invoke, provider_id, handler, payload, state=state)
            except ProviderError as e:
                progress.in_flight = None
                progress.attempts.append(
                    ProviderAttempt(provider=provider_id, kind=e.kind.value, message=e.message, attempts=e.attempts)
                )
                self.metrics.record_provider_attempt(provider_id, capability.value, "failure")
                logger.warning(
                    "Provider failed",
                    provider=provider_id,
                    kind=e.kind.value,
                    attempts=e.attempts,
                    error=e.message,
                )
                if index + 1 < len(order):
                    self.metrics.record_fallback(capability.value, provider_id)
                    logger.info("Falling back", failed=provider_id, next=order[index + 1])
                continue

            progress.in_flight = None
            self.metrics.record_provider_attempt(provider_id, capability.value, "success")
            return self._result(capability, provider_id, body, progress, started, request_id)

        raise AllProvidersFailedError(
            capability, progress.attempts, elapsed_ms=self._elapsed_ms(started), request_id=request_id
        )

    @staticmethod
    async def _invoke(provider_id: str, handler: Handler, payload: Payload) -> ResultBody:
        try:
            return await handler(payload)
        except ProviderError:
            raise
        except Exception as e:
            # Client bugs and stray library errors are classified, never leaked.
            raise UnknownProviderError(
                f"Unexpected {type(e).__name__}: {e}", provider=provider_id
            ) from e

    def _result(
        self,
        capability: Capability,
        provider_id: str,
        body: ResultBody,
        progress: _Progress,
        started: float,
        request_id: str,
    ) -> ExecutionResult:
        status, diagnostics = ResultStatus.SUCCESS, ""
        if isinstance(body, ExecutionOutput) and not body.succeeded:
            status = ResultStatus.PARTIAL_FAILURE
            diagnostics = body.analysis or f"Execution finished with status {body.status.value}"
        logger.info("Request resolved", provider=provider_id, status=status.value)
        return ExecutionResult(
            request_id=request_id,
            capability=capability,
            producing_provider=provider_id,
            status=status,
            body=body,
            diagnostics=diagnostics,
            elapsed_ms=self._elapsed_ms(started),
            attempts=list(progress.attempts),
        )

    def _elapsed_ms(self, started: float) -> float:
        return round((self.clock() - started) * 1000, 3)

    def _finish(self, capability: Capability, status: ResultStatus, started: float) -> None:
        self.metrics.record_resolution(capability.value, status.value, self.clock() - started)
