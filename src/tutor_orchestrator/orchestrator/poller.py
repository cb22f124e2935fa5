"""Submit-then-poll driver for backends that run jobs asynchronously."""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Generic, Optional, TypeVar

import structlog

from tutor_orchestrator.exceptions import ProviderTimeoutError
from tutor_orchestrator.telemetry.metrics import MetricsCollector, metrics_collector

logger = structlog.get_logger()

T = TypeVar("T")


class JobState(str, Enum):
    """Lifecycle of a polled job."""

    SUBMITTED = "submitted"
    POLLING = "polling"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    ERRORED = "errored"


@dataclass
class JobHandle:
    """Opaque job token plus its timing window (clock seconds)."""

    token: str
    submitted_at: float
    deadline: float


@dataclass
class PollOutcome(Generic[T]):
    value: T
    state: JobState
    checks: int
    handle: JobHandle


class AsyncJobPoller:
    """Poll a submitted job until it reaches a terminal state or its deadline passes.

    The first status check happens right after submission; later checks are
    spaced ``interval`` seconds apart. A sleep never runs past the deadline, so
    the last check happens at the deadline and the timeout is raised only when
    that check still reports the job as in progress.
    """

    def __init__(
        self,
        interval: float = 0.1,
        deadline: float = 5.0,
        provider: str = "",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        metrics: Optional[MetricsCollector] = None,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        if deadline <= 0:
            raise ValueError("deadline must be positive")
        self.interval = interval
        self.deadline = deadline
        self.provider = provider
        self.clock = clock
        self.sleep = sleep
        self.metrics = metrics or metrics_collector

    async def run(
        self,
        submit: Callable[[], Awaitable[str]],
        check: Callable[[str], Awaitable[T]],
        is_terminal: Callable[[T], bool],
    ) -> PollOutcome[T]:
        token = await submit()
        now = self.clock()
        handle = JobHandle(token=token, submitted_at=now, deadline=now + self.deadline)
        state = JobState.SUBMITTED
        checks = 0
        logger.debug("Job submitted", provider=self.provider, token=token)

        while True:
            state = JobState.POLLING
            try:
                value = await check(token)
            except Exception as e:
                state = JobState.ERRORED
                self.metrics.record_poll_check(self.provider, state.value)
                logger.warning(
                    "Job status check failed",
                    provider=self.provider,
                    token=token,
                    checks=checks + 1,
                    error=str(e),
                )
                raise
            checks += 1

            if is_terminal(value):
                state = JobState.COMPLETED
                self.metrics.record_poll_check(self.provider, state.value)
                return PollOutcome(value=value, state=state, checks=checks, handle=handle)

            remaining = handle.deadline - self.clock()
            if remaining <= 0:
                state = JobState.TIMED_OUT
                self.metrics.record_poll_check(self.provider, state.value)
                logger.warning(
                    "Job still running at deadline",
                    provider=self.provider,
                    token=token,
                    checks=checks,
                    deadline=self.deadline,
                )
                raise ProviderTimeoutError(
                    f"Job {token} did not finish within {self.deadline}s",
                    provider=self.provider or None,
                    details={"token": token, "checks": checks},
                )

            self.metrics.record_poll_check(self.provider, state.value)
            await self.sleep(min(self.interval, remaining))
