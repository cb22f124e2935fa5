"""Resilience primitives: retry executor and job poller."""

from tutor_orchestrator.orchestrator.poller import AsyncJobPoller, JobHandle, JobState, PollOutcome
from tutor_orchestrator.orchestrator.retry import RetryExecutor, RetryPolicy, RetryState

__all__ = [
    "AsyncJobPoller",
    "JobHandle",
    "JobState",
    "PollOutcome",
    "RetryExecutor",
    "RetryPolicy",
    "RetryState",
]
