"""
Provider failover across real provider clients talking to mocked backends.
"""

import httpx
import pytest

from tutor_orchestrator.exceptions import AllProvidersFailedError
from tutor_orchestrator.models import Capability, ExecutionStatus, ResultStatus
from tutor_orchestrator.orchestrator import AsyncJobPoller, RetryPolicy
from tutor_orchestrator.orchestrator.fallback import FallbackOrchestrator
from tutor_orchestrator.orchestrator.registry import ProviderRegistry
from tutor_orchestrator.providers import (
    CodexProvider,
    GeminiProvider,
    Judge0Provider,
    OpenRouterProvider,
    PistonProvider,
)
from tutor_orchestrator.service import TutorOrchestrator

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


def reply(status_code, **kwargs):
    return lambda: httpx.Response(status_code, **kwargs)


class ScriptedBackend:
    """Replays a list of response factories, repeating the last one."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        step = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        return step()

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


PISTON_OK = reply(200, json={"run": {"stdout": "hi\n", "stderr": "", "code": 0, "signal": None, "output": "hi\n"}})


def orchestrator_for(providers, no_sleep, metrics, **kwargs):
    return TutorOrchestrator(
        FallbackOrchestrator(ProviderRegistry(providers), sleep=no_sleep, metrics=metrics, **kwargs)
    )


async def test_judge0_unauthorized_then_piston_recovers(no_sleep, metrics):
    judge0_backend = ScriptedBackend(reply(401, json={"message": "Invalid API key"}))
    piston_backend = ScriptedBackend(reply(503, text="busy"), reply(503, text="busy"), PISTON_OK)
    tutor = orchestrator_for(
        [
            Judge0Provider("bad-key", client=judge0_backend.client(), poller=AsyncJobPoller(sleep=no_sleep, metrics=metrics)),
            PistonProvider(client=piston_backend.client()),
        ],
        no_sleep,
        metrics,
    )

    result = await tutor.execute_code("print('hi')", "python")

    assert result.status == ResultStatus.SUCCESS
    assert result.producing_provider == "piston"
    assert result.body.output == "hi"
    assert judge0_backend.calls == 1
    assert piston_backend.calls == 3
    assert no_sleep.delays == [2.0, 4.0]
    assert [(a.provider, a.kind, a.attempts) for a in result.attempts] == [("judge0", "unauthorized", 1)]
    assert metrics.sample("retries_total", {"provider": "piston", "kind": "overloaded"}) == 2
    assert metrics.sample("fallbacks_total", {"capability": "execute_code", "provider": "judge0"}) == 1


async def test_rate_limited_gemini_falls_back_to_openrouter(no_sleep, metrics):
    gemini_backend = ScriptedBackend(reply(429, headers={"Retry-After": "9"}, json={"error": "quota"}))
    openrouter_backend = ScriptedBackend(
        reply(200, json={"choices": [{"message": {"content": '{"explanation": "Merge sort splits and merges."}'}}]})
    )
    tutor = orchestrator_for(
        [
            GeminiProvider("g-key", client=gemini_backend.client()),
            OpenRouterProvider("or-key", "https://openrouter.test/api/v1", "m", client=openrouter_backend.client()),
        ],
        no_sleep,
        metrics,
        policies={"gemini": RetryPolicy(max_attempts=2)},
    )

    result = await tutor.explain_algorithm("merge sort", provider="gemini")

    assert result.producing_provider == "openrouter"
    assert result.body.explanation == "Merge sort splits and merges."
    assert gemini_backend.calls == 2
    assert no_sleep.delays == [9.0]
    assert result.attempts[0].kind == "rate_limited"


async def test_judge0_job_never_finishes(no_sleep, metrics):
    class Clock:
        now = 0.0

        def __call__(self):
            return self.now

    clock = Clock()

    async def advancing_sleep(delay):
        clock.now += delay

    judge0_backend = ScriptedBackend(reply(201, json={"token": "t1"}), reply(200, json={"status": {"id": 1, "description": "In Queue"}}))
    poller = AsyncJobPoller(interval=0.5, deadline=1.0, provider="judge0", clock=clock, sleep=advancing_sleep, metrics=metrics)
    tutor = orchestrator_for(
        [Judge0Provider("rapid-key", client=judge0_backend.client(), poller=poller)],
        no_sleep,
        metrics,
        policies={"judge0": RetryPolicy(max_attempts=1)},
    )

    with pytest.raises(AllProvidersFailedError) as exc_info:
        await tutor.execute_code("print('hi')", "python")

    attempt = exc_info.value.attempts[0]
    assert (attempt.provider, attempt.kind) == ("judge0", "timeout")
    result = exc_info.value.to_result()
    assert result.capability == Capability.EXECUTE_CODE
    assert result.status == ResultStatus.FAILURE


async def test_compile_error_is_not_a_fallback_trigger(no_sleep, metrics):
    piston_backend = ScriptedBackend(
        reply(
            200,
            json={
                "compile": {"code": 1, "output": "Main.java:1: error: ';' expected"},
                "run": {"stdout": "", "stderr": "", "code": None, "signal": None},
            },
        )
    )
    codex_backend = ScriptedBackend(reply(200, json={"output": "never used"}))
    tutor = orchestrator_for(
        [PistonProvider(client=piston_backend.client()), CodexProvider(client=codex_backend.client())],
        no_sleep,
        metrics,
    )

    result = await tutor.execute_code("class Main {", "java")

    assert result.status == ResultStatus.PARTIAL_FAILURE
    assert result.body.status == ExecutionStatus.COMPILATION_ERROR
    assert codex_backend.calls == 0
