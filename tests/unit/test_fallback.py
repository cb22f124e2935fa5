"""Tests for sequential provider fallback."""

import asyncio

import pytest

from tutor_orchestrator.exceptions import (
    AllProvidersFailedError,
    InvalidPayloadError,
    MalformedResponseError,
    NoProviderAvailableError,
    NotFoundError,
    OverloadedError,
    UnauthorizedError,
)
from tutor_orchestrator.models import (
    Capability,
    CodeExecutionPayload,
    ExecutionStatus,
    QuestionPayload,
    ResultStatus,
    TutorResponse,
)
from tutor_orchestrator.orchestrator.retry import RetryPolicy
from tutor_orchestrator.telemetry.logger import RequestContext


@pytest.mark.asyncio
class TestResolve:
    async def test_primary_provider_success(self, build_orchestrator, text_provider, metrics):
        openai, gemini = text_provider("openai"), text_provider("gemini")
        orchestrator = build_orchestrator(gemini, openai)

        result = await orchestrator.resolve(Capability.ANSWER, {"question": "What is a tuple?"})

        assert result.ok
        assert result.producing_provider == "openai"
        assert isinstance(result.body, TutorResponse)
        assert result.attempts == []
        assert openai.calls == 1
        assert gemini.calls == 0
        assert metrics.sample(
            "provider_attempts_total", {"provider": "openai", "capability": "answer", "outcome": "success"}
        ) == 1

    async def test_falls_back_after_non_retryable_error(self, build_orchestrator, text_provider, no_sleep, metrics):
        openai = text_provider("openai", [UnauthorizedError("bad key", provider="openai")])
        gemini = text_provider("gemini")
        orchestrator = build_orchestrator(openai, gemini)

        result = await orchestrator.resolve(Capability.ANSWER, QuestionPayload(question="Why recursion?"))

        assert result.producing_provider == "gemini"
        assert openai.calls == 1
        assert no_sleep.delays == []
        assert [(a.provider, a.kind, a.attempts) for a in result.attempts] == [("openai", "unauthorized", 1)]
        assert metrics.sample("fallbacks_total", {"capability": "answer", "provider": "openai"}) == 1

    async def test_retries_before_falling_back(self, build_orchestrator, text_provider, no_sleep):
        openai = text_provider("openai", [OverloadedError("busy", provider="openai")])
        gemini = text_provider("gemini")
        orchestrator = build_orchestrator(openai, gemini)

        result = await orchestrator.resolve(Capability.EXPLAIN_ALGORITHM, {"algorithm": "quicksort"})

        assert result.producing_provider == "gemini"
        assert openai.calls == 3
        assert no_sleep.delays == [2.0, 4.0]
        assert result.attempts[0].attempts == 3
        assert result.attempts[0].kind == "overloaded"

    async def test_not_found_falls_back_without_retry(self, build_orchestrator, text_provider, no_sleep):
        gemini = text_provider("gemini", [NotFoundError("model gone", provider="gemini")])
        openai = text_provider("openai")
        orchestrator = build_orchestrator(gemini, openai)

        result = await orchestrator.resolve(
            Capability.ANSWER, {"question": "What is memoization?"}, preferred_provider="gemini"
        )

        assert result.producing_provider == "openai"
        assert gemini.calls == 1
        assert no_sleep.delays == []
        assert [(a.provider, a.kind, a.attempts) for a in result.attempts] == [("gemini", "not_found", 1)]

    async def test_resolve_is_idempotent(self, build_orchestrator, text_provider, no_sleep):
        openai = text_provider("openai")
        orchestrator = build_orchestrator(openai, text_provider("gemini"))

        first = await orchestrator.resolve(Capability.ANSWER, {"question": "What is a set?"})
        second = await orchestrator.resolve(Capability.ANSWER, {"question": "What is a set?"})

        assert (first.status, first.producing_provider) == (ResultStatus.SUCCESS, "openai")
        assert (second.status, second.producing_provider) == (ResultStatus.SUCCESS, "openai")
        assert first.body == second.body
        assert first.request_id != second.request_id
        assert second.attempts == []
        assert openai.prompts[0] == openai.prompts[1]
        assert no_sleep.delays == []

    async def test_per_provider_policy(self, build_orchestrator, text_provider, no_sleep):
        openai = text_provider("openai", [OverloadedError("busy")])
        orchestrator = build_orchestrator(
            openai, text_provider("gemini"), policies={"openai": RetryPolicy(max_attempts=1)}
        )

        result = await orchestrator.resolve(Capability.ANSWER, {"question": "q"})

        assert result.producing_provider == "gemini"
        assert openai.calls == 1
        assert no_sleep.delays == []

    async def test_all_providers_fail(self, build_orchestrator, text_provider, metrics):
        orchestrator = build_orchestrator(
            text_provider("openai", [UnauthorizedError("bad key")]),
            text_provider("gemini", [NotFoundError("no such model")]),
        )

        with RequestContext("req-123"):
            with pytest.raises(AllProvidersFailedError) as exc_info:
                await orchestrator.resolve(Capability.ANSWER, {"question": "q"})

        error = exc_info.value
        assert [a.provider for a in error.attempts] == ["openai", "gemini"]
        assert error.last_provider == "gemini"
        assert error.request_id == "req-123"
        result = error.to_result()
        assert result.status == ResultStatus.FAILURE
        assert result.body is None
        assert result.producing_provider == "gemini"
        assert "no such model" in result.diagnostics
        assert metrics.sample(
            "provider_attempts_total", {"provider": "gemini", "capability": "answer", "outcome": "failure"}
        ) == 1

    async def test_preferred_provider_tried_first(self, build_orchestrator, text_provider):
        openai, mistral = text_provider("openai"), text_provider("mistral")
        orchestrator = build_orchestrator(openai, mistral)

        result = await orchestrator.resolve(Capability.ANSWER, {"question": "q"}, preferred_provider="mistral")

        assert result.producing_provider == "mistral"
        assert openai.calls == 0

    async def test_unavailable_preferred_provider_is_ignored(self, build_orchestrator, text_provider):
        orchestrator = build_orchestrator(text_provider("openai"))

        result = await orchestrator.resolve(Capability.ANSWER, {"question": "q"}, preferred_provider="judge0")

        assert result.producing_provider == "openai"

    async def test_invalid_payload_rejected_before_any_call(self, build_orchestrator, text_provider):
        openai = text_provider("openai")
        orchestrator = build_orchestrator(openai)

        with pytest.raises(InvalidPayloadError):
            await orchestrator.resolve(Capability.ANSWER, {"question": ""})
        with pytest.raises(InvalidPayloadError):
            await orchestrator.resolve(Capability.ANSWER, CodeExecutionPayload(code="x", language="python"))
        with pytest.raises(InvalidPayloadError):
            await orchestrator.resolve("summarize", {"question": "q"})
        assert openai.calls == 0

    async def test_no_provider_available(self, build_orchestrator, text_provider):
        orchestrator = build_orchestrator(text_provider("openai"))

        with pytest.raises(NoProviderAvailableError):
            await orchestrator.resolve(Capability.EXECUTE_CODE, {"code": "print(1)", "language": "python"})

    async def test_unexpected_exception_is_classified(self, build_orchestrator, text_provider):
        orchestrator = build_orchestrator(
            text_provider("openai", [AttributeError("'NoneType' object has no attribute 'text'")]),
            policies={"openai": RetryPolicy(max_attempts=1)},
        )

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await orchestrator.resolve(Capability.ANSWER, {"question": "q"})
        assert exc_info.value.attempts[0].kind == "unknown"
        assert "AttributeError" in exc_info.value.attempts[0].message

    async def test_malformed_text_is_retried(self, build_orchestrator, text_provider, no_sleep):
        openai = text_provider("openai", ["", "Now with content."])
        orchestrator = build_orchestrator(openai)

        result = await orchestrator.resolve(Capability.ANSWER, {"question": "q"})

        assert result.body.explanation == "Now with content."
        assert openai.calls == 2
        assert no_sleep.delays == [1.0]

    async def test_failed_execution_is_partial_failure(self, build_orchestrator, execution_provider):
        piston = execution_provider("piston", [ExecutionStatus.RUNTIME_ERROR])
        codex = execution_provider("codex")
        orchestrator = build_orchestrator(piston, codex)

        result = await orchestrator.resolve(
            Capability.EXECUTE_CODE, {"code": "raise SystemExit(1)", "language": "python"}
        )

        assert result.status == ResultStatus.PARTIAL_FAILURE
        assert result.producing_provider == "piston"
        assert result.body.status == ExecutionStatus.RUNTIME_ERROR
        assert result.diagnostics == "runtime_error for python"
        assert codex.calls == 0

    async def test_deadline_exceeded(self, build_orchestrator, text_provider):
        class HangingProvider(text_provider):
            async def complete(self, prompt, system=None, temperature=None, max_tokens=2048):
                self.prompts.append(prompt)
                await asyncio.sleep(10)

        first = text_provider("openai", [MalformedResponseError("garbled")])
        hanging = HangingProvider("gemini")
        orchestrator = build_orchestrator(
            first, hanging, policies={"openai": RetryPolicy(max_attempts=1)}
        )

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await orchestrator.resolve(Capability.ANSWER, {"question": "q"}, timeout=0.05)

        attempts = exc_info.value.attempts
        assert [(a.provider, a.kind) for a in attempts] == [("openai", "malformed_response"), ("gemini", "timeout")]
        assert hanging.calls == 1


def test_plan_orders_preferred_first(build_orchestrator, text_provider):
    orchestrator = build_orchestrator(text_provider("openai"), text_provider("gemini"), text_provider("ollama"))
    assert orchestrator.plan(Capability.ANSWER) == ["openai", "gemini", "ollama"]
    assert orchestrator.plan(Capability.ANSWER, "ollama") == ["ollama", "openai", "gemini"]
