"""
Caller-facing service: one coroutine per capability, all routed through the
fallback orchestrator.
"""

from typing import Any, Dict, List, Optional

import structlog

from tutor_orchestrator.config import Settings, get_settings
from tutor_orchestrator.exceptions import AllProvidersFailedError
from tutor_orchestrator.models import (
    Capability,
    CodeValidation,
    Difficulty,
    ExecutionRequest,
    ExecutionResult,
    QuestionPayload,
    Voice,
)
from tutor_orchestrator.orchestrator.fallback import FallbackOrchestrator
from tutor_orchestrator.orchestrator.registry import ProviderRegistry
from tutor_orchestrator.providers import prompts
from tutor_orchestrator.providers.execution import validation_findings

logger = structlog.get_logger()


class TutorOrchestrator:
    """AI tutor operations with provider fallback."""

    def __init__(self, orchestrator: FallbackOrchestrator, settings: Optional[Settings] = None):
        self.orchestrator = orchestrator
        self.settings = settings

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **kwargs) -> "TutorOrchestrator":
        settings = settings or get_settings()
        return cls(FallbackOrchestrator.from_settings(settings, **kwargs), settings=settings)

    @property
    def registry(self) -> ProviderRegistry:
        return self.orchestrator.registry

    async def __aenter__(self) -> "TutorOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def resolve(self, request: ExecutionRequest, timeout: Optional[float] = None) -> ExecutionResult:
        """Resolve a pre-built request; questions get the same context block as ``answer_question``."""
        payload = request.payload
        if isinstance(payload, QuestionPayload):
            payload = payload.model_copy(
                update={"question": prompts.enrich_question(payload.question, payload.language)}
            )
        return await self.orchestrator.resolve(
            request.capability, payload, request.requested_provider, timeout=timeout
        )

    async def _resolve(
        self,
        capability: Capability,
        payload: Dict[str, Any],
        provider: Optional[str],
        timeout: Optional[float] = None,
    ) -> ExecutionResult:
        return await self.orchestrator.resolve(capability, payload, preferred_provider=provider, timeout=timeout)

    async def answer_question(
        self, question: str, language: str = "python", provider: Optional[str] = None
    ) -> ExecutionResult:
        payload = {"question": question, "language": language}
        # Blank questions pass through unchanged so validation rejects them.
        if isinstance(question, str) and question.strip():
            payload["question"] = prompts.enrich_question(question.strip(), language)
        return await self._resolve(Capability.ANSWER, payload, provider)

    async def analyze_code(
        self, code: str, language: str = "python", provider: Optional[str] = None
    ) -> ExecutionResult:
        return await self._resolve(Capability.ANALYZE_CODE, {"code": code, "language": language}, provider)

    async def generate_quiz(
        self,
        topic: str,
        difficulty: Difficulty = "medium",
        count: int = 3,
        provider: Optional[str] = None,
    ) -> ExecutionResult:
        return await self._resolve(
            Capability.GENERATE_QUIZ,
            {"topic": topic, "difficulty": difficulty, "count": count},
            provider,
        )

    async def explain_algorithm(
        self, algorithm: str, language: str = "python", provider: Optional[str] = None
    ) -> ExecutionResult:
        return await self._resolve(
            Capability.EXPLAIN_ALGORITHM, {"algorithm": algorithm, "language": language}, provider
        )

    async def execute_code(
        self, code: str, language: str, stdin: str = "", provider: Optional[str] = None
    ) -> ExecutionResult:
        return await self._resolve(
            Capability.EXECUTE_CODE, {"code": code, "language": language, "stdin": stdin}, provider
        )

    async def speech_to_text(
        self,
        audio: bytes,
        language_code: str = "en-US",
        content_type: str = "audio/wav",
        provider: Optional[str] = None,
    ) -> ExecutionResult:
        return await self._resolve(
            Capability.SPEECH_TO_TEXT,
            {"audio": audio, "language_code": language_code, "content_type": content_type},
            provider,
        )

    async def text_to_speech(
        self,
        text: str,
        language_code: str = "en-US",
        voice: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> ExecutionResult:
        return await self._resolve(
            Capability.TEXT_TO_SPEECH,
            {"text": text, "language_code": language_code, "voice": voice},
            provider,
        )

    async def validate_code(
        self,
        code: str,
        language: str,
        provider: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> CodeValidation:
        """Trial-run ``code`` and report whether it compiles and exits cleanly.

        Sandboxes that all fail make the code unverifiable, which is reported
        as invalid rather than raised.
        """
        try:
            result = await self._resolve(
                Capability.EXECUTE_CODE, {"code": code, "language": language}, provider, timeout=timeout
            )
        except AllProvidersFailedError as e:
            logger.warning("Code validation failed", language=language, error=e.message)
            return CodeValidation(
                is_valid=False,
                errors=[f"Failed to validate code: {e.message}"],
                language=language.strip().lower(),
            )

        output = result.body
        errors, warnings = validation_findings(output)
        return CodeValidation(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            language=output.language,
            provider=result.producing_provider,
            status=output.status,
        )

    def supported_languages(self, provider: Optional[str] = None) -> Dict[str, List[str]]:
        """Languages each configured code-execution provider accepts."""
        return {
            provider_id: self.registry.get(provider_id).supported_languages()
            for provider_id in self.registry.available_providers(Capability.EXECUTE_CODE)
            if provider is None or provider_id == provider
        }

    def available_voices(self, language_code: Optional[str] = None) -> Dict[str, List[Voice]]:
        return {
            provider_id: self.registry.get(provider_id).available_voices(language_code)
            for provider_id in self.registry.available_providers(Capability.TEXT_TO_SPEECH)
        }

    def status(self) -> Dict[str, Any]:
        """Configured providers and the primary/available providers per capability."""
        return {
            "providers": self.registry.provider_ids,
            "capabilities": self.registry.describe(),
        }

    async def check_status(self) -> Dict[str, Any]:
        """``status()`` plus live reachability of every provider.

        ``available`` holds when every capability's primary provider answers.
        """
        reachable = await self.registry.check_availability()
        primaries = {
            snapshot["primary"] for snapshot in self.registry.describe().values() if snapshot["primary"]
        }
        return {
            **self.status(),
            "reachable": reachable,
            "available": bool(primaries) and all(reachable[p] for p in primaries),
        }

    async def aclose(self) -> None:
        await self.registry.aclose()
        logger.info("Orchestrator closed")
