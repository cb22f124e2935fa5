"""
Base provider abstract class and the per-capability client interfaces.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Awaitable, Callable, ClassVar, Dict, FrozenSet, List, Mapping, Optional

import httpx

from ..exceptions import (
    MalformedResponseError,
    ProviderError,
    ProviderTimeoutError,
    UnknownProviderError,
)
from ..models import (
    AlgorithmPayload,
    Capability,
    CodeAnalysis,
    CodeAnalysisPayload,
    CodeExecutionPayload,
    ExecutionOutput,
    QuestionPayload,
    QuizPayload,
    QuizSet,
    ResultBody,
    SpeechAudio,
    SpeechToTextPayload,
    TextToSpeechPayload,
    Transcript,
    TutorResponse,
    Voice,
)
from . import parsing, prompts
from .http import classify_status

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[ResultBody]]


class BaseProvider(ABC):
    """Abstract base class for backend clients.

    Subclasses combine this class with one or more capability mixins; the
    mixins contribute entries to :meth:`capability_handlers`, which is what the
    registry dispatches on.
    """

    provider_id: ClassVar[str] = ""

    def __init__(self, timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        """
        Initialize the provider.

        Args:
            timeout: Per-call timeout in seconds
            client: Shared HTTP client; created lazily when omitted
        """
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    @classmethod
    @abstractmethod
    def from_settings(cls, settings: "Settings") -> Optional["BaseProvider"]:
        """Build the provider from settings, or return None when it is not configured."""

    def capability_handlers(self) -> Dict[Capability, Handler]:
        return {}

    @property
    def capabilities(self) -> FrozenSet[Capability]:
        return frozenset(self.capability_handlers())

    async def is_available(self) -> bool:
        """Whether the backend answers right now. Configured providers are assumed reachable."""
        return True

    async def invoke(self, capability: Capability, payload: Any) -> ResultBody:
        handler = self.capability_handlers().get(capability)
        if handler is None:
            raise UnknownProviderError(
                f"{self.provider_id} does not serve {capability.value}",
                provider=self.provider_id,
                retryable=False,
            )
        return await handler(payload)

    @property
    def http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Send a request and return its decoded JSON body.

        Transport and status failures come back as classified ``ProviderError``s.
        """
        start = time.time()
        try:
            response = await self.http.request(
                method,
                url,
                json=json,
                params=params,
                headers=headers,
                timeout=timeout or self.timeout,
            )
        except httpx.TimeoutException as e:
            self._log_error(e)
            raise ProviderTimeoutError(
                f"{self.provider_id} request timed out after {timeout or self.timeout}s",
                provider=self.provider_id,
            ) from e
        except httpx.HTTPError as e:
            self._log_error(e)
            raise UnknownProviderError(
                f"{self.provider_id} transport error: {e}", provider=self.provider_id
            ) from e

        if response.status_code >= 400:
            error = classify_status(
                response.status_code, self.provider_id, response.text, response.headers
            )
            self._log_error(error)
            raise error

        self._log_response(url, response.status_code, time.time() - start)
        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(
                f"{self.provider_id} returned a non-JSON body", provider=self.provider_id
            ) from e

    def _log_request(self, operation: str, **kwargs) -> None:
        logger.info(
            f"Provider {self.provider_id} request",
            extra={"provider": self.provider_id, "operation": operation, **kwargs},
        )

    def _log_response(self, target: str, status: Optional[int] = None, duration: Optional[float] = None) -> None:
        logger.info(
            f"Provider {self.provider_id} response",
            extra={
                "provider": self.provider_id,
                "target": target,
                "status": status,
                "duration": duration,
            },
        )

    def _log_error(self, error: Exception) -> None:
        """
        Log error details.

        Args:
            error: Exception that occurred
        """
        logger.warning(
            f"Provider {self.provider_id} error",
            extra={
                "provider": self.provider_id,
                "error_type": type(error).__name__,
                "error_message": str(error),
            },
        )


class TextInferenceMixin(ABC):
    """Answer, analyze, quiz and explain on top of a single ``complete`` call."""

    provider_id: ClassVar[str]
    temperature: float = 0.7

    def capability_handlers(self) -> Dict[Capability, Handler]:
        handlers = super().capability_handlers()
        handlers.update(
            {
                Capability.ANSWER: self.answer_question,
                Capability.ANALYZE_CODE: self.analyze_code,
                Capability.GENERATE_QUIZ: self.generate_quiz,
                Capability.EXPLAIN_ALGORITHM: self.explain_algorithm,
            }
        )
        return handlers

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: int = 2048,
    ) -> str:
        """Return the raw model text for ``prompt``."""

    async def answer_question(self, payload: QuestionPayload) -> TutorResponse:
        text = await self.complete(
            prompts.answer_prompt(payload.question, payload.language), system=prompts.TUTOR_SYSTEM
        )
        return parsing.parse_tutor_response(text, provider=self.provider_id)

    async def analyze_code(self, payload: CodeAnalysisPayload) -> CodeAnalysis:
        text = await self.complete(
            prompts.analysis_prompt(payload.code, payload.language), system=prompts.ANALYSIS_SYSTEM
        )
        return parsing.parse_code_analysis(text, provider=self.provider_id)

    async def generate_quiz(self, payload: QuizPayload) -> QuizSet:
        text = await self.complete(
            prompts.quiz_prompt(payload.topic, payload.difficulty, payload.count),
            system=prompts.QUIZ_SYSTEM,
        )
        quiz = parsing.parse_quiz(text, payload.topic, payload.difficulty, provider=self.provider_id)
        return QuizSet(questions=quiz.questions[: payload.count])

    async def explain_algorithm(self, payload: AlgorithmPayload) -> TutorResponse:
        text = await self.complete(
            prompts.algorithm_prompt(payload.algorithm, payload.language), system=prompts.TUTOR_SYSTEM
        )
        return parsing.parse_tutor_response(text, provider=self.provider_id)


class CodeExecutionMixin(ABC):
    """Sandboxed code execution."""

    # Accepted language names, as normalized by CodeExecutionPayload.
    language_table: ClassVar[Mapping[str, Any]] = {}

    def capability_handlers(self) -> Dict[Capability, Handler]:
        handlers = super().capability_handlers()
        handlers[Capability.EXECUTE_CODE] = self.execute_code
        return handlers

    def supported_languages(self) -> List[str]:
        return sorted(self.language_table)

    @abstractmethod
    async def execute_code(self, payload: CodeExecutionPayload) -> ExecutionOutput:
        """Run the code and report its terminal status."""


class SpeechToTextMixin(ABC):
    def capability_handlers(self) -> Dict[Capability, Handler]:
        handlers = super().capability_handlers()
        handlers[Capability.SPEECH_TO_TEXT] = self.transcribe
        return handlers

    @abstractmethod
    async def transcribe(self, payload: SpeechToTextPayload) -> Transcript:
        """Transcribe the audio."""


class TextToSpeechMixin(ABC):
    def capability_handlers(self) -> Dict[Capability, Handler]:
        handlers = super().capability_handlers()
        handlers[Capability.TEXT_TO_SPEECH] = self.synthesize
        return handlers

    def available_voices(self, language_code: Optional[str] = None) -> List[Voice]:
        return []

    @abstractmethod
    async def synthesize(self, payload: TextToSpeechPayload) -> SpeechAudio:
        """Synthesize speech for the text."""


__all__ = [
    "BaseProvider",
    "CodeExecutionMixin",
    "Handler",
    "ProviderError",
    "SpeechToTextMixin",
    "TextInferenceMixin",
    "TextToSpeechMixin",
]
