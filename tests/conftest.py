"""Pytest configuration and fixtures."""

from typing import Callable, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import structlog
from prometheus_client import CollectorRegistry

from tutor_orchestrator.config import Settings, get_settings
from tutor_orchestrator.exceptions import ProviderError
from tutor_orchestrator.models import (
    ExecutionOutput,
    ExecutionStatus,
    SpeechAudio,
    Transcript,
)
from tutor_orchestrator.orchestrator.fallback import FallbackOrchestrator
from tutor_orchestrator.orchestrator.registry import ProviderRegistry
from tutor_orchestrator.orchestrator.retry import RetryPolicy
from tutor_orchestrator.providers.base import (
    BaseProvider,
    CodeExecutionMixin,
    SpeechToTextMixin,
    TextInferenceMixin,
    TextToSpeechMixin,
)
from tutor_orchestrator.service import TutorOrchestrator
from tutor_orchestrator.telemetry.metrics import MetricsCollector

CREDENTIAL_ENV = (
    "OPENAI_API_KEY",
    "OPENROUTER_API_KEY",
    "MISTRAL_API_KEY",
    "GEMINI_API_KEY",
    "ANTHROPIC_API_KEY",
    "HUGGINGFACE_API_KEY",
    "JUDGE0_API_KEY",
    "OLLAMA_URL",
    "OLLAMA_BASE_URL",
    "PISTON_ENABLED",
    "CODEX_ENABLED",
    "WHISPER_ENABLED",
    "COQUI_ENABLED",
    "RETRY_POLICIES",
)


@pytest.fixture(scope="session", autouse=True)
def route_structlog_through_logging():
    """Send structlog events to stdlib logging so pytest captures them off stdout."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.KeyValueRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
    )
    yield
    structlog.reset_defaults()


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Keep the developer's credentials and .env out of every test."""
    for name in CREDENTIAL_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def metrics():
    """Metrics collector backed by its own registry."""
    return MetricsCollector(registry=CollectorRegistry())


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records delays without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def no_sleep():
    return SleepRecorder()


class ScriptedTextProvider(TextInferenceMixin, BaseProvider):
    """Text provider whose ``complete`` replays a script of texts and errors."""

    def __init__(self, provider_id: str, script: Optional[List] = None):
        super().__init__(timeout=1.0)
        self.provider_id = provider_id
        self.script = list(script or ["Plain explanation."])
        self.prompts: List[str] = []

    @classmethod
    def from_settings(cls, settings):
        return None

    async def complete(self, prompt, system=None, temperature=None, max_tokens=2048):
        self.prompts.append(prompt)
        step = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(step, BaseException):
            raise step
        return step

    @property
    def calls(self) -> int:
        return len(self.prompts)


class ScriptedExecutionProvider(CodeExecutionMixin, BaseProvider):
    language_table = {"python": "main.py", "javascript": "main.js"}

    def __init__(self, provider_id: str, script: Optional[List] = None):
        super().__init__(timeout=1.0)
        self.provider_id = provider_id
        self.script = list(script or [ExecutionStatus.ACCEPTED])
        self.calls = 0

    @classmethod
    def from_settings(cls, settings):
        return None

    async def execute_code(self, payload):
        self.calls += 1
        step = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(step, BaseException):
            raise step
        return ExecutionOutput(
            output="hi" if step == ExecutionStatus.ACCEPTED else "",
            stdout="hi\n" if step == ExecutionStatus.ACCEPTED else "",
            status=step,
            language=payload.language,
            analysis=f"{step.value} for {payload.language}",
        )


class SpeechProvider(SpeechToTextMixin, TextToSpeechMixin, BaseProvider):
    def __init__(self, provider_id: str = "openai", failure: Optional[ProviderError] = None):
        super().__init__(timeout=1.0)
        self.provider_id = provider_id
        self.failure = failure

    @classmethod
    def from_settings(cls, settings):
        return None

    async def transcribe(self, payload):
        if self.failure:
            raise self.failure
        return Transcript(transcript="hello world", confidence=0.9, language=payload.language_code)

    async def synthesize(self, payload):
        if self.failure:
            raise self.failure
        return SpeechAudio(audio=b"RIFF....WAVE", content_type="audio/wav")


@pytest.fixture
def text_provider() -> Callable[..., ScriptedTextProvider]:
    return ScriptedTextProvider


@pytest.fixture
def execution_provider() -> Callable[..., ScriptedExecutionProvider]:
    return ScriptedExecutionProvider


@pytest.fixture
def speech_provider() -> Callable[..., SpeechProvider]:
    return SpeechProvider


@pytest.fixture
def build_orchestrator(no_sleep, metrics):
    """Factory for a fallback orchestrator over explicit providers with no real sleeping."""

    def build(
        *providers: BaseProvider,
        policies: Optional[Dict[str, RetryPolicy]] = None,
        deadline: float = 60.0,
        **kwargs,
    ) -> FallbackOrchestrator:
        return FallbackOrchestrator(
            ProviderRegistry(providers),
            policies=policies,
            deadline=deadline,
            sleep=kwargs.pop("sleep", no_sleep),
            metrics=metrics,
            **kwargs,
        )

    return build


@pytest.fixture
def tutor(build_orchestrator, text_provider, execution_provider, speech_provider):
    orchestrator = build_orchestrator(
        text_provider("openai"),
        execution_provider("piston"),
        speech_provider("coqui"),
    )
    return TutorOrchestrator(orchestrator)


@pytest.fixture
def mock_openai_client():
    client = MagicMock()
    client.chat = MagicMock()
    client.chat.completions = MagicMock()
    client.chat.completions.create = AsyncMock()
    client.audio = MagicMock()
    client.audio.transcriptions.create = AsyncMock()
    client.audio.speech.create = AsyncMock()
    client.close = AsyncMock()
    return client


@pytest.fixture
def mock_anthropic_client():
    client = MagicMock()
    client.messages = MagicMock()
    client.messages.create = AsyncMock()
    client.close = AsyncMock()
    return client
