"""Provider registry: which backends exist and in what order they are tried."""

import asyncio
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import structlog

from tutor_orchestrator.config import Settings
from tutor_orchestrator.exceptions import NoProviderAvailableError
from tutor_orchestrator.models import Capability, TEXT_CAPABILITIES
from tutor_orchestrator.providers import PROVIDER_CLASSES, BaseProvider
from tutor_orchestrator.providers.base import Handler

logger = structlog.get_logger()

_TEXT_PRECEDENCE = ("openai", "openrouter", "gemini", "anthropic", "mistral", "huggingface", "ollama")

PRECEDENCE: Dict[Capability, Tuple[str, ...]] = {
    **{capability: _TEXT_PRECEDENCE for capability in TEXT_CAPABILITIES},
    Capability.EXECUTE_CODE: ("judge0", "piston", "codex"),
    Capability.SPEECH_TO_TEXT: ("openai", "whisper"),
    Capability.TEXT_TO_SPEECH: ("openai", "coqui"),
}


class ProviderRegistry:
    """Read-only map of configured providers and their capability handlers.

    Built once, from explicit settings or explicit provider instances. The
    dispatch table (capability -> provider id -> handler) is resolved at
    construction and never changes afterwards.
    """

    def __init__(
        self,
        providers: Iterable[BaseProvider],
        precedence: Optional[Mapping[Capability, Sequence[str]]] = None,
    ):
        self._providers: Dict[str, BaseProvider] = {}
        for provider in providers:
            if provider.provider_id in self._providers:
                raise ValueError(f"Duplicate provider id '{provider.provider_id}'")
            self._providers[provider.provider_id] = provider

        self._precedence = {c: tuple(p) for c, p in (precedence or PRECEDENCE).items()}
        self._handlers: Dict[Capability, Dict[str, Handler]] = {c: {} for c in Capability}
        for provider_id, provider in self._providers.items():
            for capability, handler in provider.capability_handlers().items():
                self._handlers[capability][provider_id] = handler

        logger.info(
            "Provider registry built",
            providers=list(self._providers),
            capabilities={c.value: self.available_providers(c) for c in Capability},
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "ProviderRegistry":
        """Instantiate every provider whose credentials or toggles are present."""
        providers = []
        for provider_cls in PROVIDER_CLASSES:
            provider = provider_cls.from_settings(settings)
            if provider is None:
                logger.debug("Provider not configured", provider=provider_cls.provider_id)
                continue
            providers.append(provider)
        return cls(providers, **kwargs)

    def get(self, provider_id: str) -> BaseProvider:
        return self._providers[provider_id]

    @property
    def provider_ids(self) -> List[str]:
        return list(self._providers)

    def available_providers(self, capability: Capability) -> List[str]:
        """Providers able to serve ``capability``, most preferred first."""
        serving = self._handlers[capability]
        ordered = [p for p in self._precedence.get(capability, ()) if p in serving]
        ordered += [p for p in serving if p not in ordered]
        return ordered

    def primary_provider(self, capability: Capability) -> str:
        available = self.available_providers(capability)
        if not available:
            raise NoProviderAvailableError(capability)
        return available[0]

    def handler(self, capability: Capability, provider_id: str) -> Handler:
        try:
            return self._handlers[capability][provider_id]
        except KeyError:
            raise KeyError(f"{provider_id} does not serve {capability.value}") from None

    def describe(self) -> Dict[str, Dict[str, object]]:
        """Status snapshot: primary and available providers per capability."""
        snapshot: Dict[str, Dict[str, object]] = {}
        for capability in Capability:
            available = self.available_providers(capability)
            snapshot[capability.value] = {
                "primary": available[0] if available else None,
                "available": available,
            }
        return snapshot

    async def check_availability(self) -> Dict[str, bool]:
        """Ask every provider, concurrently, whether its backend is reachable now."""
        ids = list(self._providers)
        outcomes = await asyncio.gather(
            *(self._providers[p].is_available() for p in ids), return_exceptions=True
        )
        reachable: Dict[str, bool] = {}
        for provider_id, outcome in zip(ids, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("Availability check failed", provider=provider_id, error=str(outcome))
                outcome = False
            reachable[provider_id] = bool(outcome)
        return reachable

    async def aclose(self) -> None:
        for provider in self._providers.values():
            try:
                await provider.aclose()
            except Exception as e:
                logger.warning("Failed to close provider", provider=provider.provider_id, error=str(e))
