"""
Local Ollama provider (``/api/generate``, non-streaming).
"""

import logging
from typing import Optional

import httpx

from ..exceptions import MalformedResponseError, ProviderError
from .base import BaseProvider, TextInferenceMixin

logger = logging.getLogger(__name__)


class OllamaProvider(TextInferenceMixin, BaseProvider):
    provider_id = "ollama"

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "llama3",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(timeout=timeout, client=client)
        self.base_url = base_url.rstrip("/")
        self.model = model

    @classmethod
    def from_settings(cls, settings) -> Optional["OllamaProvider"]:
        if not settings.ollama_url:
            return None
        return cls(settings.ollama_url, model=settings.ollama_model, timeout=settings.provider_timeout)

    async def is_available(self) -> bool:
        try:
            await self._request("GET", f"{self.base_url}/api/tags", timeout=min(self.timeout, 5.0))
        except ProviderError as e:
            logger.info("Ollama not available", extra={"provider": self.provider_id, "error": str(e)})
            return False
        return True

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: int = 2048,
    ) -> str:
        body = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": self.temperature if temperature is None else temperature,
                "top_p": 0.9,
                "num_predict": max_tokens,
            },
        }
        if system:
            body["system"] = system

        self._log_request("api/generate", model=self.model)
        data = await self._request("POST", f"{self.base_url}/api/generate", json=body)
        if not isinstance(data, dict) or not isinstance(data.get("response"), str):
            raise MalformedResponseError("Ollama response has no 'response' text", provider=self.provider_id)
        return data["response"]
