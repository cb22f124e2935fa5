"""
Providers speaking the OpenAI ``/chat/completions`` wire format over plain HTTP.
"""

from typing import Any, Dict, List, Optional

import httpx

from ..exceptions import MalformedResponseError
from .base import BaseProvider, TextInferenceMixin


class OpenAICompatibleProvider(TextInferenceMixin, BaseProvider):
    """Chat-completions client for OpenAI-compatible gateways."""

    temperature = 0.4

    def __init__(
        self,
        api_key: str,
        base_url: str,
        model: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(timeout=timeout, client=client)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: int = 2048,
    ) -> str:
        messages: List[Dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        self._log_request("chat/completions", model=self.model)
        data: Any = await self._request(
            "POST",
            f"{self.base_url}/chat/completions",
            json={
                "model": self.model,
                "messages": messages,
                "temperature": self.temperature if temperature is None else temperature,
                "max_tokens": max_tokens,
            },
            headers=self._headers(),
        )
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedResponseError(
                f"{self.provider_id} response has no choices[0].message.content",
                provider=self.provider_id,
            ) from e


class OpenRouterProvider(OpenAICompatibleProvider):
    provider_id = "openrouter"

    def __init__(self, *args, site_url: Optional[str] = None, app_name: Optional[str] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.site_url = site_url
        self.app_name = app_name

    @classmethod
    def from_settings(cls, settings) -> Optional["OpenRouterProvider"]:
        api_key = settings.secret("openrouter_api_key")
        if not api_key:
            return None
        return cls(
            api_key,
            settings.openrouter_base_url,
            settings.openrouter_model,
            timeout=settings.provider_timeout,
            site_url=settings.openrouter_site_url,
            app_name=settings.openrouter_app_name,
        )

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        # Optional attribution headers for OpenRouter rankings.
        if self.site_url:
            headers["HTTP-Referer"] = self.site_url
        if self.app_name:
            headers["X-Title"] = self.app_name
        return headers


class MistralProvider(OpenAICompatibleProvider):
    provider_id = "mistral"

    @classmethod
    def from_settings(cls, settings) -> Optional["MistralProvider"]:
        api_key = settings.secret("mistral_api_key")
        if not api_key:
            return None
        return cls(
            api_key,
            settings.mistral_base_url,
            settings.mistral_model,
            timeout=settings.provider_timeout,
        )
