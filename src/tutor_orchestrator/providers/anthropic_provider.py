"""
Anthropic provider for the text capabilities.
"""

import time
from typing import Optional

from anthropic import APIConnectionError, APIStatusError, APITimeoutError, AsyncAnthropic

from ..exceptions import MalformedResponseError, ProviderError, ProviderTimeoutError, UnknownProviderError
from .base import BaseProvider, TextInferenceMixin
from .http import classify_status


def map_anthropic_error(error: Exception, provider: str, timeout: float) -> ProviderError:
    if isinstance(error, APITimeoutError):
        return ProviderTimeoutError(f"Anthropic request timeout after {timeout}s", provider=provider)
    if isinstance(error, APIConnectionError):
        return UnknownProviderError("Failed to connect to Anthropic API", provider=provider)
    if isinstance(error, APIStatusError):
        headers = error.response.headers if error.response is not None else None
        return classify_status(error.status_code, provider, str(error), headers)
    return UnknownProviderError(f"Unexpected error: {error}", provider=provider)


class AnthropicProvider(TextInferenceMixin, BaseProvider):
    """Anthropic provider implementation."""

    provider_id = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str = "claude-3-haiku-20240307",
        timeout: float = 30.0,
        client: Optional[AsyncAnthropic] = None,
    ) -> None:
        super().__init__(timeout=timeout)
        self.model = model
        self.client = client or AsyncAnthropic(
            api_key=api_key, timeout=timeout, max_retries=0  # We handle retries ourselves
        )

    @classmethod
    def from_settings(cls, settings) -> Optional["AnthropicProvider"]:
        api_key = settings.secret("anthropic_api_key")
        if not api_key:
            return None
        return cls(api_key, model=settings.anthropic_model, timeout=settings.provider_timeout)

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: int = 2048,
    ) -> str:
        request_params = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature if temperature is None else temperature,
            "max_tokens": max_tokens,  # Anthropic requires max_tokens
        }
        if system:
            request_params["system"] = system

        self._log_request("messages", model=self.model)
        start_time = time.time()
        try:
            response = await self.client.messages.create(**request_params)
        except Exception as e:
            error = map_anthropic_error(e, self.provider_id, self.timeout)
            self._log_error(error)
            raise error from e

        self._log_response(self.model, duration=time.time() - start_time)
        text = "".join(
            block.text for block in response.content or [] if getattr(block, "type", "text") == "text"
        )
        if not text:
            raise MalformedResponseError("Anthropic returned no text content", provider=self.provider_id)
        return text

    async def aclose(self) -> None:
        await self.client.close()
        await super().aclose()
