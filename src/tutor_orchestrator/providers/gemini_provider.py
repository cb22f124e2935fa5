"""
Google Gemini provider over the ``generateContent`` REST endpoint.
"""

from typing import Any, Dict, Optional

import httpx

from ..exceptions import MalformedResponseError, ProviderError, UnauthorizedError
from .base import BaseProvider, TextInferenceMixin


class GeminiProvider(TextInferenceMixin, BaseProvider):
    provider_id = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(timeout=timeout, client=client)
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings) -> Optional["GeminiProvider"]:
        api_key = settings.secret("gemini_api_key")
        if not api_key:
            return None
        return cls(
            api_key,
            model=settings.gemini_model,
            base_url=settings.gemini_base_url,
            timeout=settings.provider_timeout,
        )

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: int = 2048,
    ) -> str:
        body: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.temperature if temperature is None else temperature,
                "maxOutputTokens": max_tokens,
            },
        }
        if system:
            body["systemInstruction"] = {"parts": [{"text": system}]}

        self._log_request("generateContent", model=self.model)
        try:
            data = await self._request(
                "POST",
                f"{self.base_url}/models/{self.model}:generateContent",
                json=body,
                headers={"x-goog-api-key": self.api_key},
            )
        except ProviderError as e:
            # Gemini reports a bad key as 400 INVALID_ARGUMENT.
            if e.upstream_status == 400 and "api key" in e.message.lower():
                raise UnauthorizedError(e.message, provider=self.provider_id, upstream_status=400) from e
            raise

        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as e:
            reason = (data.get("promptFeedback") or {}).get("blockReason") if isinstance(data, dict) else None
            raise MalformedResponseError(
                "Gemini returned no candidate content" + (f" (blocked: {reason})" if reason else ""),
                provider=self.provider_id,
            ) from e
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))
