"""
Hugging Face Inference API provider (text generation task).
"""

from typing import Optional

import httpx

from ..exceptions import MalformedResponseError, OverloadedError, ProviderError
from .base import BaseProvider, TextInferenceMixin


class HuggingFaceProvider(TextInferenceMixin, BaseProvider):
    provider_id = "huggingface"

    def __init__(
        self,
        api_key: str,
        model: str = "tiiuae/falcon-7b-instruct",
        base_url: str = "https://api-inference.huggingface.co",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(timeout=timeout, client=client)
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings) -> Optional["HuggingFaceProvider"]:
        api_key = settings.secret("huggingface_api_key")
        if not api_key:
            return None
        return cls(
            api_key,
            model=settings.huggingface_model,
            base_url=settings.huggingface_base_url,
            timeout=settings.provider_timeout,
        )

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: int = 1000,
    ) -> str:
        inputs = f"{system}\n\n{prompt}" if system else prompt
        self._log_request("text-generation", model=self.model)
        try:
            data = await self._request(
                "POST",
                f"{self.base_url}/models/{self.model}",
                json={
                    "inputs": inputs,
                    "parameters": {
                        "max_new_tokens": max_tokens,
                        "temperature": self.temperature if temperature is None else temperature,
                        "top_p": 0.9,
                        "return_full_text": False,
                    },
                },
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except ProviderError as e:
            # Cold models answer 503 {"error": "Model ... is currently loading"}.
            if e.upstream_status == 503 and "loading" in e.message.lower():
                raise OverloadedError(
                    f"Model {self.model} is loading", provider=self.provider_id, upstream_status=503
                ) from e
            raise

        if isinstance(data, list) and data and isinstance(data[0], dict):
            data = data[0]
        if isinstance(data, dict) and "generated_text" in data:
            return data["generated_text"] or ""
        raise MalformedResponseError(
            "Hugging Face response has no generated_text", provider=self.provider_id
        )
