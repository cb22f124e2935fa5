"""
OpenAI provider: chat completions for the text capabilities, plus Whisper
transcription and TTS synthesis through the same SDK client.
"""

import time
from typing import Any, Dict, List, Optional

from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI

from ..exceptions import MalformedResponseError, ProviderError, ProviderTimeoutError, UnknownProviderError
from ..models import SpeechAudio, SpeechToTextPayload, TextToSpeechPayload, Transcript, Voice
from .base import BaseProvider, SpeechToTextMixin, TextInferenceMixin, TextToSpeechMixin
from .http import classify_status

_AUDIO_EXTENSIONS = {
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/mp4": "m4a",
    "audio/webm": "webm",
    "audio/ogg": "ogg",
    "audio/flac": "flac",
}

# Built-in TTS voices; each speaks every supported language.
OPENAI_VOICES = ("alloy", "echo", "fable", "onyx", "nova", "shimmer")


def map_openai_error(error: Exception, provider: str, timeout: float) -> ProviderError:
    """Translate an OpenAI SDK exception into the provider error taxonomy."""
    if isinstance(error, APITimeoutError):
        return ProviderTimeoutError(f"OpenAI request timeout after {timeout}s", provider=provider)
    if isinstance(error, APIConnectionError):
        return UnknownProviderError(f"Failed to connect to OpenAI API: {error}", provider=provider)
    if isinstance(error, APIStatusError):
        headers = error.response.headers if error.response is not None else None
        return classify_status(error.status_code, provider, str(error), headers)
    return UnknownProviderError(f"Unexpected error: {error}", provider=provider)


class OpenAIProvider(TextInferenceMixin, SpeechToTextMixin, TextToSpeechMixin, BaseProvider):
    """OpenAI provider implementation."""

    provider_id = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        stt_model: str = "whisper-1",
        tts_model: str = "tts-1",
        tts_voice: str = "alloy",
        timeout: float = 30.0,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        """
        Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key
            model: Chat model used for text capabilities
            stt_model: Transcription model
            tts_model: Speech synthesis model
            tts_voice: Default synthesis voice
            timeout: Request timeout in seconds
            client: Pre-built SDK client (tests)
        """
        super().__init__(timeout=timeout)
        self.model = model
        self.stt_model = stt_model
        self.tts_model = tts_model
        self.tts_voice = tts_voice
        self.client = client or AsyncOpenAI(
            api_key=api_key, timeout=timeout, max_retries=0  # We handle retries ourselves
        )

    @classmethod
    def from_settings(cls, settings) -> Optional["OpenAIProvider"]:
        api_key = settings.secret("openai_api_key")
        if not api_key:
            return None
        return cls(
            api_key,
            model=settings.openai_model,
            stt_model=settings.openai_stt_model,
            tts_model=settings.openai_tts_model,
            tts_voice=settings.openai_tts_voice,
            timeout=settings.provider_timeout,
        )

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: int = 2048,
    ) -> str:
        messages: List[Dict[str, Any]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        self._log_request("chat.completions", model=self.model)
        start_time = time.time()
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature if temperature is None else temperature,
                max_tokens=max_tokens,
            )
        except Exception as e:
            error = map_openai_error(e, self.provider_id, self.timeout)
            self._log_error(error)
            raise error from e

        self._log_response(self.model, duration=time.time() - start_time)
        if not response.choices:
            raise MalformedResponseError("OpenAI returned no choices", provider=self.provider_id)
        return response.choices[0].message.content or ""

    async def transcribe(self, payload: SpeechToTextPayload) -> Transcript:
        extension = _AUDIO_EXTENSIONS.get(payload.content_type, "wav")
        language = payload.language_code.split("-")[0]
        self._log_request("audio.transcriptions", model=self.stt_model)
        try:
            result = await self.client.audio.transcriptions.create(
                model=self.stt_model,
                file=(f"audio.{extension}", payload.audio, payload.content_type),
                language=language,
            )
        except Exception as e:
            error = map_openai_error(e, self.provider_id, self.timeout)
            self._log_error(error)
            raise error from e

        text = getattr(result, "text", None)
        if text is None:
            raise MalformedResponseError("OpenAI transcription carried no text", provider=self.provider_id)
        return Transcript(transcript=text.strip(), language=payload.language_code)

    def available_voices(self, language_code: Optional[str] = None) -> List[Voice]:
        return [
            Voice(name=name, language=language_code or "multilingual", description=f"OpenAI {self.tts_model} voice")
            for name in OPENAI_VOICES
        ]

    async def synthesize(self, payload: TextToSpeechPayload) -> SpeechAudio:
        self._log_request("audio.speech", model=self.tts_model)
        try:
            response = await self.client.audio.speech.create(
                model=self.tts_model,
                voice=payload.voice or self.tts_voice,
                input=payload.text,
                response_format="mp3",
            )
        except Exception as e:
            error = map_openai_error(e, self.provider_id, self.timeout)
            self._log_error(error)
            raise error from e

        audio = response.content
        if not audio:
            raise MalformedResponseError("OpenAI returned empty audio", provider=self.provider_id)
        return SpeechAudio(audio=audio, content_type="audio/mpeg")

    async def aclose(self) -> None:
        await self.client.close()
        await super().aclose()
