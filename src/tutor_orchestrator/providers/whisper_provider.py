"""
Speech-to-text through a locally installed ``whisper`` CLI.
"""

import asyncio
import tempfile
from pathlib import Path
from typing import Optional

import orjson

from ..exceptions import MalformedResponseError
from ..models import SpeechToTextPayload, Transcript
from .base import BaseProvider, SpeechToTextMixin
from .local_cli import is_installed, run_cli

_EXTENSIONS = {"audio/wav": ".wav", "audio/x-wav": ".wav", "audio/mpeg": ".mp3", "audio/webm": ".webm", "audio/ogg": ".ogg"}


class WhisperCLIProvider(SpeechToTextMixin, BaseProvider):
    provider_id = "whisper"

    def __init__(self, model: str = "base", executable: str = "whisper", timeout: float = 120.0):
        super().__init__(timeout=timeout)
        self.model = model
        self.executable = executable

    @classmethod
    def from_settings(cls, settings) -> Optional["WhisperCLIProvider"]:
        if not settings.whisper_enabled:
            return None
        return cls(model=settings.whisper_model, timeout=settings.speech_timeout)

    async def is_available(self) -> bool:
        return is_installed(self.executable)

    async def transcribe(self, payload: SpeechToTextPayload) -> Transcript:
        language = payload.language_code.split("-")[0]
        with tempfile.TemporaryDirectory(prefix="whisper-") as workdir:
            audio_path = Path(workdir) / f"input{_EXTENSIONS.get(payload.content_type, '.wav')}"
            await asyncio.to_thread(audio_path.write_bytes, payload.audio)

            await run_cli(
                [
                    self.executable,
                    str(audio_path),
                    "--model", self.model,
                    "--language", language,
                    "--output_format", "json",
                    "--output_dir", workdir,
                    "--fp16", "False",
                ],
                timeout=self.timeout,
                provider=self.provider_id,
            )

            result_path = audio_path.with_suffix(".json")
            if not result_path.exists():
                raise MalformedResponseError("whisper produced no JSON output", provider=self.provider_id)
            raw = await asyncio.to_thread(result_path.read_bytes)
            try:
                data = orjson.loads(raw)
            except orjson.JSONDecodeError as e:
                raise MalformedResponseError("whisper JSON output is invalid", provider=self.provider_id) from e

        text = data.get("text") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise MalformedResponseError("whisper output has no text", provider=self.provider_id)
        return Transcript(transcript=text.strip(), language=data.get("language") or payload.language_code)
