"""
Text-to-speech through a locally installed coqui ``tts`` CLI.
"""

import asyncio
import tempfile
from pathlib import Path
from typing import List, Optional

from ..exceptions import MalformedResponseError
from ..models import SpeechAudio, TextToSpeechPayload, Voice
from .base import BaseProvider, TextToSpeechMixin
from .local_cli import is_installed, run_cli


def _read_audio(path: Path) -> bytes:
    if not path.exists() or path.stat().st_size == 0:
        return b""
    return path.read_bytes()


class CoquiTTSProvider(TextToSpeechMixin, BaseProvider):
    provider_id = "coqui"

    def __init__(
        self,
        model: str = "tts_models/en/ljspeech/tacotron2-DDC",
        executable: str = "tts",
        timeout: float = 120.0,
    ):
        super().__init__(timeout=timeout)
        self.model = model
        self.executable = executable

    @classmethod
    def from_settings(cls, settings) -> Optional["CoquiTTSProvider"]:
        if not settings.coqui_enabled:
            return None
        return cls(model=settings.coqui_model, timeout=settings.speech_timeout)

    async def is_available(self) -> bool:
        return is_installed(self.executable)

    def available_voices(self, language_code: Optional[str] = None) -> List[Voice]:
        # Voices are model-specific; single-speaker models expose one.
        return [Voice(name="default", language="en-US", description=f"Default voice of {self.model}")]

    async def synthesize(self, payload: TextToSpeechPayload) -> SpeechAudio:
        with tempfile.TemporaryDirectory(prefix="coqui-") as workdir:
            out_path = Path(workdir) / "speech.wav"
            args = [
                self.executable,
                "--text", payload.text,
                "--out_path", str(out_path),
                "--model_name", self.model,
            ]
            if payload.voice:
                args += ["--speaker_idx", payload.voice]

            await run_cli(args, timeout=self.timeout, provider=self.provider_id)
            audio = await asyncio.to_thread(_read_audio, out_path)

        if not audio:
            raise MalformedResponseError("tts produced no audio", provider=self.provider_id)
        return SpeechAudio(audio=audio, content_type="audio/wav")
