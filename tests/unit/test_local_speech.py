"""Tests for the local whisper and coqui CLI providers."""

import asyncio
import json
import sys
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from tutor_orchestrator.exceptions import (
    MalformedResponseError,
    NotFoundError,
    ProviderTimeoutError,
    UnknownProviderError,
)
from tutor_orchestrator.models import SpeechToTextPayload, TextToSpeechPayload
from tutor_orchestrator.providers import CoquiTTSProvider, WhisperCLIProvider
from tutor_orchestrator.providers.local_cli import is_installed, run_cli


def option(args, name):
    return args[args.index(name) + 1]


@pytest.mark.asyncio
class TestRunCli:
    async def test_missing_executable(self):
        with pytest.raises(NotFoundError):
            await run_cli(["definitely-not-an-installed-tool"], timeout=1, provider="whisper")

    async def test_captures_output(self):
        out, err = await run_cli(
            [sys.executable, "-c", "import sys; print('ok'); print('warn', file=sys.stderr)"],
            timeout=10,
            provider="coqui",
        )
        assert out.strip() == "ok"
        assert err.strip() == "warn"

    async def test_non_zero_exit(self):
        with pytest.raises(UnknownProviderError) as exc_info:
            await run_cli(
                [sys.executable, "-c", "import sys; sys.exit(3)"], timeout=10, provider="coqui"
            )
        assert exc_info.value.details == {"returncode": 3}

    async def test_timeout_kills_process(self):
        with pytest.raises(ProviderTimeoutError):
            await run_cli([sys.executable, "-c", "import time; time.sleep(10)"], timeout=0.2, provider="whisper")


@pytest.mark.asyncio
class TestWhisperCLIProvider:
    async def test_transcribe(self):
        async def fake_whisper(args, timeout, provider):
            audio_path = Path(args[1])
            assert audio_path.read_bytes() == b"RIFFdata"
            output_dir = Path(option(args, "--output_dir"))
            (output_dir / f"{audio_path.stem}.json").write_text(json.dumps({"text": " Hola mundo ", "language": "es"}))
            return "", ""

        provider = WhisperCLIProvider(model="small")
        with patch("tutor_orchestrator.providers.whisper_provider.run_cli", AsyncMock(side_effect=fake_whisper)) as run:
            transcript = await provider.transcribe(SpeechToTextPayload(audio=b"RIFFdata", language_code="es-ES"))

        assert transcript.transcript == "Hola mundo"
        assert transcript.language == "es"
        args = run.await_args.args[0]
        assert option(args, "--model") == "small"
        assert option(args, "--language") == "es"
        assert option(args, "--output_format") == "json"

    async def test_missing_output(self):
        provider = WhisperCLIProvider()
        with patch("tutor_orchestrator.providers.whisper_provider.run_cli", AsyncMock(return_value=("", ""))):
            with pytest.raises(MalformedResponseError):
                await provider.transcribe(SpeechToTextPayload(audio=b"RIFFdata"))


@pytest.mark.asyncio
class TestCoquiTTSProvider:
    async def test_synthesize(self):
        async def fake_tts(args, timeout, provider):
            Path(option(args, "--out_path")).write_bytes(b"RIFF-wav")
            return "", ""

        provider = CoquiTTSProvider(model="tts_models/en/vctk/vits")
        with patch("tutor_orchestrator.providers.coqui_provider.run_cli", AsyncMock(side_effect=fake_tts)) as run:
            speech = await provider.synthesize(TextToSpeechPayload(text="Hello", voice="p225"))

        assert speech.audio == b"RIFF-wav"
        assert speech.content_type == "audio/wav"
        args = run.await_args.args[0]
        assert option(args, "--text") == "Hello"
        assert option(args, "--model_name") == "tts_models/en/vctk/vits"
        assert option(args, "--speaker_idx") == "p225"

    async def test_empty_audio(self):
        async def fake_tts(args, timeout, provider):
            Path(option(args, "--out_path")).write_bytes(b"")
            return "", ""

        with patch("tutor_orchestrator.providers.coqui_provider.run_cli", AsyncMock(side_effect=fake_tts)):
            with pytest.raises(MalformedResponseError):
                await CoquiTTSProvider().synthesize(TextToSpeechPayload(text="Hello"))


@pytest.fixture
def offloaded():
    """Names of the callables sent to a worker thread through ``asyncio.to_thread``."""
    real_to_thread = asyncio.to_thread
    names = []

    async def recording_to_thread(func, *args, **kwargs):
        names.append(func.__name__)
        return await real_to_thread(func, *args, **kwargs)

    with patch("asyncio.to_thread", recording_to_thread):
        yield names


@pytest.mark.asyncio
class TestAudioFileIO:
    async def test_whisper_reads_and_writes_in_a_thread(self, offloaded):
        async def fake_whisper(args, timeout, provider):
            audio_path = Path(args[1])
            (audio_path.parent / f"{audio_path.stem}.json").write_text(json.dumps({"text": "hi"}))
            return "", ""

        with patch("tutor_orchestrator.providers.whisper_provider.run_cli", AsyncMock(side_effect=fake_whisper)):
            await WhisperCLIProvider().transcribe(SpeechToTextPayload(audio=b"RIFFdata"))

        assert offloaded == ["write_bytes", "read_bytes"]

    async def test_coqui_reads_in_a_thread(self, offloaded):
        async def fake_tts(args, timeout, provider):
            Path(option(args, "--out_path")).write_bytes(b"RIFF-wav")
            return "", ""

        with patch("tutor_orchestrator.providers.coqui_provider.run_cli", AsyncMock(side_effect=fake_tts)):
            await CoquiTTSProvider().synthesize(TextToSpeechPayload(text="Hello"))

        assert offloaded == ["_read_audio"]


@pytest.mark.asyncio
class TestLocalAvailability:
    async def test_installed_executable(self):
        assert is_installed(sys.executable)
        assert await WhisperCLIProvider(executable=sys.executable).is_available() is True
        assert await CoquiTTSProvider(executable=sys.executable).is_available() is True

    async def test_missing_executable(self):
        assert await WhisperCLIProvider(executable="definitely-not-whisper").is_available() is False
        assert await CoquiTTSProvider(executable="definitely-not-tts").is_available() is False

    async def test_coqui_voices(self):
        voices = CoquiTTSProvider(model="tts_models/en/vctk/vits").available_voices("en-US")
        assert [(v.name, v.language) for v in voices] == [("default", "en-US")]
        assert "tts_models/en/vctk/vits" in voices[0].description
