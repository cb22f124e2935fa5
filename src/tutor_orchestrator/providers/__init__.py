from .anthropic_provider import AnthropicProvider
from .base import (
    BaseProvider,
    CodeExecutionMixin,
    SpeechToTextMixin,
    TextInferenceMixin,
    TextToSpeechMixin,
)
from .codex_provider import CodexProvider
from .coqui_provider import CoquiTTSProvider
from .gemini_provider import GeminiProvider
from .huggingface_provider import HuggingFaceProvider
from .judge0_provider import Judge0Provider
from .ollama_provider import OllamaProvider
from .openai_compatible import MistralProvider, OpenRouterProvider
from .openai_provider import OpenAIProvider
from .piston_provider import PistonProvider
from .whisper_provider import WhisperCLIProvider

# Registration order; used after the per-capability precedence lists.
PROVIDER_CLASSES = (
    OpenAIProvider,
    OpenRouterProvider,
    GeminiProvider,
    AnthropicProvider,
    MistralProvider,
    HuggingFaceProvider,
    OllamaProvider,
    Judge0Provider,
    PistonProvider,
    CodexProvider,
    WhisperCLIProvider,
    CoquiTTSProvider,
)

__all__ = [
    "AnthropicProvider",
    "BaseProvider",
    "CodeExecutionMixin",
    "CodexProvider",
    "CoquiTTSProvider",
    "GeminiProvider",
    "HuggingFaceProvider",
    "Judge0Provider",
    "MistralProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "OpenRouterProvider",
    "PistonProvider",
    "PROVIDER_CLASSES",
    "SpeechToTextMixin",
    "TextInferenceMixin",
    "TextToSpeechMixin",
    "WhisperCLIProvider",
]
