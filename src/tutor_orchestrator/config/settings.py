"""Settings configuration"""
from functools import lru_cache
from typing import Any, Dict, Optional

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Orchestrator settings.

    Credentials decide which providers exist; everything else is a per-provider
    tunable. The object is read once at startup and handed to the registry.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    # Application
    app_name: str = "AI Tutor Orchestrator"
    version: str = "0.3.0"
    environment: str = "development"
    debug: bool = False
    api_prefix: str = "/api/v1"
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # Credentials / toggles
    openai_api_key: Optional[SecretStr] = None
    openrouter_api_key: Optional[SecretStr] = None
    mistral_api_key: Optional[SecretStr] = None
    gemini_api_key: Optional[SecretStr] = None
    anthropic_api_key: Optional[SecretStr] = None
    huggingface_api_key: Optional[SecretStr] = None
    judge0_api_key: Optional[SecretStr] = None
    ollama_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("ollama_url", "OLLAMA_URL", "OLLAMA_BASE_URL"),
    )
    piston_enabled: bool = True
    codex_enabled: bool = False
    whisper_enabled: bool = False
    coqui_enabled: bool = False

    # Models
    openai_model: str = "gpt-4o-mini"
    openai_stt_model: str = "whisper-1"
    openai_tts_model: str = "tts-1"
    openai_tts_voice: str = "alloy"
    openrouter_model: str = "openai/gpt-4o-mini"
    mistral_model: str = "mistral-small-latest"
    gemini_model: str = "gemini-2.0-flash"
    anthropic_model: str = "claude-3-haiku-20240307"
    huggingface_model: str = "tiiuae/falcon-7b-instruct"
    ollama_model: str = "llama3"
    whisper_model: str = "base"
    coqui_model: str = "tts_models/en/ljspeech/tacotron2-DDC"

    # Endpoints
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_site_url: Optional[str] = None
    openrouter_app_name: Optional[str] = None
    mistral_base_url: str = "https://api.mistral.ai/v1"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    huggingface_base_url: str = "https://api-inference.huggingface.co"
    piston_api_url: str = "https://emkc.org/api/v2/piston"
    judge0_api_url: str = "https://judge0-ce.p.rapidapi.com"
    judge0_api_host: str = "judge0-ce.p.rapidapi.com"
    codex_api_url: str = "https://api.codex.jaagrav.in"

    # Timeouts (seconds)
    provider_timeout: float = Field(default=30.0, gt=0)
    execution_timeout: float = Field(default=10.0, gt=0)
    speech_timeout: float = Field(default=120.0, gt=0)
    request_deadline: float = Field(default=60.0, gt=0)

    # Polling
    judge0_poll_interval: float = Field(default=0.1, gt=0)
    judge0_poll_deadline: float = Field(default=5.0, gt=0)

    # Retry
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_overloaded_delay: float = Field(default=2.0, ge=0)
    retry_rate_limited_delay: float = Field(default=5.0, ge=0)
    retry_default_delay: float = Field(default=1.0, ge=0)
    retry_multiplier: float = Field(default=2.0, ge=1)
    retry_max_delay: float = Field(default=30.0, ge=0)
    # {"gemini": {"max_attempts": 5, "overloaded_delay": 1.0}}
    retry_policies: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    @field_validator("ollama_url", mode="before")
    @classmethod
    def blank_url_is_unset(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("log_level")
    @classmethod
    def upper_log_level(cls, v: str) -> str:
        return v.upper()

    # Properties
    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def secret(self, name: str) -> Optional[str]:
        """Plain value of a credential field, or None when unset or blank."""
        value = getattr(self, name)
        if value is None:
            return None
        raw = value.get_secret_value() if isinstance(value, SecretStr) else str(value)
        return raw.strip() or None


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
