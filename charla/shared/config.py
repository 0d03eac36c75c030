"""
Configuration management for Charla.
Loads from config/charla.yaml and environment variables.
"""

from pathlib import Path
from typing import Optional, Dict, Any
import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, model_validator

from charla.shared.exceptions import ConfigurationError


class LLMConfig(BaseSettings):
    """LLM provider configuration."""
    provider: str = Field(default="openai")  # openai, anthropic
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    anthropic_api_key: Optional[str] = Field(default=None, alias="ANTHROPIC_API_KEY")
    default_model: str = Field(default="gpt-4o-mini")
    temperature: float = Field(default=0.3)
    max_tokens: int = Field(default=600)
    timeout_seconds: float = Field(default=20.0)

    model_config = SettingsConfigDict(env_prefix="LLM_", extra="ignore", populate_by_name=True)


class EngineConfig(BaseSettings):
    """Turn engine configuration."""
    transcript_window: int = Field(default=12, ge=1)
    max_retry_attempts: int = Field(default=3, ge=1)
    narrated_tools: list[str] = Field(
        default_factory=lambda: ["start_quiz", "grade_quiz", "mark_complete"]
    )

    model_config = SettingsConfigDict(env_prefix="ENGINE_", extra="ignore")


class StorageConfig(BaseSettings):
    """Session storage configuration."""
    backend: str = Field(default="sqlite")  # sqlite, memory
    sqlite_path: Path = Field(default=Path("data/sessions.sqlite"))

    model_config = SettingsConfigDict(env_prefix="STORAGE_", extra="ignore")


class ContentConfig(BaseSettings):
    """Content pack location."""
    content_dir: Path = Field(default=Path("content"))

    model_config = SettingsConfigDict(env_prefix="CONTENT_", extra="ignore")


class TTSConfig(BaseSettings):
    """Inworld text-to-speech configuration."""
    api_key: Optional[str] = Field(default=None, alias="INWORLD_API_KEY")
    voice: Optional[str] = Field(default=None, alias="INWORLD_TTS_VOICE")
    url: str = Field(default="https://api.inworld.ai/v1/tts")
    max_text_length: int = Field(default=1000)
    timeout_seconds: float = Field(default=4.0)

    model_config = SettingsConfigDict(env_prefix="TTS_", extra="ignore", populate_by_name=True)


class STTConfig(BaseSettings):
    """Speech-to-text configuration."""
    model: str = Field(default="gpt-4o-mini-transcribe")
    max_audio_mb: int = Field(default=10)
    language: str = Field(default="es")
    timeout_seconds: float = Field(default=30.0)

    model_config = SettingsConfigDict(env_prefix="STT_", extra="ignore")


class ApiConfig(BaseSettings):
    """API server configuration."""
    host: str = Field(default="0.0.0.0", alias="API_HOST")
    port: int = Field(default=8787, alias="API_PORT")
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:5173"])
    rate_limit_requests_per_minute: int = Field(default=60, alias="API_RATE_LIMIT_RPM")

    model_config = SettingsConfigDict(env_prefix="API_", extra="ignore", populate_by_name=True)


class CharlaSettings(BaseSettings):
    """Main Charla configuration."""
    env: str = Field(default="dev", alias="CHARLA_ENV")  # dev, test, prod
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: Optional[Path] = Field(default=None, alias="LOG_FILE")

    # Sub-configurations
    api: ApiConfig = Field(default_factory=ApiConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    content: ContentConfig = Field(default_factory=ContentConfig)
    tts: TTSConfig = Field(default_factory=TTSConfig)
    stt: STTConfig = Field(default_factory=STTConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
        populate_by_name=True,
    )

    @model_validator(mode="after")
    def _check_storage_backend(self) -> "CharlaSettings":
        # The in-memory store does not serialize writes per session.
        if self.storage.backend == "memory" and self.env == "prod":
            raise ConfigurationError(
                "storage.backend=memory is only allowed in dev/test environments"
            )
        if self.storage.backend not in ("sqlite", "memory"):
            raise ConfigurationError(f"Unsupported storage backend: {self.storage.backend}")
        return self

    @classmethod
    def load_from_yaml(cls, config_path: Optional[Path] = None) -> "CharlaSettings":
        """Load settings from YAML file and merge with environment variables."""
        if config_path is None:
            config_path = Path("config/charla.yaml")

        config_dict: Dict[str, Any] = {}

        if config_path.exists():
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_data = yaml.safe_load(f) or {}
                config_dict = yaml_data.get("charla", {})

        # Flatten api.rate_limit.requests_per_minute if present
        if "api" in config_dict and isinstance(config_dict["api"], dict):
            api_cfg = dict(config_dict["api"])
            rate_limit = api_cfg.pop("rate_limit", None)
            if isinstance(rate_limit, dict) and "requests_per_minute" in rate_limit:
                api_cfg["rate_limit_requests_per_minute"] = rate_limit["requests_per_minute"]
            config_dict["api"] = api_cfg

        # YAML values are defaults; anything set in the environment wins.
        for section, section_cls in _SECTIONS.items():
            if isinstance(config_dict.get(section), dict):
                config_dict[section] = section_cls(**_without_env_set(section_cls, config_dict[section]))

        top_level = {k: v for k, v in config_dict.items() if k not in _SECTIONS}
        sections = {k: v for k, v in config_dict.items() if k in _SECTIONS}
        return cls(**_without_env_set(cls, top_level), **sections)


_SECTIONS: Dict[str, type] = {
    "api": ApiConfig,
    "llm": LLMConfig,
    "engine": EngineConfig,
    "storage": StorageConfig,
    "content": ContentConfig,
    "tts": TTSConfig,
    "stt": STTConfig,
}


def _without_env_set(settings_cls: type, values: Dict[str, Any]) -> Dict[str, Any]:
    """Drop the keys whose field the environment already sets."""
    from_env = settings_cls()
    return {k: v for k, v in values.items() if k not in from_env.model_fields_set}


# Global settings instance
_settings: Optional[CharlaSettings] = None


def get_settings() -> CharlaSettings:
    """Get or create global settings instance."""
    global _settings
    if _settings is None:
        _settings = CharlaSettings.load_from_yaml()
    return _settings


# Alias for convenience
settings = get_settings()
