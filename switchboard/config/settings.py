"""Configuration management using Pydantic Settings."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from switchboard.models.types import ModelConfig, ProviderKind


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_ignore_empty=True,
        extra="ignore",
    )

    # Application Settings
    environment: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "text"] = "text"

    # Session defaults
    provider: ProviderKind = ProviderKind.OLLAMA
    model: str | None = None
    auto_switch_enabled: bool = True
    classifier_strategy: Literal["model", "heuristic"] = "model"

    # Timeouts (seconds)
    liveness_timeout: float = Field(default=5.0, gt=0, le=60)
    discovery_timeout: float = Field(default=5.0, gt=0, le=60)
    request_timeout: float = Field(default=120.0, gt=0, le=3600)
    max_retries: int = Field(default=2, ge=0, le=10)

    # Hosted Google Settings
    gemini_api_key: str | None = None
    google_api_key: str | None = None
    google_cloud_project: str | None = None
    google_cloud_location: str | None = None
    google_oauth_access_token: str | None = Field(
        default=None,
        description="Bearer token for the OAuth and cloud-shell providers",
    )
    gemini_model: str = "gemini-2.5-pro"
    gemini_model_weak: str | None = None
    gemini_model_strong: str | None = None

    # OpenAI-compatible Settings
    openai_api_key: str | None = None
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="OpenAI API base URL or compatible endpoint",
    )
    openai_model: str | None = None
    openai_model_weak: str = "mistralai/Mistral-7B-Instruct-v0.2"
    openai_model_strong: str = "anthropic/claude-3.5-sonnet"

    # Ollama Settings
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3"
    ollama_model_weak: str = "llama3.2"
    ollama_model_strong: str = "llama3.1:70b"

    # LM Studio Settings
    lm_studio_base_url: str = "http://localhost:1234"
    lm_studio_model: str = "local-model"
    lm_studio_model_weak: str = "phi-3-mini"
    lm_studio_model_strong: str = "mixtral-8x7b"

    def model_configs(self) -> dict[ProviderKind, ModelConfig]:
        """Build the weak/strong model pair for every configured provider."""
        configs = {
            ProviderKind.OLLAMA: ModelConfig(
                weak=self.ollama_model_weak,
                strong=self.ollama_model_strong,
            ),
            ProviderKind.LM_STUDIO: ModelConfig(
                weak=self.lm_studio_model_weak,
                strong=self.lm_studio_model_strong,
            ),
            ProviderKind.OPENAI: ModelConfig(
                weak=self.openai_model_weak,
                strong=self.openai_model_strong,
            ),
        }
        if self.gemini_model_weak and self.gemini_model_strong:
            configs[ProviderKind.GEMINI_API_KEY] = ModelConfig(
                weak=self.gemini_model_weak,
                strong=self.gemini_model_strong,
            )
        return configs

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment == "development"


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment."""
    global _settings
    _settings = Settings()
    return _settings
