"""
Application Settings - Pydantic Settings for configuration management.

Supports environment variables and .env file loading.
"""

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import BeforeValidator, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


def normalize_to_lowercase(v: str) -> str:
    """Normalize string to lowercase."""
    if isinstance(v, str):
        return v.lower()
    return v


class LLMSettings(BaseSettings):
    """Generative model settings."""

    model_config = SettingsConfigDict(env_prefix="LLM_")

    provider: Annotated[
        Literal["local", "openai", "anthropic"],
        BeforeValidator(normalize_to_lowercase),
    ] = Field(default="local", description="Model provider")

    # Local LLM settings (Ollama)
    local_llm_base_url: str = Field(default="http://ollama:11434", description="Ollama base URL")
    local_llm_model: str = Field(default="llama3.2:latest", description="Ollama model name")

    openai_api_key: SecretStr | None = Field(default=None, description="OpenAI API key")
    openai_model: str = Field(default="gpt-4o-mini", description="OpenAI model name")
    anthropic_api_key: SecretStr | None = Field(default=None, description="Anthropic API key")
    anthropic_model: str = Field(
        default="claude-3-5-sonnet-20241022", description="Anthropic model name"
    )

    # Decoding parameters (low temperature for factual answers)
    temperature: float = Field(default=0.1, description="LLM temperature")
    scorecard_temperature: float = Field(
        default=0.0, description="Temperature forced for strict JSON scorecard prompts"
    )
    top_k: int = Field(default=10, description="Top-k sampling")
    top_p: float = Field(default=0.3, description="Nucleus sampling threshold")
    max_tokens: int = Field(default=2048, description="Max tokens for response")
    seed: int = Field(default=42, description="Determinism seed")

    timeout_seconds: float = Field(
        default=120.0, description="Ceiling for a single model completion"
    )


class MetricsSettings(BaseSettings):
    """Authoritative metrics provider settings."""

    model_config = SettingsConfigDict(env_prefix="METRICS_")

    base_url: str = Field(default="http://localhost:5002", description="Scorecard API base URL")
    timeout_seconds: float = Field(default=10.0, description="Request timeout in seconds")
    service_token: SecretStr | None = Field(
        default=None, description="Bearer token for internal scorecard access"
    )
    user_agent: str = Field(default="AI-Agent-Scorecard-Access/2.0", description="User-Agent header")


class ValidationSettings(BaseSettings):
    """Response validation settings."""

    model_config = SettingsConfigDict(env_prefix="VALIDATION_")

    penalty_low: float = Field(default=0.05, description="Confidence penalty per low mismatch")
    penalty_medium: float = Field(default=0.15, description="Confidence penalty per medium mismatch")
    penalty_high: float = Field(default=0.3, description="Confidence penalty per high mismatch")
    medium_threshold_percent: float = Field(default=5.0, description="Relative diff for medium severity")
    high_threshold_percent: float = Field(default=15.0, description="Relative diff for high severity")
    enforcement_mode: Literal["strict", "advisory"] = Field(
        default="strict", description="Correction policy for non-admin users"
    )
    admin_override_enabled: bool = Field(
        default=True, description="Allow admin responses to bypass correction"
    )


class AuditSettings(BaseSettings):
    """Validation audit log settings."""

    model_config = SettingsConfigDict(env_prefix="AUDIT_")

    backend: Literal["memory", "file"] = Field(default="memory", description="Audit store backend")
    file_path: str = Field(
        default="data/audit/ai_validation_audit_log.jsonl", description="JSON-lines audit file"
    )
    write_timeout_seconds: float = Field(default=5.0, description="Timeout for one audit write")


class DirectorySettings(BaseSettings):
    """Entity directory settings."""

    model_config = SettingsConfigDict(env_prefix="DIRECTORY_")

    file_path: str | None = Field(
        default=None, description="JSON snapshot of people, stores and markets"
    )


class ComposerSettings(BaseSettings):
    """Prompt composition limits."""

    model_config = SettingsConfigDict(env_prefix="COMPOSER_")

    max_prompt_chars: int = Field(default=24000, description="Hard cap on rendered prompt length")
    max_goals: int = Field(default=10, description="Max goals listed in context")
    max_peers: int = Field(default=5, description="Max peers listed in context")
    agent_settings_path: str | None = Field(
        default=None, description="JSON file holding administrator-edited prompts and generation"
    )


class CacheSettings(BaseSettings):
    """Caching configuration settings."""

    model_config = SettingsConfigDict(env_prefix="CACHE_")

    settings_ttl: int = Field(default=300, description="Prompt/agent settings TTL in seconds")


class ObservabilitySettings(BaseSettings):
    """Observability settings."""

    model_config = SettingsConfigDict(env_prefix="OBSERVABILITY_")

    log_format: Literal["json", "console"] = Field(
        default="json", description="Log format (json for production, console for development)"
    )
    log_text_max_chars: int = Field(
        default=200, description="Clip length for questions, prompts and model output in logs"
    )


class APISettings(BaseSettings):
    """FastAPI server settings."""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = Field(default="0.0.0.0", description="API host")  # nosec B104 - intentional for container deployment
    port: int = Field(default=8000, description="API port")
    debug: bool = Field(default=False, description="Debug mode")
    cors_origins: list[str] = Field(default=["*"], description="CORS allowed origins")


class Settings(BaseSettings):
    """Main application settings aggregating all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = Field(default="Guarded Query Answering", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )

    llm: LLMSettings = Field(default_factory=LLMSettings)
    metrics: MetricsSettings = Field(default_factory=MetricsSettings)
    validation: ValidationSettings = Field(default_factory=ValidationSettings)
    audit: AuditSettings = Field(default_factory=AuditSettings)
    directory: DirectorySettings = Field(default_factory=DirectorySettings)
    composer: ComposerSettings = Field(default_factory=ComposerSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)
    api: APISettings = Field(default_factory=APISettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
