"""Application configuration using pydantic-settings.

Provides type-safe, validated configuration from environment variables
with sensible defaults for development.
"""

from functools import lru_cache
from typing import Any, Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========== Default backend ==========
    default_provider: str = Field(default="default", description="Registered backend name")
    default_model: str = ""
    system_prompt: str = "You are a helpful chatbot."
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=256, ge=1)

    # ========== Provider credentials ==========
    openai_api_key: str = Field(default="", description="OpenAI API Key")
    anthropic_api_key: str = Field(default="", description="Anthropic API Key")
    gemini_api_key: str = Field(default="", description="Google Gemini API Key")
    xai_api_key: str = Field(default="", description="xAI API Key")
    deepseek_api_key: str = Field(default="", description="DeepSeek API Key")
    meta_api_key: str = Field(default="", description="Meta Llama API Key")
    ollama_api_key: str = Field(default="", description="Optional Ollama bearer token")

    # ========== Provider endpoints ==========
    anthropic_endpoint: str = "https://api.anthropic.com/v1/messages"
    xai_endpoint: str = "https://api.x.ai/v1/chat/completions"
    deepseek_endpoint: str = "https://api.deepseek.com/v1/chat/completions"
    meta_endpoint: str = "https://api.meta.ai/v1/chat/completions"
    ollama_base_url: str = Field(default="http://localhost:11434", description="Ollama server URL")
    backend_timeout: float = Field(default=60.0, gt=0)

    # ========== Response cache ==========
    cache_enabled: bool = Field(default=True)
    cache_backend: Literal["memory", "file", "redis", "none"] = "memory"
    cache_ttl: int = Field(default=3600, ge=0, description="Seconds, 0 = never expire")
    cache_dir: str = Field(default="/tmp/chatrelay_cache")

    # ========== Conversation memory ==========
    memory_enabled: bool = Field(default=True)
    memory_storage: Literal["memory", "file", "redis", "database"] = "memory"
    memory_max_history: int = Field(default=20, ge=0, description="0 = unbounded")
    memory_dir: str = Field(default="/tmp/chatrelay_conversations")
    memory_redis_prefix: str = "chatbot:memory:"
    memory_ttl: int = Field(default=86400, ge=0)
    database_url: str = Field(
        default="sqlite+aiosqlite:///./chatrelay.db",
        description="Async SQLAlchemy connection string",
    )
    db_echo: bool = Field(default=False, description="Echo SQL queries")

    # ========== Throttling ==========
    rate_limit_enabled: bool = Field(default=True)
    rate_limit_backend: Literal["memory", "redis"] = "memory"
    rate_limit_max: int = Field(default=10, ge=1)
    rate_limit_window: int = Field(default=60, ge=1)

    # ========== Redis (Upstash) ==========
    upstash_redis_rest_url: str = Field(default="", description="Upstash Redis REST URL")
    upstash_redis_rest_token: str = Field(default="", description="Upstash Redis REST Token")

    # ========== Message filtering ==========
    filter_instructions: list[str] = Field(
        default_factory=lambda: [
            "Avoid sharing external links.",
            "Refrain from quoting controversial sources.",
            "Use appropriate language.",
            "Reject harmful or dangerous requests.",
            "De-escalate potential conflicts and calm aggressive or rude users.",
        ]
    )
    filter_profanities: list[str] = Field(default_factory=list)
    filter_aggression_patterns: list[str] = Field(
        default_factory=lambda: ["hate", "kill", "stupid", "idiot"]
    )

    # ========== CORS ==========
    cors_origins_str: str = Field(
        default="http://localhost:5173,http://localhost:3000",
        alias="CORS_ORIGINS",
        description="Comma-separated CORS origins",
    )

    # ========== Application ==========
    app_name: str = "chatrelay"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    debug: bool = Field(default=False)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # ========== Computed Properties ==========
    @computed_field
    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    @computed_field
    @property
    def redis_available(self) -> bool:
        """Check if Redis credentials are configured."""
        return bool(self.upstash_redis_rest_url and self.upstash_redis_rest_token)

    def chat_defaults(self) -> dict[str, Any]:
        """Instance-level context merged under every orchestrator call."""
        defaults: dict[str, Any] = {
            "prompt": self.system_prompt,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "cache_enabled": self.cache_enabled,
            "cache_ttl": self.cache_ttl,
        }
        if self.default_model:
            defaults["model"] = self.default_model
        if self.rate_limit_enabled:
            defaults["rate_limit_max"] = self.rate_limit_max
            defaults["rate_limit_window"] = self.rate_limit_window
        return defaults


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
