"""
Application Configuration Module

Manages all environment variables and application settings using Pydantic.
Supports multiple environments (development, staging, production).

Environment variables are loaded from .env file or system environment.
Cache policy values are frozen into an EngineConfig at startup so the
orchestrator never reads process-wide mutable state.
"""

from pydantic_settings import BaseSettings
from pydantic import Field
from typing import List, Optional
from functools import lru_cache
from pathlib import Path
from dataclasses import dataclass
import logging


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All sensitive values (API keys, credentials) should be set via
    environment variables, never hardcoded.
    """

    # Application Settings
    APP_NAME: str = "Veritas"
    APP_ENV: str = Field(default="development", description="development|staging|production")
    APP_HOST: str = Field(default="0.0.0.0", description="Server host")
    APP_PORT: int = Field(default=8010, description="Server port")
    APP_RELOAD: bool = Field(default=True, description="Enable auto-reload in development")
    DEBUG: bool = Field(default=True, description="Enable debug mode")
    LOG_LEVEL: str = Field(default="INFO", description="Root log level")

    # API Keys - NEVER commit actual values
    OPENROUTER_API_KEY: str = Field(default="", description="OpenRouter API key for OpenAI-compatible models")
    GOOGLE_API_KEY: str = Field(default="", description="Google API key for Gemini models")

    # OpenRouter Configuration
    OPENROUTER_BASE_URL: str = Field(
        default="https://openrouter.ai/api/v1",
        description="OpenAI-compatible chat completions endpoint"
    )
    OPENROUTER_REFERER: str = Field(default="https://ingenium-veritas.com", description="HTTP-Referer header")
    OPENROUTER_TITLE: str = Field(default="Ingenium Veritas", description="X-Title header")

    # LLM Configuration
    LLM_MODEL: str = Field(default="DEFAULT", description="Registry key or raw model name")
    LLM_TEMPERATURE: float = Field(default=0.2, description="LLM temperature for answers")
    LLM_MAX_TOKENS: int = Field(default=1024, description="Max tokens for LLM answer")
    LLM_TIMEOUT_SECONDS: float = Field(default=60.0, description="Upper bound on a single provider call")

    # Cache Policy
    PROMOTION_THRESHOLD: int = Field(default=5, description="Promote once usage count exceeds this")
    TOP_QUERIES_LIMIT: int = Field(default=10, description="Default size of the daily top list")
    MAX_QUERY_KEY_LENGTH: int = Field(default=100, description="Truncation length of normalized queries")
    FOLLOW_UP_CONTEXT_MESSAGES: int = Field(default=2, description="Assistant messages used as follow-up context")

    # Storage
    STORE_PATH: Optional[str] = Field(default=None, description="JSON file for the key-value store (in-memory if unset)")

    # CORS Settings
    CORS_ORIGINS: List[str] = Field(
        default=["*"],
        description="Allowed CORS origins"
    )

    model_config = {
        "env_file": Path(__file__).parent.parent / ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore"
    }


@dataclass(frozen=True)
class EngineConfig:
    """Immutable cache policy handed to the orchestrator at construction."""
    promotion_threshold: int = 5
    top_queries_limit: int = 10
    max_query_key_length: int = 100
    follow_up_context_messages: int = 2
    provider_timeout_seconds: float = 60.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "EngineConfig":
        return cls(
            promotion_threshold=settings.PROMOTION_THRESHOLD,
            top_queries_limit=settings.TOP_QUERIES_LIMIT,
            max_query_key_length=settings.MAX_QUERY_KEY_LENGTH,
            follow_up_context_messages=settings.FOLLOW_UP_CONTEXT_MESSAGES,
            provider_timeout_seconds=settings.LLM_TIMEOUT_SECONDS,
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.

    Returns:
        Settings instance with all configuration values
    """
    return Settings()


# Global settings instance
settings = get_settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Apply the configured log level to the root logger."""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


# Validation helpers
def validate_api_keys() -> dict:
    """
    Validate that provider API keys are configured.

    Returns:
        Dict with validation status for each provider key
    """
    return {
        "openrouter": bool(settings.OPENROUTER_API_KEY),
        "google": bool(settings.GOOGLE_API_KEY),
    }
