"""
Application configuration using Pydantic Settings.

Supports hierarchical environment configuration:
- .env.base: Common non-secret defaults (committed to git)
- .env.{ENVIRONMENT}: Environment-specific overrides (gitignored)
- Environment variables: Highest priority
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

# Get environment from env var, default to development
ENV = os.getenv("ENVIRONMENT", "development")

PACKAGE_STATIC_DIR = Path(__file__).resolve().parent.parent / "static"


class Settings(BaseSettings):
    """Application settings with hierarchical env file support."""

    model_config = SettingsConfigDict(
        env_file=[
            ".env.base",
            f".env.{ENV}",
        ],
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "test", "production"] = "development"

    # Security
    allowed_hosts: list[str] = ["*"]
    cors_origins: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Upstream LLM (Alibaba Cloud DashScope)
    dashscope_api_key: str = ""
    default_llm_model: str = "qwen-plus-latest"  # Forced on every relayed call

    # Streaming demo pacing (milliseconds)
    html_stream_delay_ms: int = 250
    text_stream_delay_ms: int = 120
    realistic_delay_min_ms: int = 50
    realistic_delay_max_ms: int = 200
    sse_ping_interval_ms: int = 1000
    workflow_query_delay_ms: int = 800  # Simulated warehouse round-trip

    # HTML assets (empty = bundled static directory)
    static_dir: str = ""

    @property
    def upstream_configured(self) -> bool:
        """Check whether the upstream credential is present."""
        return bool(self.dashscope_api_key.strip())

    @property
    def static_path(self) -> Path:
        """Directory holding app.html and example.html."""
        return Path(self.static_dir) if self.static_dir else PACKAGE_STATIC_DIR

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
