"""Configuration management using pydantic-settings."""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Fetch defaults (seconds)
    default_stale_time: float = 10.0
    # gc window defaults to this multiple of the stale window
    default_gc_multiplier: float = 6.0
    default_retry_count: int = 1
    default_retry_delay: float = 0.3
    default_dedupe_mode: str = "signalAware"

    # Hover prefetch debounce (seconds)
    prefetch_delay: float = 0.05

    # Upstream JSON API used by the bundled routes
    upstream_base_url: str = "https://pokeapi.co/api/v2"
    upstream_api_key: Optional[str] = None
    request_timeout: float = 30.0
    list_limit: int = 5

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
