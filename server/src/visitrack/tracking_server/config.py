"""Server configuration."""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Server settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Rate limiting
    rate_limit_window_ms: int = 900_000
    rate_limit_max_requests: int = 100
    max_events_per_minute: int = 1000
    trust_forwarded_for: bool = False

    # Counter store for rate limiting; in-process memory when unset
    redis_url: str | None = None

    # Downstream forwarding of accepted events
    forwarder: Literal["log", "queue", "postgres"] = "log"
    forward_queue_size: int = 10_000
    database_url: str = "postgresql://localhost/visitrack"

    # CORS allow-list
    frontend_url: str = "http://localhost:3000"
    api_url: str = "http://localhost:4000"
    cors_origin_regex: str | None = None

    # Server
    port: int = 4000
    debug: bool = False
    log_level: str = "INFO"


settings = Settings()
