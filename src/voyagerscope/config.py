"""Configuration management using Pydantic Settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="VOYAGERSCOPE_",
        extra="ignore",
    )

    # Deduplication
    dedup_window_ms: int = 500
    dedup_prefix_chars: int = 500

    # URL correlation
    correlation_retention_seconds: float = 10.0

    # Interceptor self-healing
    health_check_interval_seconds: float = 2.0
    health_check_warmup_seconds: list[float] = Field(default_factory=lambda: [0.5, 1.0, 3.0])

    # Publication
    forward_excluded: bool = False

    # Classifier tables (YAML); built-in defaults when unset
    tables_path: str | None = None

    # Output
    events_path: str = "~/.voyagerscope/events.jsonl"
    log_level: str = "INFO"

    # Browser capture
    browser_headless: bool = True
    browser_user_data_dir: str = "~/.voyagerscope/browser"
    browser_timeout_ms: int = 45_000
    browser_args: list[str] = Field(default_factory=list)


settings = Settings()
