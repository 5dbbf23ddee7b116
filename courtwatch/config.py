"""Configuration management for CourtWatch."""

from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Streaming board source
    court_base_url: str = Field(
        default="https://gujarathighcourt.nic.in/streamingboard/"
    )
    court_xhr_url: Optional[str] = Field(default=None)  # Defaults to <base>indexrequest.php
    court_origin: str = Field(default="https://gujarathighcourt.nic.in")
    courthouse: str = Field(default="Gujarat High Court")

    # HTTP Client Defaults
    http_timeout_seconds: float = Field(default=15.0)
    http_retries: int = Field(default=3)
    http_backoff: float = Field(default=0.5)

    # Polling
    scraper_interval_ms: int = Field(
        default=30000,
        validation_alias=AliasChoices("SCRAPER_INTERVAL", "SCRAPER_INTERVAL_MS"),
    )
    snapshot_every_cycles: int = Field(default=10)

    # Notification rules
    early_warning_threshold: int = Field(
        default=5,
        validation_alias=AliasChoices(
            "NOTIFICATION_EARLY_WARNING_COUNT", "EARLY_WARNING_THRESHOLD"
        ),
    )
    in_session_repeat_seconds: int = Field(default=300)
    status_history_limit: int = Field(default=100)

    # Database
    database_file: str = Field(default="courtwatch.db")

    # Push delivery
    push_gateway_url: Optional[str] = Field(default=None)
    push_gateway_key: Optional[str] = Field(default=None)
    dispatch_workers: int = Field(default=4)

    # API server
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000, validation_alias=AliasChoices("PORT", "API_PORT"))

    # Bot Configuration
    log_level: str = Field(default="INFO")
    dry_run: bool = Field(default=False)
    log_json: bool = Field(default=False, description="Emit logs as JSON lines")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @property
    def feed_url(self) -> str:
        """URL of the JSON row list backing the streaming board."""
        if self.court_xhr_url:
            return self.court_xhr_url
        return f"{self.court_base_url.rstrip('/')}/indexrequest.php"

    @property
    def interval_seconds(self) -> float:
        return self.scraper_interval_ms / 1000.0

    def validate_notifier_config(self) -> None:
        """Validate that push delivery is configured unless running dry."""
        if self.dry_run:
            return
        if not self.push_gateway_url:
            raise ValueError(
                "No push gateway configured. Set PUSH_GATEWAY_URL (and "
                "PUSH_GATEWAY_KEY if the gateway requires one) or run with "
                "DRY_RUN=true to log alerts instead of sending them."
            )


# Global settings instance
settings = Settings()
