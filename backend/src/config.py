"""
Configuration management for the Football Data Refresh Service.

Loads configuration from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class Config:
    """Application configuration."""

    # Environment
    environment: str = os.getenv("ENVIRONMENT", "development")

    # Supabase Configuration
    supabase_url: str = os.getenv("SUPABASE_URL", "")
    supabase_key: str = os.getenv("SUPABASE_KEY", "")
    supabase_service_key: Optional[str] = os.getenv("SUPABASE_SERVICE_KEY", None)

    # API-Football Configuration
    football_api_base_url: str = os.getenv("API_FOOTBALL_BASE_URL", "https://v3.football.api-sports.io")
    football_api_key: str = os.getenv("API_FOOTBALL_KEY", "")

    # Rate Limiting (outbound, per refresher run)
    max_requests_per_minute: int = int(os.getenv("MAX_REQUESTS_PER_MINUTE", "120"))
    # API-Football free/pro tiers: keep 200-500ms between per-record calls
    min_request_interval: float = float(os.getenv("MIN_REQUEST_INTERVAL", "0.25"))

    # Retry Configuration
    max_retries: int = int(os.getenv("MAX_RETRIES", "3"))
    retry_backoff_base: float = float(os.getenv("RETRY_BACKOFF_BASE", "1.0"))
    max_retry_delay: int = int(os.getenv("MAX_RETRY_DELAY", "60"))

    # Phase orchestrator: where the per-entity refresh endpoints are served
    refresh_base_url: str = os.getenv("REFRESH_BASE_URL", "http://127.0.0.1:8000")
    # Empty means no client timeout: a hung refresher holds up its wave
    refresh_http_timeout: Optional[float] = (
        float(os.getenv("REFRESH_HTTP_TIMEOUT")) if os.getenv("REFRESH_HTTP_TIMEOUT") else None
    )

    # Smart refresh: pause between sequential endpoint calls
    smart_step_delay: float = float(os.getenv("SMART_STEP_DELAY", "0.5"))

    # Admin authentication
    admin_api_key: str = os.getenv("ADMIN_API_KEY", "")
    cookie_secret: str = os.getenv("COOKIE_SECRET", "")

    # Inbound rate limiting on refresh routes (per client IP)
    refresh_rate_limit_max: int = int(os.getenv("REFRESH_RATE_LIMIT_MAX", "20"))
    refresh_rate_limit_window: int = int(os.getenv("REFRESH_RATE_LIMIT_WINDOW", "3600"))  # 1 hour

    # League used when a request names none (Premier League)
    default_league_api_id: int = int(os.getenv("DEFAULT_LEAGUE_API_ID", "39"))
    default_season: int = int(os.getenv("DEFAULT_SEASON", "2025"))

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_format: str = os.getenv("LOG_FORMAT", "json")  # json or text

    def validate(self):
        """Validate configuration."""
        errors = []

        if not self.supabase_url:
            errors.append("SUPABASE_URL is required")
        if not self.supabase_key:
            errors.append("SUPABASE_KEY is required")
        if self.refresh_rate_limit_max < 1:
            errors.append("REFRESH_RATE_LIMIT_MAX must be at least 1")

        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")

        return True

    def __post_init__(self):
        """Validate after initialization."""
        self.refresh_base_url = self.refresh_base_url.rstrip("/")
        self.validate()
