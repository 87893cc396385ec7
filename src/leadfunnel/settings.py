"""Application settings and configuration."""

import sys

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_ADMIN_KEYS = {"change-me-in-production", "secret", "admin"}


class Settings(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="LEADFUNNEL_",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "leadfunnel"
    env: str = "development"
    log_level: str = "INFO"
    log_format: str = "console"  # console or json
    allowed_origins: str = "http://localhost:3000"

    # Operator access (X-Admin-Key header)
    admin_api_key: str = "change-me-in-production"

    # Identity store
    database_url: str = "sqlite:///./leadfunnel.db"
    store_timeout_seconds: float = Field(default=5.0, gt=0)

    # Rate limiting (limits notation, e.g. "5/minute")
    rate_limit_enabled: bool = True
    rate_limit_storage_uri: str = "memory://"
    submission_rate_limit: str = "5/minute"
    default_rate_limit: str = "60/minute"

    # Affiliate program
    default_commission_rate: float = Field(default=50.0, ge=0)
    referral_code_max_attempts: int = Field(default=10, ge=1)

    # Dashboard
    stats_top_n: int = Field(default=5, ge=1)


# Global settings instance
settings = Settings()

# ── Security validation ──────────────────────────────────────────────
if settings.env == "production":
    if settings.admin_api_key in _INSECURE_ADMIN_KEYS or len(settings.admin_api_key) < 32:
        print(
            "\n❌  FATAL: LEADFUNNEL_ADMIN_API_KEY is insecure or too short (min 32 chars).\n"
            "   Set a strong random value:  openssl rand -hex 32\n",
            file=sys.stderr,
        )
        sys.exit(1)
