"""Application configuration using pydantic-settings.

All environment variables should be accessed through the settings object
rather than using os.getenv() directly. One process serves one branch:
``database_url`` points at that branch's store and ``head_office_database_url``
at the central directory used by the user reconciliation job.
"""

from decimal import Decimal
from functools import lru_cache
from typing import List, Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
    )

    # Branch store (sales, tables, customers, deliveries)
    database_url: str = "sqlite:///./data/branch.db"

    # Head office store (branches + central user directory)
    head_office_database_url: str = "sqlite:///./data/head_office.db"

    # Branch identity, used in invoice numbers: B001-INV-000001
    branch_code: str = "B001"

    # Sales tax as a fraction of the discounted subtotal (0.15 == 15%)
    tax_rate: Decimal = Decimal("0.15")

    # Delivery defaults
    default_delivery_minutes: int = 30

    # Held (parked) orders expire after this long and are purged by the scheduler
    held_order_ttl_hours: int = 24
    held_order_cleanup_enabled: bool = True
    held_order_cleanup_interval_seconds: int = 3600

    # Background user reconciliation (head office -> branch)
    user_sync_enabled: bool = True
    user_sync_interval_seconds: int = 3600
    scheduler_tick_seconds: int = 60

    # Security
    secret_key: str = "change-me-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 240  # 4 hours

    # CORS - comma-separated origins or "*" for development only
    cors_origins: str = "http://localhost:3000,http://localhost:8000"

    # Server
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # API
    api_v1_prefix: str = "/api/v1"

    # Rate limiting
    rate_limit_enabled: bool = True
    order_rate_limit: str = "60/minute"
    login_rate_limit: str = "5/minute"

    @field_validator("tax_rate")
    @classmethod
    def validate_tax_rate(cls, v: Decimal) -> Decimal:
        if v < 0 or v >= 1:
            raise ValueError(f"tax_rate must be a fraction in [0, 1), got {v}")
        return v

    @field_validator("branch_code")
    @classmethod
    def validate_branch_code(cls, v: str) -> str:
        v = v.strip().upper()
        if not v or "-" in v:
            raise ValueError("branch_code must be non-empty and must not contain '-'")
        return v

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Refuse to start in production with the default signing key."""
        if not self.debug and self.secret_key == "change-me-in-production":
            raise ValueError(
                "FATAL: Cannot start in production mode with default SECRET_KEY. "
                "Set a secure SECRET_KEY environment variable (minimum 32 characters)."
            )
        return self

    @property
    def cors_origins_list(self) -> List[str]:
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
