"""Application settings using Pydantic for environment-based configuration."""
from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Paystack Configuration
    paystack_secret_key: str = Field(..., description="Paystack secret key (sk_test_... / sk_live_...)")
    paystack_base_url: str = Field(
        default="https://api.paystack.co", description="Paystack API base URL"
    )
    paystack_timeout_seconds: float = Field(
        default=10.0, gt=0, description="Timeout for a single Paystack HTTP call (seconds)"
    )
    paystack_callback_url: str | None = Field(
        default=None, description="Default redirect URL after checkout"
    )

    # Database Configuration
    database_url: str = Field(..., description="Database connection URL")
    database_pool_size: int = Field(default=20, description="Database connection pool size")
    database_max_overflow: int = Field(default=50, description="Max database connection overflow")
    database_echo: bool = Field(default=False, description="Echo SQL queries (debug)")

    # Redis Configuration
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis connection URL")
    webhook_dedup_ttl: int = Field(
        default=86400 * 7, description="How long processed webhook ids are remembered (seconds)"
    )

    # Application Configuration
    app_name: str = Field(default="community-payments", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    debug: bool = Field(default=False, description="Debug mode")

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    api_workers: int = Field(default=4, description="Number of API workers")
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:8000",
        description="CORS allowed origins (comma-separated)"
    )
    user_id_header: str = Field(
        default="X-User-ID", description="Header carrying the authenticated user id"
    )

    # Payment Processing
    payment_reference_prefix: str = Field(default="MCB", description="Payment reference prefix")
    default_currency: str = Field(default="NGN", description="Currency used when none is given")
    supported_currencies: str = Field(
        default="NGN,GHS,ZAR,KES,USD",
        description="Currencies accepted for initialization (comma-separated)",
    )
    gateway_retry_max_attempts: int = Field(default=3, description="Max gateway retry attempts")
    gateway_retry_base_delay: float = Field(
        default=0.5, description="Base delay for retry backoff (seconds)"
    )

    # Events
    max_guests_per_rsvp: int = Field(default=10, description="Upper bound on guests per RSVP")

    # Reconciliation
    reconciliation_pending_age_minutes: int = Field(
        default=15, description="Pending payments older than this are re-verified"
    )
    reconciliation_interval_seconds: int = Field(
        default=300, description="Delay between reconciliation sweeps"
    )
    reconciliation_batch_size: int = Field(
        default=100, description="Max payments re-verified per sweep"
    )

    # Outbox
    outbox_batch_size: int = Field(default=100, description="Outbox events published per batch")
    outbox_poll_interval_seconds: float = Field(default=1.0, description="Outbox polling interval")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("paystack_secret_key")
    @classmethod
    def validate_paystack_key(cls, v: str) -> str:
        """Validate that the Paystack secret key has a recognised prefix."""
        if not v.startswith("sk_test_") and not v.startswith("sk_live_"):
            raise ValueError(
                "Invalid Paystack secret key format. Must start with 'sk_test_' or 'sk_live_'"
            )
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @field_validator("default_currency")
    @classmethod
    def validate_default_currency(cls, v: str) -> str:
        """Normalise the default currency code."""
        if len(v) != 3 or not v.isalpha():
            raise ValueError("Default currency must be a 3-letter ISO 4217 code")
        return v.upper()

    def get_allowed_origins_list(self) -> List[str]:
        """Parse allowed origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    def get_supported_currencies(self) -> List[str]:
        """Parse supported currencies from comma-separated string."""
        return [c.strip().upper() for c in self.supported_currencies.split(",") if c.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env.lower() == "production"

    @property
    def is_test_mode(self) -> bool:
        """Check if using Paystack test keys."""
        return self.paystack_secret_key.startswith("sk_test_")


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
