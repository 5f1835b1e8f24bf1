"""Application configuration using pydantic-settings.

All environment variables are read through the ``settings`` object rather
than ``os.getenv()`` so that values are validated once at startup.
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
        extra="ignore",
    )

    # Database - SQLite by default, PostgreSQL in production
    database_url: str = "sqlite:///./tablequeue.db"

    # Security
    secret_key: str = "change-me-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 720  # one service shift

    # CORS - comma-separated origins or "*" for development only
    cors_origins: str = "http://localhost:3000,http://localhost:5000"

    # Public URL customers reach by scanning a QR code
    public_base_url: str = "http://localhost:5000"

    # Money
    currency: str = "USD"
    split_bill_tolerance: Decimal = Decimal("0.01")

    # Real-time bus
    ws_max_connections: int = 1000

    # Server
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # API
    api_v1_prefix: str = "/api/v1"

    # Rate limiting
    rate_limit_enabled: bool = True
    public_write_rate_limit: str = "30/minute"

    @field_validator("split_bill_tolerance")
    @classmethod
    def validate_tolerance(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("split_bill_tolerance cannot be negative")
        return v

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Refuse to start in production with an insecure secret key."""
        if not self.debug:
            if self.secret_key == "change-me-in-production":
                raise ValueError(
                    "FATAL: Cannot start in production mode with default SECRET_KEY. "
                    "Set a secure SECRET_KEY environment variable (minimum 32 characters)."
                )
            if len(self.secret_key) < 32:
                raise ValueError(
                    f"FATAL: SECRET_KEY must be at least 32 characters in production mode "
                    f"(current length: {len(self.secret_key)})."
                )
        return self

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
