"""
Configuration management using Pydantic Settings.
Loads environment variables and provides centralized constants.
"""

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


def _validate_http_url(v: str, name: str) -> str:
    v = v.strip().rstrip("/")
    if not v.startswith(("http://", "https://")):
        raise ValueError(f"{name} must start with http:// or https://")
    return v


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    port: int = Field(
        default=3000,
        ge=1,
        le=65535,
        description="Port the HTTP server listens on",
    )

    # Upstream sources (required)
    postgres_url: str = Field(
        ...,
        description="Connection string for the weekly metrics database",
    )
    glow_green_api: str = Field(
        ...,
        description="Base URL of the Glow Green stats API",
    )
    infura_url: str = Field(
        ...,
        description="Ethereum node URL used for contract reads",
    )
    dune_api_key: str = Field(
        ...,
        description="Dune Analytics API key (required)",
    )

    # Upstream sources (optional)
    audits_url: str = Field(
        default="https://glow.org/api/audits",
        description="URL of the public farm audits endpoint",
    )
    dune_base_url: str = Field(
        default="https://api.dune.com/api/v1",
        description="Base URL for the Dune Analytics API",
    )
    dune_holders_query_id: int = Field(
        default=4667126,
        ge=1,
        description="Dune query returning the latest GLW holder count",
    )
    glow_price_contract_address: str = Field(
        default="0xD5aBe236d2F2F5D10231c054e078788Ea3447DFc",
        description="Address of the contract exposing getCurrentPrice()",
    )
    upstream_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout in seconds for every outbound call",
    )

    # Weekly aggregation
    genesis_timestamp: int = Field(
        default=1700352000,
        ge=0,
        description="Unix timestamp of week 0",
    )
    skip_malformed_audit_dates: bool = Field(
        default=False,
        description="Drop audits with unparseable dates instead of failing the batch",
    )

    # Cache
    cache_ttl: int = Field(
        default=7200,
        ge=1,
        description="TTL for every cached payload in seconds",
    )
    refresh_interval: int = Field(
        default=3600,
        ge=1,
        description="Seconds between scheduled revalidation passes",
    )
    coalesce_cache_misses: bool = Field(
        default=True,
        description="Share one compute between concurrent misses on the same key",
    )

    # Rate limiting
    rate_limit_max_requests: int = Field(
        default=25,
        ge=1,
        description="Requests allowed per client within one window",
    )
    rate_limit_window_seconds: int = Field(
        default=300,
        ge=1,
        description="Length of the rate limit window in seconds",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    @field_validator("dune_api_key")
    @classmethod
    def validate_api_key(cls, v: str) -> str:
        """Ensure API key is not empty."""
        if not v or v.strip() == "":
            raise ValueError("DUNE_API_KEY must not be empty")
        return v.strip()

    @field_validator("postgres_url")
    @classmethod
    def validate_postgres_url(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("postgres://", "postgresql://")):
            raise ValueError("POSTGRES_URL must start with postgres:// or postgresql://")
        return v

    @field_validator("glow_green_api", "infura_url", "audits_url", "dune_base_url")
    @classmethod
    def validate_urls(cls, v: str, info) -> str:
        """Ensure URLs are properly formatted."""
        return _validate_http_url(v, info.field_name.upper())

    @model_validator(mode="after")
    def validate_refresh_before_expiry(self) -> "Settings":
        """The scheduler must overwrite entries before they go stale."""
        if self.refresh_interval >= self.cache_ttl:
            raise ValueError(
                "REFRESH_INTERVAL must be shorter than CACHE_TTL "
                f"(got {self.refresh_interval}s >= {self.cache_ttl}s)"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings singleton

    Raises:
        ValidationError: If required environment variables are missing or invalid
    """
    return Settings()


# Singleton instance for import
settings = get_settings()
