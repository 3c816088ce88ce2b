"""Shared configuration management for the back-office service.

Based on Pydantic Settings v2 best practices:
https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from decimal import Decimal
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with the prefix 'APP_'.
    Example: APP_DEFAULT_VAT_RATE=9
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Service configuration
    service_name: str = Field(
        default="restaurant-backoffice",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )

    # Reconciliation
    default_vat_rate: Decimal = Field(
        default=Decimal("21"),
        ge=0,
        le=100,
        description=(
            "Standard VAT rate (percent) applied when recomputing invoice totals "
            "for line items that carry no explicit rate"
        ),
    )
    default_currency: Literal["EUR", "USD", "GBP"] = Field(
        default="EUR",
        description="Currency assumed for invoices created from partial extractions",
    )

    # Invoice document storage (S3-compatible object storage)
    storage_enabled: bool = Field(
        default=False,
        description="Enable invoice document storage in S3-compatible storage (MinIO)",
    )
    storage_endpoint: str = Field(
        default="localhost:9000",
        description="S3-compatible storage endpoint (host:port)",
    )
    storage_access_key: str = Field(
        default="",
        description="Storage access key (use env var APP_STORAGE_ACCESS_KEY)",
    )
    storage_secret_key: str = Field(
        default="",
        description="Storage secret key (use env var APP_STORAGE_SECRET_KEY)",
    )
    storage_bucket: str = Field(
        default="invoices",
        description="Bucket holding scanned invoice documents",
    )
    storage_secure: bool = Field(
        default=False,
        description="Use HTTPS for storage connections",
    )


def get_settings() -> Settings:
    """Factory function to get settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()
