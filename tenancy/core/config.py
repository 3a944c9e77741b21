# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.

"""
Tenancy Configuration — Environment-driven settings.

All configuration is loaded from environment variables (or .env file).
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class TenancySettings(BaseSettings):
    """Service-wide configuration loaded from environment."""

    # --- Redis ---
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL (document store + selection preferences)",
    )
    REDIS_MAX_CONNECTIONS: int = Field(default=20)
    REDIS_SOCKET_TIMEOUT: float = Field(default=10.0)

    # --- Default tenant bootstrap ---
    DEFAULT_TENANT_NAME: str = Field(
        default="My Business",
        description="Display name of the tenant created for a principal with none",
    )
    DEFAULT_COUNTRY: str = Field(default="NL")
    DEFAULT_CURRENCY: str = Field(default="EUR")
    DEFAULT_TAX_RATES: list[float] = Field(
        default_factory=lambda: [0, 9, 21],
        description="VAT rate schedule written into new tenant settings",
    )
    DEFAULT_VAT_RATE: float = Field(
        default=21,
        description="VAT rate assumed for migrated legacy records without one",
    )

    # --- Discovery ---
    LARGE_TENANT_COUNT_WARNING: int = Field(
        default=10,
        description="Resolved tenant count above which duplicate creation is suspected",
    )
    TENANT_CACHE_TTL: float = Field(
        default=30.0,
        description="Seconds a resolved tenant list stays cached per principal",
    )
    TENANT_CACHE_SIZE: int = Field(default=1024)
    PREFERENCE_TTL: int = Field(
        default=90 * 24 * 3600,
        description="Selection preference / hint set TTL in seconds (90 days)",
    )

    # --- Read-after-write ---
    CONSISTENCY_MAX_ATTEMPTS: int = Field(default=5)
    CONSISTENCY_BACKOFF_BASE: float = Field(default=0.05)
    CONSISTENCY_MAX_BACKOFF: float = Field(default=1.0)

    # --- Platform ---
    LOG_LEVEL: str = Field(default="INFO")
    TENANCY_ENV: str = Field(
        default="dev",
        description="Environment: dev | prod",
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
    }


# Global singleton
settings = TenancySettings()
