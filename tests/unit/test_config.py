# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.
"""Unit tests for TenancySettings configuration."""

from tenancy.core.config import TenancySettings


class TestTenancySettings:
    def test_defaults(self):
        s = TenancySettings(_env_file=None)
        assert s.REDIS_URL == "redis://localhost:6379/0"
        assert s.LOG_LEVEL == "INFO"
        assert s.TENANCY_ENV == "dev"
        assert s.DEFAULT_TENANT_NAME == "My Business"
        assert s.DEFAULT_COUNTRY == "NL"
        assert s.DEFAULT_CURRENCY == "EUR"
        assert s.DEFAULT_TAX_RATES == [0, 9, 21]
        assert s.DEFAULT_VAT_RATE == 21
        assert s.LARGE_TENANT_COUNT_WARNING == 10
        assert s.PREFERENCE_TTL == 90 * 24 * 3600

    def test_custom_values(self):
        s = TenancySettings(
            _env_file=None,
            REDIS_URL="redis://custom:6380/1",
            DEFAULT_TENANT_NAME="Acme",
            TENANT_CACHE_TTL=5.0,
        )
        assert s.REDIS_URL == "redis://custom:6380/1"
        assert s.DEFAULT_TENANT_NAME == "Acme"
        assert s.TENANT_CACHE_TTL == 5.0

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("CONSISTENCY_MAX_ATTEMPTS", "9")
        s = TenancySettings(_env_file=None)
        assert s.CONSISTENCY_MAX_ATTEMPTS == 9
