"""Unit tests for core.config module.

Tests cover:
- Settings model_validator checks (database URL, daily salt)
- is_sqlite property
- allowed_origins computed property with deduplication
- get_settings / clear_settings_cache lru_cache behavior
"""

import pytest
from pydantic import ValidationError

from core.config import (
    DEFAULT_DAILY_IP_SALT,
    Settings,
    clear_settings_cache,
    get_settings,
)


@pytest.mark.unit
class TestSettingsValidation:
    def test_debug_mode_allows_default_salt(self):
        settings = Settings(
            database_url="sqlite+aiosqlite:///x.db",
            debug=True,
            daily_ip_salt=DEFAULT_DAILY_IP_SALT,
        )
        assert settings.daily_ip_salt == DEFAULT_DAILY_IP_SALT

    def test_requires_database_url(self):
        with pytest.raises(ValidationError, match="Database configuration"):
            Settings(database_url="", debug=True)

    def test_production_requires_real_salt(self):
        with pytest.raises(ValidationError, match="DAILY_IP_SALT"):
            Settings(
                database_url="postgresql+asyncpg://localhost/serenity",
                debug=False,
                daily_ip_salt=DEFAULT_DAILY_IP_SALT,
            )

    def test_production_accepts_custom_salt(self):
        settings = Settings(
            database_url="postgresql+asyncpg://localhost/serenity",
            debug=False,
            daily_ip_salt="a-real-secret",
        )
        assert settings.debug is False

    def test_settings_are_frozen(self):
        settings = Settings(database_url="sqlite+aiosqlite:///x.db", debug=True)
        with pytest.raises(ValidationError):
            settings.site_url = "https://other.example.com"


@pytest.mark.unit
class TestComputedProperties:
    def test_is_sqlite(self):
        assert Settings(database_url="sqlite+aiosqlite:///x.db", debug=True).is_sqlite
        assert not Settings(
            database_url="postgresql+asyncpg://localhost/db", debug=True
        ).is_sqlite

    def test_allowed_origins_deduplicates(self):
        settings = Settings(
            database_url="sqlite+aiosqlite:///x.db",
            debug=True,
            site_url="http://localhost:3000",
            cors_allowed_origins="http://localhost:3000, https://app.example.com,",
        )
        assert settings.allowed_origins == [
            "http://localhost:3000",
            "https://app.example.com",
        ]

    def test_allowed_origins_excludes_localhost_outside_debug(self):
        settings = Settings(
            database_url="sqlite+aiosqlite:///x.db",
            debug=False,
            daily_ip_salt="secret",
            site_url="https://certs.example.com",
        )
        assert settings.allowed_origins == ["https://certs.example.com"]


@pytest.mark.unit
class TestSettingsCache:
    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_clear_settings_cache_picks_up_env(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("SITE_URL", "https://changed.example.com")
        clear_settings_cache()
        second = get_settings()
        assert second is not first
        assert second.site_url == "https://changed.example.com"
