"""Tests for environment-driven settings."""

import pytest

from finwatch.config import get_settings, validate_all_settings


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    def test_prefixed_environment_variables(self, monkeypatch):
        monkeypatch.setenv("FIRESTORE_PROJECT_ID", "demo")
        monkeypatch.setenv("FIRESTORE_API_KEY", "secret")
        monkeypatch.setenv("CACHE_TRANSACTIONS_MAX_AGE", "60")
        monkeypatch.setenv("NOTIFICATIONS_CURRENCY_SYMBOL", "$")

        settings = get_settings()

        assert settings.store.is_configured
        assert settings.cache.transactions_max_age == 60
        assert settings.cache.categories_max_age == 600
        assert settings.notifications.currency_symbol == "$"
        assert settings.store.rate_limit_backoff_seconds == 3.0

    def test_validate_reports_missing_store(self, monkeypatch):
        monkeypatch.delenv("FIRESTORE_PROJECT_ID", raising=False)
        monkeypatch.delenv("FIRESTORE_API_KEY", raising=False)
        monkeypatch.delenv("FIRESTORE_CREDENTIALS_PATH", raising=False)

        results = validate_all_settings()

        assert results["store"] is False
        assert "store_error" in results
        assert results["cache"] is True
        assert results["notifications"] is True
