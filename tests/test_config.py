"""Tests for environment-driven settings."""

import pytest

from src.config import (
    AppSettings,
    NotificationSettings,
    get_settings,
    validate_all_settings,
)


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    def test_notification_env_prefix(self, monkeypatch):
        monkeypatch.setenv("NOTIFICATIONS_REMINDER_HOUR", "18")
        monkeypatch.setenv("NOTIFICATIONS_RETRY_ATTEMPTS", "5")

        settings = NotificationSettings()

        assert settings.reminder_hour == 18
        assert settings.retry_attempts == 5

    def test_reminder_hour_bounds(self, monkeypatch):
        monkeypatch.setenv("NOTIFICATIONS_REMINDER_HOUR", "24")
        with pytest.raises(ValueError):
            NotificationSettings()

    def test_app_defaults(self):
        settings = AppSettings(_env_file=None)

        assert settings.default_currency_code == "RON"
        assert settings.default_lead_time_days == 2

    def test_settings_are_cached(self):
        assert get_settings() is get_settings()

    def test_missing_sheets_configuration_is_reported(self, monkeypatch):
        """Storage is optional; a missing spreadsheet id is reported, not raised."""
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)
        monkeypatch.chdir("/")

        results = validate_all_settings()

        assert results["notifications"] is True
        assert results["google_sheets"] is False
        assert "google_sheets_error" in results
