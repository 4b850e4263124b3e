"""Configuration package."""

from src.config.settings import (
    AppSettings,
    GoogleSheetsSettings,
    NotificationSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoogleSheetsSettings",
    "NotificationSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
