"""
Environment-driven configuration, read through pydantic-settings.

DESIGN DECISION: All configuration is centralized here, but services never
reach for a process-wide singleton on their own. Settings are passed into
the schedule generator, notification reconciler and obligation service;
get_settings() is only the default used when the caller passes nothing.

The window policy constants (30-day upcoming window, 15-day income preview)
are NOT configuration. They live in src.queries.window so every consumer
shares one definition.
"""

import warnings
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class NotificationSettings(BaseSettings):
    """Local reminder scheduling configuration."""

    model_config = SettingsConfigDict(
        env_prefix="NOTIFICATIONS_",
        extra="ignore"
    )

    reminder_hour: int = Field(
        default=9,
        ge=0,
        le=23,
        description="Hour of day at which reminders fire"
    )
    retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Dispatcher call attempts before a resync is given up"
    )
    retry_min_wait_seconds: float = Field(
        default=0.5,
        ge=0.0,
        description="Minimum wait between dispatcher retries"
    )
    retry_max_wait_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="Maximum wait between dispatcher retries"
    )


class GoogleSheetsSettings(BaseSettings):
    """Where the sheet-backed record store keeps its worksheets."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Service account key file"
    )
    spreadsheet_id: str = Field(
        ...,
        description="Spreadsheet holding all four worksheets"
    )

    obligations_sheet_name: str = Field(
        default="Obligations",
        description="Worksheet with one row per obligation"
    )
    occurrences_sheet_name: str = Field(
        default="Occurrences",
        description="Worksheet with one row per occurrence"
    )
    preferences_sheet_name: str = Field(
        default="Preferences",
        description="Worksheet with the single preferences row"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Append-only audit worksheet"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        # The key may be mounted after settings are read
        if not Path(v).exists():
            warnings.warn(f"service account key {v} does not exist yet")
        return v


class AppSettings(BaseSettings):
    """Engine defaults and validation thresholds, also read from .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="development, staging or production"
    )
    debug_mode: bool = Field(
        default=False,
        description="Verbose local logging"
    )

    # Defaults for a fresh preferences record
    default_currency_code: str = Field(
        default="RON",
        min_length=3,
        max_length=3,
        description="Currency used when an obligation does not name one"
    )
    default_lead_time_days: int = Field(
        default=2,
        ge=0,
        le=7,
        description="Days before due for the early reminder"
    )

    # Validation thresholds
    max_obligation_amount: float = Field(
        default=10_000_000.0,
        description="Amounts above this are flagged as suspicious"
    )
    max_annual_rate_percent: float = Field(
        default=100.0,
        description="Annual rates above this are flagged as suspicious"
    )


class Settings(BaseSettings):
    """Groups the sub-settings; each one is read when first accessed."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def notifications(self) -> NotificationSettings:
        return NotificationSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """Process-wide default settings. Tests reset it with get_settings.cache_clear()."""
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Startup check: try to load every sub-settings group.

    Failures are reported under "<name>_error" instead of raised, since
    sheet storage is optional.
    """
    results = {}

    settings = get_settings()

    for name in ("notifications", "google_sheets", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
