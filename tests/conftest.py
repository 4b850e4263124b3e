"""
Shared fixtures.

Every test runs against a fixed clock so calendar assertions never depend
on the day the suite is run.
"""

import pytest

from factories import NOW
from src.config import AppSettings, NotificationSettings


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def app_settings():
    return AppSettings(_env_file=None)


@pytest.fixture
def notification_settings():
    return NotificationSettings(
        reminder_hour=9,
        retry_attempts=2,
        retry_min_wait_seconds=0,
        retry_max_wait_seconds=0,
    )
