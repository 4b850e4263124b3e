"""
User Preferences

The persisted settings entity. There is exactly one record per store;
it is created lazily with defaults the first time it is read.
"""

from datetime import datetime
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class AppPreferences(BaseModel):
    """User-editable settings that drive reminders and display defaults."""
    model_config = ConfigDict(validate_assignment=True)

    id: UUID = Field(default_factory=uuid4)
    lead_time_days: int = Field(
        default=2,
        ge=0,
        le=7,
        description="Days before the due date for the early reminder"
    )
    notifications_enabled: bool = Field(
        default=True,
        description="Schedule local reminders at all"
    )
    default_currency_code: str = Field(
        default="RON",
        min_length=3,
        max_length=3,
    )
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    def touch(self) -> None:
        self.updated_at = datetime.now()
