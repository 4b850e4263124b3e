"""
Notification Dispatcher Interface

The schedule engine never talks to an OS notification center directly.
It needs three things from whatever delivers reminders:
1. Schedule a reminder for an occurrence at an instant
2. Cancel every reminder of an occurrence
3. Publish the badge count

Reminders are keyed by (occurrence id, label), so scheduling the same
label twice replaces the earlier reminder instead of duplicating it.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from uuid import UUID


class NotificationDispatcher(ABC):
    """Abstract interface for local reminder delivery."""

    @abstractmethod
    async def schedule_reminder(
        self,
        occurrence_id: UUID,
        fire_at: datetime,
        label: str,
        message: str = "",
    ) -> None:
        """
        Schedule (or replace) one reminder.

        Args:
            occurrence_id: Occurrence the reminder belongs to
            fire_at: When the reminder fires
            label: Reminder slot, e.g. "lead", "due" or "snoozed"
            message: Text shown to the user

        Raises:
            NotificationDispatchError: If the reminder cannot be scheduled
        """
        pass

    @abstractmethod
    async def cancel_reminders(self, occurrence_id: UUID) -> None:
        """Cancel every pending reminder of an occurrence."""
        pass

    @abstractmethod
    async def set_badge_count(self, count: int) -> None:
        """Publish the application badge count."""
        pass


class NotificationDispatchError(Exception):
    """A reminder could not be scheduled, cancelled or published."""
    pass
