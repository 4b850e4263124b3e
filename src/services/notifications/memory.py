"""In-memory notification dispatcher used by tests and headless runs."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from src.services.notifications.interface import (
    NotificationDispatcher,
    NotificationDispatchError,
)


@dataclass(frozen=True)
class ScheduledReminder:
    occurrence_id: UUID
    label: str
    fire_at: datetime
    message: str


class InMemoryNotificationDispatcher(NotificationDispatcher):
    """
    Keeps pending reminders in a dict.

    Set failures_remaining to make the next N dispatcher calls raise
    NotificationDispatchError.
    """

    def __init__(self):
        self.reminders: dict[tuple[UUID, str], ScheduledReminder] = {}
        self.badge_count = 0
        self.failures_remaining = 0
        self.call_count = 0

    def _maybe_fail(self) -> None:
        self.call_count += 1
        if self.failures_remaining > 0:
            self.failures_remaining -= 1
            raise NotificationDispatchError("Simulated dispatcher failure")

    async def schedule_reminder(
        self,
        occurrence_id: UUID,
        fire_at: datetime,
        label: str,
        message: str = "",
    ) -> None:
        self._maybe_fail()
        self.reminders[(occurrence_id, label)] = ScheduledReminder(
            occurrence_id=occurrence_id,
            label=label,
            fire_at=fire_at,
            message=message,
        )

    async def cancel_reminders(self, occurrence_id: UUID) -> None:
        self._maybe_fail()
        for key in [k for k in self.reminders if k[0] == occurrence_id]:
            del self.reminders[key]

    async def set_badge_count(self, count: int) -> None:
        self._maybe_fail()
        self.badge_count = count

    def reminders_for(self, occurrence_id: UUID) -> list[ScheduledReminder]:
        """Pending reminders of one occurrence, earliest first."""
        return sorted(
            (r for r in self.reminders.values() if r.occurrence_id == occurrence_id),
            key=lambda r: r.fire_at,
        )
