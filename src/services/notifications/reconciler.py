"""
Notification Reconciler

Brings pending reminders and the badge in line with the stored schedule.
It runs as a SEPARATE phase after a mutation is committed, never inside it:
a dispatcher failure must not undo a saved edit.

For every resync:
1. Occurrences that are no longer upcoming lose their reminders
2. Every upcoming occurrence gets a lead-time reminder (due - lead days)
   and a due-day reminder, both at the configured reminder hour
3. The badge is set to badge_count() of the same occurrences

"Upcoming" comes from src.queries.window, the same predicate the dashboard
and the badge use, so the three can never disagree.

A snoozed occurrence keeps its due date. Reminders that would fire before
the snooze instant are replaced by one reminder at the snooze instant.

The whole resync is idempotent (cancel-then-schedule), so a failed attempt
is simply retried with tenacity. When every attempt fails, the reconciler
is marked pending and the caller retries on the next foreground.
"""

from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Callable, Iterable, Optional
from uuid import UUID

import structlog
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from src.config import NotificationSettings, get_settings
from src.models.obligation import Occurrence
from src.models.preferences import AppPreferences
from src.queries.formatting import format_money
from src.queries.window import badge_count, filter_upcoming
from src.services.notifications.interface import (
    NotificationDispatcher,
    NotificationDispatchError,
)


LEAD_LABEL = "lead"
DUE_LABEL = "due"
SNOOZED_LABEL = "snoozed"

logger = structlog.get_logger(__name__)


@dataclass
class PlannedReminder:
    label: str
    fire_at: datetime


@dataclass
class ResyncResult:
    """What one resync did."""
    scheduled: int
    cancelled: int
    badge_count: int


def plan_reminders(
    occurrence: Occurrence,
    lead_time_days: int,
    now: datetime,
    reminder_hour: int,
) -> list[PlannedReminder]:
    """
    Reminder instants of one occurrence, earliest first.

    Instants at or before now are skipped.
    """
    reminder_time = time(hour=reminder_hour)
    due_at = datetime.combine(occurrence.due_date, reminder_time)

    planned = []
    if lead_time_days > 0:
        lead_at = datetime.combine(
            occurrence.due_date - timedelta(days=lead_time_days),
            reminder_time,
        )
        planned.append(PlannedReminder(LEAD_LABEL, lead_at))
    planned.append(PlannedReminder(DUE_LABEL, due_at))

    snooze = occurrence.snooze_until
    if snooze is not None and snooze > now:
        held_back = [p for p in planned if p.fire_at < snooze]
        if held_back:
            planned = [p for p in planned if p.fire_at >= snooze]
            planned.insert(0, PlannedReminder(SNOOZED_LABEL, snooze))

    return [p for p in planned if p.fire_at > now]


def reminder_message(
    occurrence: Occurrence,
    reminder: PlannedReminder,
    title: Optional[str] = None,
) -> str:
    """Text of a reminder: title, amount and when it is due."""
    name = title or occurrence.kind.value.capitalize()
    amount = format_money(occurrence.amount, occurrence.currency_code)
    days = (occurrence.due_date - reminder.fire_at.date()).days

    if days <= 0:
        return f"{name}: {amount} is due today"
    if days == 1:
        return f"{name}: {amount} is due tomorrow"
    return f"{name}: {amount} is due in {days} days"


class NotificationReconciler:
    """
    Keeps dispatcher state in sync with the occurrence list.

    The reconciler remembers which occurrences it scheduled reminders for,
    so reminders of occurrences that were settled, deleted or regenerated
    away are cancelled on the next resync.
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        settings: Optional[NotificationSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._dispatcher = dispatcher
        self._settings = settings or get_settings().notifications
        self._clock = clock or datetime.now
        self._scheduled: set[UUID] = set()
        self.pending = False

    @property
    def scheduled_ids(self) -> frozenset[UUID]:
        return frozenset(self._scheduled)

    async def resync(
        self,
        occurrences: Iterable[Occurrence],
        preferences: AppPreferences,
        titles: Optional[dict[UUID, str]] = None,
    ) -> ResyncResult:
        """
        Reconcile reminders and the badge.

        Args:
            occurrences: Every stored occurrence
            preferences: Lead time and the notifications switch
            titles: Obligation titles by obligation id, for reminder text

        Raises:
            NotificationDispatchError: When every attempt failed. The
                reconciler stays pending until a later resync succeeds.
        """
        occurrences = list(occurrences)
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._settings.retry_attempts),
                wait=wait_exponential(
                    multiplier=self._settings.retry_min_wait_seconds,
                    min=self._settings.retry_min_wait_seconds,
                    max=self._settings.retry_max_wait_seconds,
                ),
                reraise=True,
            ):
                with attempt:
                    result = await self._apply(occurrences, preferences, titles or {})
        except Exception as e:
            self.pending = True
            logger.error(
                "reminders_resync_failed",
                error=str(e),
                attempts=self._settings.retry_attempts,
            )
            raise NotificationDispatchError(f"Reminder resync failed: {e}") from e

        self.pending = False
        logger.info(
            "reminders_resynced",
            scheduled=result.scheduled,
            cancelled=result.cancelled,
            badge_count=result.badge_count,
        )
        return result

    async def _apply(
        self,
        occurrences: list[Occurrence],
        preferences: AppPreferences,
        titles: dict[UUID, str],
    ) -> ResyncResult:
        now = self._clock()
        lead = preferences.lead_time_days
        count = badge_count(occurrences, lead, now)

        if not preferences.notifications_enabled:
            cancelled = 0
            for occurrence_id in list(self._scheduled):
                await self._dispatcher.cancel_reminders(occurrence_id)
                self._scheduled.discard(occurrence_id)
                cancelled += 1
            await self._dispatcher.set_badge_count(count)
            return ResyncResult(scheduled=0, cancelled=cancelled, badge_count=count)

        upcoming = filter_upcoming(occurrences, lead, now)
        upcoming_ids = {o.id for o in upcoming}

        cancelled = 0
        for occurrence_id in list(self._scheduled - upcoming_ids):
            await self._dispatcher.cancel_reminders(occurrence_id)
            self._scheduled.discard(occurrence_id)
            cancelled += 1

        scheduled = 0
        for occurrence in upcoming:
            await self._dispatcher.cancel_reminders(occurrence.id)
            title = titles.get(occurrence.obligation_id)
            for reminder in plan_reminders(occurrence, lead, now, self._settings.reminder_hour):
                await self._dispatcher.schedule_reminder(
                    occurrence.id,
                    reminder.fire_at,
                    reminder.label,
                    reminder_message(occurrence, reminder, title),
                )
                scheduled += 1
            self._scheduled.add(occurrence.id)

        await self._dispatcher.set_badge_count(count)
        return ResyncResult(scheduled=scheduled, cancelled=cancelled, badge_count=count)
