"""
Temporal Window Policy

SINGLE SOURCE OF TRUTH for "upcoming", "overdue" and "due today/tomorrow".
Used identically by:
1. The dashboard upcoming list
2. The badge count
3. The notification reconciler

DESIGN DECISION: Every comparison is made between calendar days. Both sides
are normalized to start-of-day first, so an occurrence due today is never
overdue before the day has fully passed, whatever the time of day.

An occurrence is upcoming iff:
- it is planned,
- its due day is today or later,
- its earliest relevant day, max(due - lead time, today), falls inside the
  window [today, today + window_days).

The lead time (days before due for the early reminder) widens the window:
an occurrence becomes upcoming as soon as its first reminder is relevant.
"""

from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Union

from src.models.obligation import (
    DueState,
    DueStatus,
    ObligationKind,
    Occurrence,
    OccurrenceStatus,
)


UPCOMING_WINDOW_DAYS = 30
INCOME_PREVIEW_WINDOW_DAYS = 15

DateLike = Union[date, datetime]


def start_of_day(value: DateLike) -> date:
    """Normalize a date or datetime to its calendar day."""
    if isinstance(value, datetime):
        return value.date()
    return value


def resolve_today(now: Optional[DateLike] = None) -> date:
    """Calendar day of now, or of the current time when now is None."""
    return start_of_day(now if now is not None else datetime.now())


def days_between(start: DateLike, end: DateLike) -> int:
    """Calendar days from start to end (negative when end is earlier)."""
    return (start_of_day(end) - start_of_day(start)).days


def earliest_relevant_date(
    occurrence: Occurrence,
    now: Optional[DateLike],
    lead_time_days: int,
) -> date:
    """First day on which the occurrence matters: max(due - lead, today)."""
    today = resolve_today(now)
    lead_day = start_of_day(occurrence.due_date) - timedelta(days=lead_time_days)
    return max(lead_day, today)


def is_upcoming(
    occurrence: Occurrence,
    now: Optional[DateLike],
    lead_time_days: int,
    window_days: int = UPCOMING_WINDOW_DAYS,
) -> bool:
    """The one predicate behind every upcoming list, badge and reminder."""
    if occurrence.status != OccurrenceStatus.PLANNED:
        return False

    today = resolve_today(now)
    if start_of_day(occurrence.due_date) < today:
        return False

    window_end = today + timedelta(days=window_days)
    return earliest_relevant_date(occurrence, today, lead_time_days) < window_end


def filter_upcoming(
    occurrences: Iterable[Occurrence],
    lead_time_days: int,
    now: Optional[DateLike] = None,
    window_days: int = UPCOMING_WINDOW_DAYS,
) -> list[Occurrence]:
    """Upcoming occurrences sorted by due date (earliest first)."""
    today = resolve_today(now)
    return sorted(
        (
            occurrence for occurrence in occurrences
            if is_upcoming(occurrence, today, lead_time_days, window_days)
        ),
        key=lambda occurrence: occurrence.due_date,
    )


def badge_count(
    occurrences: Iterable[Occurrence],
    lead_time_days: int,
    now: Optional[DateLike] = None,
) -> int:
    """Badge count: the number of upcoming occurrences, nothing else."""
    return len(filter_upcoming(occurrences, lead_time_days, now))


def income_preview(
    occurrences: Iterable[Occurrence],
    now: Optional[DateLike] = None,
) -> list[Occurrence]:
    """
    Income receipts expected in the next 15 days.

    Display convenience only; it never feeds the badge or reminders.
    """
    return filter_upcoming(
        (o for o in occurrences if o.kind == ObligationKind.INCOME),
        lead_time_days=0,
        now=now,
        window_days=INCOME_PREVIEW_WINDOW_DAYS,
    )


def is_overdue(due_date: DateLike, now: Optional[DateLike] = None) -> bool:
    """Overdue only once the due day has fully passed."""
    return start_of_day(due_date) < resolve_today(now)


def due_status(due_date: DateLike, now: Optional[DateLike] = None) -> DueStatus:
    """Classify a due date relative to today."""
    days = days_between(resolve_today(now), due_date)

    if days < 0:
        return DueStatus(state=DueState.OVERDUE, days=-days)
    if days == 0:
        return DueStatus(state=DueState.DUE_TODAY)
    if days == 1:
        return DueStatus(state=DueState.DUE_TOMORROW, days=1)
    return DueStatus(state=DueState.DUE_IN_DAYS, days=days)
