"""
Recurrence Engine

Pure calendar math: (start date, frequency, optional end date, today) ->
ordered candidate due dates. No knowledge of money or obligations.

DESIGN DECISION: Monthly and quarterly recurrences keep the day-of-month of
the ORIGINAL start date (the anchor), not of the previous occurrence.
Without the anchor, Jan 31 -> Feb 28 -> Mar 28 would drift for good.
relativedelta clamps an absolute day to the last day of the target month,
which gives Jan 31 -> Feb 28/29 -> Mar 31 -> Apr 30.

Calendar failures (date overflow) end the series instead of raising.
"""

from datetime import date, timedelta
from typing import Optional

import structlog
from dateutil.relativedelta import relativedelta

from src.models.obligation import Frequency


ROLLING_HORIZON_MONTHS = 12
MAX_GENERATED_DATES = 1000

_MONTH_STEPS = {
    Frequency.MONTHLY: 1,
    Frequency.QUARTERLY: 3,
}

logger = structlog.get_logger(__name__)


def next_date(
    current: date,
    frequency: Frequency,
    anchor_day: Optional[int] = None,
) -> Optional[date]:
    """
    Advance one period.

    Args:
        current: The occurrence to advance from
        frequency: Recurrence frequency
        anchor_day: Intended day-of-month for monthly/quarterly series.
                    Defaults to current.day.

    Returns:
        The next due date, or None for one-time obligations and when the
        calendar cannot represent the next date.
    """
    try:
        if frequency == Frequency.ONE_TIME:
            return None
        if frequency == Frequency.WEEKLY:
            return current + timedelta(weeks=1)
        if frequency in _MONTH_STEPS:
            return current + relativedelta(
                months=_MONTH_STEPS[frequency],
                day=anchor_day or current.day,
            )
        if frequency == Frequency.YEARLY:
            return current + relativedelta(years=1)
    except (OverflowError, ValueError):
        logger.warning("calendar_overflow", current=current.isoformat(), frequency=frequency.value)
        return None

    raise ValueError(f"Unsupported frequency: {frequency}")


def rolling_horizon_end(today: date) -> date:
    """Last day covered when an obligation has no end date."""
    return today + relativedelta(months=ROLLING_HORIZON_MONTHS)


def generate_dates(
    start: date,
    frequency: Frequency,
    today: date,
    end_date: Optional[date] = None,
) -> list[date]:
    """
    Produce the candidate due dates of an income/expense obligation.

    - Dates before today are never emitted: a past start is fast-forwarded.
    - The series ends at end_date, or at today + 12 months when no end
      date is set, and never holds more than MAX_GENERATED_DATES dates.
    - A one-time obligation yields its start date only if it is not past.
    """
    if frequency == Frequency.ONE_TIME:
        return [start] if start >= today else []

    effective_end = end_date if end_date is not None else rolling_horizon_end(today)
    anchor_day = start.day

    current: Optional[date] = start
    while current is not None and current < today:
        current = next_date(current, frequency, anchor_day)

    dates: list[date] = []
    while current is not None and current <= effective_end:
        if not dates or current > dates[-1]:
            dates.append(current)
        if len(dates) >= MAX_GENERATED_DATES:
            logger.warning(
                "recurrence_cap_reached",
                start=start.isoformat(),
                frequency=frequency.value,
                cap=MAX_GENERATED_DATES,
            )
            break
        current = next_date(current, frequency, anchor_day)

    return dates


def loan_due_dates(start: date, frequency: Frequency, count: int) -> list[date]:
    """
    Installment dates of a loan: index 0 is the start date itself.

    Loans are not bound by the rolling horizon or by today; the whole term
    is materialized. Fewer than `count` dates are returned only when the
    calendar runs out.
    """
    dates: list[date] = []
    current: Optional[date] = start
    anchor_day = start.day

    while current is not None and len(dates) < count:
        dates.append(current)
        current = next_date(current, frequency, anchor_day)

    return dates
