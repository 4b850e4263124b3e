"""
Dashboard Aggregation

DESIGN DECISION: Aggregation is DETERMINISTIC and read-only. Everything is
computed from stored obligations and occurrences; nothing is estimated.

Totals are always grouped by currency code. Amounts in different
currencies are never added together.

- To receive: outstanding balance of money lent out, plus planned income
  inside the upcoming window
- To pay: outstanding balance of borrowed money and bank credits, plus
  planned expenses inside the upcoming window
- Net: to receive minus to pay, per currency

The upcoming list uses filter_upcoming() with the user's lead time, the
same predicate behind the badge and the reminders.
"""

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from src.models.obligation import (
    DueStatus,
    Obligation,
    ObligationKind,
    Occurrence,
)
from src.queries.window import (
    UPCOMING_WINDOW_DAYS,
    DateLike,
    badge_count,
    due_status,
    filter_upcoming,
    resolve_today,
)


class UpcomingItem(BaseModel):
    """One row of the dashboard upcoming list."""

    occurrence_id: UUID
    obligation_id: UUID
    kind: ObligationKind
    title: str
    due_date: date
    amount: Decimal
    currency_code: str
    is_inflow: bool
    status: DueStatus
    is_snoozed: bool = False


class CashflowPoint(BaseModel):
    """Cumulative planned flow up to and including one day."""

    day: date
    receive: Decimal = Decimal("0")
    pay: Decimal = Decimal("0")


class DashboardSummary(BaseModel):
    """Everything the dashboard shows, computed in one pass."""

    generated_for: date
    upcoming: list[UpcomingItem] = Field(default_factory=list)
    badge_count: int = 0
    to_receive: dict[str, Decimal] = Field(default_factory=dict)
    to_pay: dict[str, Decimal] = Field(default_factory=dict)
    net: dict[str, Decimal] = Field(default_factory=dict)


def _by_id(obligations: Iterable[Obligation]) -> dict[UUID, Obligation]:
    return {obligation.id: obligation for obligation in obligations}


def _add(totals: dict, key, amount: Decimal) -> None:
    totals[key] = totals.get(key, Decimal("0")) + amount


def _attached(
    occurrences: Iterable[Occurrence],
    lookup: dict[UUID, Obligation],
) -> list[Occurrence]:
    """Drop occurrences whose obligation no longer exists."""
    return [o for o in occurrences if o.obligation_id in lookup]


def _is_snoozed(occurrence: Occurrence, now: Optional[DateLike]) -> bool:
    if occurrence.snooze_until is None:
        return False
    if now is None:
        moment = datetime.now()
    elif isinstance(now, datetime):
        moment = now
    else:
        moment = datetime.combine(now, time.min)
    return occurrence.snooze_until > moment


def _in_window(
    occurrences: Iterable[Occurrence],
    kind: ObligationKind,
    now: Optional[DateLike],
) -> list[Occurrence]:
    return filter_upcoming(
        (o for o in occurrences if o.kind == kind),
        lead_time_days=0,
        now=now,
    )


def build_upcoming_items(
    occurrences: Iterable[Occurrence],
    obligations: Iterable[Obligation],
    lead_time_days: int,
    now: Optional[DateLike] = None,
) -> list[UpcomingItem]:
    """Upcoming occurrences joined with their obligation, earliest first."""
    lookup = _by_id(obligations)
    items = []

    for occurrence in filter_upcoming(_attached(occurrences, lookup), lead_time_days, now):
        obligation = lookup[occurrence.obligation_id]
        items.append(UpcomingItem(
            occurrence_id=occurrence.id,
            obligation_id=obligation.id,
            kind=occurrence.kind,
            title=obligation.title,
            due_date=occurrence.due_date,
            amount=occurrence.amount,
            currency_code=occurrence.currency_code,
            is_inflow=obligation.is_inflow,
            status=due_status(occurrence.due_date, now),
            is_snoozed=_is_snoozed(occurrence, now),
        ))

    return items


def to_receive_by_currency(
    obligations: Iterable[Obligation],
    occurrences: Iterable[Occurrence],
    now: Optional[DateLike] = None,
) -> dict[str, Decimal]:
    """Money coming in: remaining balance of lent loans + upcoming income."""
    totals: dict[str, Decimal] = {}

    for obligation in obligations:
        if obligation.is_loan and obligation.is_inflow and obligation.remaining > 0:
            _add(totals, obligation.currency_code, obligation.remaining)

    for occurrence in _in_window(occurrences, ObligationKind.INCOME, now):
        _add(totals, occurrence.currency_code, occurrence.amount)

    return totals


def to_pay_by_currency(
    obligations: Iterable[Obligation],
    occurrences: Iterable[Occurrence],
    now: Optional[DateLike] = None,
) -> dict[str, Decimal]:
    """Money going out: remaining balance of borrowed loans + upcoming expenses."""
    totals: dict[str, Decimal] = {}

    for obligation in obligations:
        if obligation.is_loan and not obligation.is_inflow and obligation.remaining > 0:
            _add(totals, obligation.currency_code, obligation.remaining)

    for occurrence in _in_window(occurrences, ObligationKind.EXPENSE, now):
        _add(totals, occurrence.currency_code, occurrence.amount)

    return totals


def net_by_currency(
    to_receive: dict[str, Decimal],
    to_pay: dict[str, Decimal],
) -> dict[str, Decimal]:
    """Per-currency difference. Currencies with a zero net are dropped."""
    net = {}
    for currency_code in sorted(set(to_receive) | set(to_pay)):
        value = to_receive.get(currency_code, Decimal("0")) - to_pay.get(currency_code, Decimal("0"))
        if value != 0:
            net[currency_code] = value
    return net


def cashflow_series(
    occurrences: Iterable[Occurrence],
    obligations: Iterable[Obligation],
    currency_code: str,
    now: Optional[DateLike] = None,
    window_days: int = UPCOMING_WINDOW_DAYS,
) -> list[CashflowPoint]:
    """
    Day-by-day cumulative receive/pay totals for one currency.

    One point per day from today to today + window_days - 1.
    """
    today = resolve_today(now)
    lookup = _by_id(obligations)

    receive_by_day: dict[date, Decimal] = {}
    pay_by_day: dict[date, Decimal] = {}
    for occurrence in filter_upcoming(occurrences, 0, today, window_days):
        if occurrence.currency_code != currency_code:
            continue
        obligation = lookup.get(occurrence.obligation_id)
        if obligation is None:
            continue
        bucket = receive_by_day if obligation.is_inflow else pay_by_day
        _add(bucket, occurrence.due_date, occurrence.amount)

    points = []
    receive = Decimal("0")
    pay = Decimal("0")
    for offset in range(window_days):
        day = today + timedelta(days=offset)
        receive += receive_by_day.get(day, Decimal("0"))
        pay += pay_by_day.get(day, Decimal("0"))
        points.append(CashflowPoint(day=day, receive=receive, pay=pay))
    return points


def build_dashboard_summary(
    obligations: Iterable[Obligation],
    occurrences: Iterable[Occurrence],
    lead_time_days: int,
    now: Optional[DateLike] = None,
) -> DashboardSummary:
    """Assemble the full dashboard."""
    obligations = list(obligations)
    occurrences = _attached(occurrences, _by_id(obligations))

    upcoming = build_upcoming_items(occurrences, obligations, lead_time_days, now)
    to_receive = to_receive_by_currency(obligations, occurrences, now)
    to_pay = to_pay_by_currency(obligations, occurrences, now)

    return DashboardSummary(
        generated_for=resolve_today(now),
        upcoming=upcoming,
        badge_count=badge_count(occurrences, lead_time_days, now),
        to_receive=to_receive,
        to_pay=to_pay,
        net=net_by_currency(to_receive, to_pay),
    )
