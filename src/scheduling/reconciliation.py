"""
Derived Field Reconciliation

After every change to an obligation's occurrences, its denormalized fields
are recomputed from the occurrence list. Nothing here trusts the previous
values of those fields.
"""

from decimal import Decimal
from typing import Iterable, Optional

import structlog

from src.models.obligation import Obligation, Occurrence, OccurrenceStatus
from src.scheduling.amortization import resolve_total_payable, round_money


SUM_TOLERANCE = Decimal("0.02")

logger = structlog.get_logger(__name__)


def _loan_total_payable(obligation: Obligation) -> Optional[Decimal]:
    terms = obligation.loan_terms
    if terms.period_count <= 0:
        return obligation.amount
    try:
        total = resolve_total_payable(
            obligation.amount,
            terms.interest,
            terms.period_count,
            obligation.frequency,
        )
        if not total.is_finite():
            return obligation.amount
        return round_money(total)
    except (ArithmeticError, ValueError):
        return obligation.amount


def apply_derived_fields(
    obligation: Obligation,
    occurrences: Iterable[Occurrence],
) -> Obligation:
    """
    Recompute next_due_date and the totals of an obligation in place.

    - next_due_date: earliest planned due date, or None
    - total_settled: sum of settled amounts
    - schedule_total: sum of all occurrence amounts
    - total_payable: calculator total for loans, schedule total otherwise
    - remaining: total_payable - total_settled, never below zero
    """
    own = [o for o in occurrences if o.obligation_id == obligation.id]

    planned_dates = [o.due_date for o in own if o.status == OccurrenceStatus.PLANNED]
    settled = sum(
        (o.amount for o in own if o.status == OccurrenceStatus.SETTLED),
        Decimal("0"),
    )
    schedule_total = sum((o.amount for o in own), Decimal("0"))

    if obligation.is_loan:
        total_payable = _loan_total_payable(obligation)
    else:
        total_payable = schedule_total

    obligation.next_due_date = min(planned_dates) if planned_dates else None
    obligation.total_settled = settled
    obligation.schedule_total = schedule_total
    obligation.total_payable = total_payable
    obligation.remaining = max(total_payable - settled, Decimal("0"))

    return obligation


def schedule_mismatch(obligation: Obligation) -> Optional[Decimal]:
    """
    Difference between a loan's schedule sum and its total payable.

    Returns the signed difference when it exceeds the tolerance, None when
    the schedule is consistent (or the obligation is not a loan, or has no
    schedule at all).
    """
    if not obligation.is_loan or obligation.total_payable is None:
        return None
    if obligation.loan_terms.period_count <= 0:
        return None

    difference = obligation.schedule_total - obligation.total_payable
    if abs(difference) > SUM_TOLERANCE:
        logger.warning(
            "loan_schedule_mismatch",
            obligation_id=str(obligation.id),
            schedule_total=str(obligation.schedule_total),
            total_payable=str(obligation.total_payable),
        )
        return difference
    return None
