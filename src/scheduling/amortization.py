"""
Amortization Calculator

Pure function from loan terms to (total payable, per-period amount, dated
installments). Usable standalone, e.g. for a calculator preview.

Interest is SIMPLE annual interest on the principal:

    total = principal + principal * (rate / 100) * years

where years = period_count / periods-per-year of the frequency.

DESIGN DECISION: Rounding remainders are absorbed by the LAST installment
(last = total - sum(previous)), so the schedule always sums exactly to the
total payable. When the half-up per-period amount would overshoot the
total across the earlier installments (tiny totals over long terms), the
per-period amount is truncated to the cent instead, so the last
installment never goes negative.

Degenerate input (no periods, non-finite values) returns a principal-only
result with no installments instead of raising.
"""

from datetime import date
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation

import structlog

from src.models.obligation import (
    Frequency,
    InterestMode,
    InterestTerms,
    LoanPreview,
    LoanSchedule,
    LoanScheduleInput,
    ScheduleItem,
)
from src.scheduling.recurrence import loan_due_dates


CENT = Decimal("0.01")

_PERIODS_PER_YEAR = {
    Frequency.WEEKLY: Decimal(52),
    Frequency.MONTHLY: Decimal(12),
    Frequency.QUARTERLY: Decimal(4),
    Frequency.YEARLY: Decimal(1),
}

logger = structlog.get_logger(__name__)


def round_money(value: Decimal) -> Decimal:
    """Round to cents, half away from zero."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def periods_per_year(frequency: Frequency) -> Decimal:
    """Number of installments per year for a loan frequency."""
    try:
        return _PERIODS_PER_YEAR[frequency]
    except KeyError:
        raise ValueError(f"Loans do not support frequency: {frequency.value}")


def resolve_total_payable(
    principal: Decimal,
    interest: InterestTerms,
    period_count: int,
    frequency: Frequency,
) -> Decimal:
    """Total amount to repay over the whole term."""
    if interest.mode == InterestMode.PERCENTAGE_ANNUAL:
        rate = interest.annual_rate_percent or Decimal("0")
        years = Decimal(period_count) / periods_per_year(frequency)
        return principal + principal * (rate / Decimal(100)) * years

    # NONE and FIXED_TOTAL both resolve to an explicit value
    if interest.fixed_total is not None:
        return interest.fixed_total
    return principal


def _degenerate(principal: Decimal) -> LoanSchedule:
    return LoanSchedule(
        total_payable=principal,
        periodic_amount=principal,
        installments=[],
    )


def compute_loan_schedule(schedule_input: LoanScheduleInput) -> LoanSchedule:
    """
    Compute the full installment schedule of a loan.

    Returns:
        LoanSchedule whose installments sum to total_payable.
        period_count <= 0 or non-finite values -> principal-only, no installments.
    """
    principal = schedule_input.principal
    period_count = schedule_input.period_count

    if period_count <= 0:
        logger.info("loan_schedule_degenerate", reason="no_periods", period_count=period_count)
        return _degenerate(principal)

    try:
        total = resolve_total_payable(
            principal,
            schedule_input.interest,
            period_count,
            schedule_input.frequency,
        )
        if not total.is_finite():
            raise InvalidOperation("non-finite total")
        total = round_money(total)
        periodic = round_money(total / Decimal(period_count))
        if periodic * (period_count - 1) > total:
            periodic = (total / Decimal(period_count)).quantize(CENT, rounding=ROUND_DOWN)
    except (ArithmeticError, ValueError) as e:
        logger.warning("loan_schedule_degenerate", reason="non_finite", error=str(e))
        return _degenerate(principal)

    due_dates = loan_due_dates(
        schedule_input.start_date,
        schedule_input.frequency,
        period_count,
    )

    installments: list[ScheduleItem] = []
    scheduled = Decimal("0")
    last_index = len(due_dates) - 1

    for index, due_date in enumerate(due_dates):
        if index == last_index:
            amount = round_money(total - scheduled)
        else:
            amount = periodic

        if not amount.is_finite() or amount < 0:
            logger.warning("installment_dropped", index=index, amount=str(amount))
            continue

        installments.append(ScheduleItem(due_date=due_date, amount=amount))
        scheduled += amount

    return LoanSchedule(
        total_payable=total,
        periodic_amount=periodic,
        installments=installments,
    )


def preview_loan(
    principal: Decimal,
    annual_rate_percent: Decimal,
    period_count: int,
    frequency: Frequency,
) -> LoanPreview:
    """Calculator tab helper: figures for a loan that is not persisted."""
    schedule = compute_loan_schedule(
        LoanScheduleInput(
            principal=principal,
            interest=InterestTerms(
                mode=InterestMode.PERCENTAGE_ANNUAL,
                annual_rate_percent=annual_rate_percent,
            ),
            period_count=period_count,
            frequency=frequency,
            start_date=date.today(),
        )
    )
    return LoanPreview(
        periodic_amount=schedule.periodic_amount,
        total_payable=schedule.total_payable,
        total_interest=schedule.total_payable - principal,
    )
