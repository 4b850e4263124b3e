"""
Tests for the amortization calculator.

The calculator is a pure function, so every test builds a LoanScheduleInput
directly and checks totals, per-period amounts and the last-installment
remainder.
"""

import pytest
from datetime import date
from decimal import Decimal

from src.models.obligation import (
    Frequency,
    InterestMode,
    InterestTerms,
    LoanScheduleInput,
)
from src.scheduling.amortization import (
    compute_loan_schedule,
    periods_per_year,
    preview_loan,
    resolve_total_payable,
    round_money,
)


def _input(principal="1200.00", periods=12, frequency=Frequency.MONTHLY, **interest):
    return LoanScheduleInput(
        principal=Decimal(principal),
        interest=InterestTerms(**interest),
        period_count=periods,
        frequency=frequency,
        start_date=date(2025, 1, 1),
    )


class TestRoundMoney:
    def test_half_rounds_up(self):
        assert round_money(Decimal("0.005")) == Decimal("0.01")
        assert round_money(Decimal("333.335")) == Decimal("333.34")

    def test_below_half_rounds_down(self):
        assert round_money(Decimal("333.3333")) == Decimal("333.33")


class TestTotalPayable:
    """Tests for resolve_total_payable."""

    def test_simple_annual_interest(self):
        total = resolve_total_payable(
            Decimal("1200"),
            InterestTerms(mode=InterestMode.PERCENTAGE_ANNUAL, annual_rate_percent=Decimal("12")),
            12,
            Frequency.MONTHLY,
        )
        assert total == Decimal("1344")

    def test_interest_scales_with_term_length(self):
        """Two years at 10% is 20% on top of the principal."""
        total = resolve_total_payable(
            Decimal("1000"),
            InterestTerms(mode=InterestMode.PERCENTAGE_ANNUAL, annual_rate_percent=Decimal("10")),
            8,
            Frequency.QUARTERLY,
        )
        assert total == Decimal("1200")

    def test_fixed_total(self):
        total = resolve_total_payable(
            Decimal("1000"),
            InterestTerms(mode=InterestMode.FIXED_TOTAL, fixed_total=Decimal("1100")),
            3,
            Frequency.MONTHLY,
        )
        assert total == Decimal("1100")

    def test_no_interest_is_principal(self):
        total = resolve_total_payable(Decimal("500"), InterestTerms(), 5, Frequency.MONTHLY)
        assert total == Decimal("500")

    def test_one_time_is_not_a_loan_frequency(self):
        with pytest.raises(ValueError):
            periods_per_year(Frequency.ONE_TIME)


class TestComputeLoanSchedule:
    """Tests for compute_loan_schedule."""

    def test_even_split(self):
        schedule = compute_loan_schedule(
            _input(mode=InterestMode.PERCENTAGE_ANNUAL, annual_rate_percent=Decimal("12"))
        )

        assert schedule.total_payable == Decimal("1344.00")
        assert schedule.periodic_amount == Decimal("112.00")
        assert len(schedule.installments) == 12
        assert all(item.amount == Decimal("112.00") for item in schedule.installments)

    def test_last_installment_absorbs_remainder(self):
        schedule = compute_loan_schedule(
            _input(
                principal="900.00",
                periods=3,
                mode=InterestMode.FIXED_TOTAL,
                fixed_total=Decimal("1000"),
            )
        )

        amounts = [item.amount for item in schedule.installments]
        assert amounts == [Decimal("333.33"), Decimal("333.33"), Decimal("333.34")]
        assert schedule.installment_total == schedule.total_payable

    def test_no_interest_remainder(self):
        schedule = compute_loan_schedule(_input(principal="100.00", periods=3))

        assert schedule.total_payable == Decimal("100.00")
        assert schedule.installments[-1].amount == Decimal("33.34")
        assert schedule.installment_total == Decimal("100.00")

    def test_installment_dates_follow_frequency(self):
        schedule = compute_loan_schedule(
            _input(
                principal="520.00",
                periods=52,
                frequency=Frequency.WEEKLY,
                mode=InterestMode.PERCENTAGE_ANNUAL,
                annual_rate_percent=Decimal("10"),
            )
        )

        assert schedule.total_payable == Decimal("572.00")
        assert schedule.periodic_amount == Decimal("11.00")
        assert schedule.installments[0].due_date == date(2025, 1, 1)
        assert schedule.installments[1].due_date == date(2025, 1, 8)

    @pytest.mark.parametrize("periods", [0, -3])
    def test_no_periods_is_principal_only(self, periods):
        schedule = compute_loan_schedule(_input(periods=periods))

        assert schedule.installments == []
        assert schedule.total_payable == Decimal("1200.00")
        assert schedule.periodic_amount == Decimal("1200.00")

    def test_nan_rate_is_degenerate(self):
        """Non-finite input never raises, it falls back to principal only."""
        schedule = compute_loan_schedule(
            _input(mode=InterestMode.PERCENTAGE_ANNUAL, annual_rate_percent=Decimal("NaN"))
        )

        assert schedule.installments == []
        assert schedule.total_payable == Decimal("1200.00")

    def test_infinite_principal_is_degenerate(self):
        schedule = compute_loan_schedule(
            _input(
                principal="Infinity",
                mode=InterestMode.PERCENTAGE_ANNUAL,
                annual_rate_percent=Decimal("5"),
            )
        )
        assert schedule.installments == []

    def test_tiny_total_over_many_periods(self):
        """Half-up rounding would overshoot, so earlier installments are truncated."""
        schedule = compute_loan_schedule(_input(principal="100.50", periods=300))

        assert schedule.periodic_amount == Decimal("0.33")
        assert len(schedule.installments) == 300
        assert schedule.installments[-1].amount == Decimal("1.83")
        assert schedule.installment_total == Decimal("100.50")

    def test_total_smaller_than_period_count_in_cents(self):
        schedule = compute_loan_schedule(
            _input(
                principal="0.05",
                periods=10,
                mode=InterestMode.FIXED_TOTAL,
                fixed_total=Decimal("0.05"),
            )
        )

        assert len(schedule.installments) == 10
        assert all(item.amount == Decimal("0.00") for item in schedule.installments[:-1])
        assert schedule.installments[-1].amount == Decimal("0.05")

    @pytest.mark.parametrize("principal", [
        "0.01", "0.05", "0.99", "1.00", "7.77", "100.50", "1000.00", "1344.00", "12345.67",
    ])
    @pytest.mark.parametrize("periods", [1, 2, 3, 7, 12, 99, 300, 360, 1000])
    def test_installments_always_sum_to_total(self, principal, periods):
        schedule = compute_loan_schedule(_input(principal=principal, periods=periods))

        assert len(schedule.installments) == periods
        assert all(item.amount >= 0 for item in schedule.installments)
        assert schedule.installment_total == schedule.total_payable == Decimal(principal)

    @pytest.mark.parametrize("rate", ["0.5", "7.25", "12", "33.3"])
    @pytest.mark.parametrize("periods", [5, 13, 240])
    def test_installments_sum_to_total_with_interest(self, rate, periods):
        schedule = compute_loan_schedule(
            _input(
                principal="999.99",
                periods=periods,
                mode=InterestMode.PERCENTAGE_ANNUAL,
                annual_rate_percent=Decimal(rate),
            )
        )

        assert schedule.installment_total == schedule.total_payable


class TestPreviewLoan:
    def test_preview_figures(self):
        preview = preview_loan(Decimal("1200"), Decimal("12"), 12, Frequency.MONTHLY)

        assert preview.periodic_amount == Decimal("112.00")
        assert preview.total_payable == Decimal("1344.00")
        assert preview.total_interest == Decimal("144.00")
