"""Tests for the recurrence engine."""

from datetime import date

from factories import TODAY
from src.models.obligation import Frequency
from src.scheduling.recurrence import (
    MAX_GENERATED_DATES,
    generate_dates,
    loan_due_dates,
    next_date,
    rolling_horizon_end,
)


class TestNextDate:
    """Tests for single-period advancement."""

    def test_weekly_adds_seven_days(self):
        assert next_date(date(2025, 3, 1), Frequency.WEEKLY) == date(2025, 3, 8)

    def test_one_time_has_no_next(self):
        assert next_date(date(2025, 3, 1), Frequency.ONE_TIME) is None

    def test_monthly_clamps_to_month_end(self):
        """Jan 31 has no February counterpart; the last day is used."""
        assert next_date(date(2025, 1, 31), Frequency.MONTHLY) == date(2025, 2, 28)
        assert next_date(date(2024, 1, 31), Frequency.MONTHLY) == date(2024, 2, 29)

    def test_monthly_returns_to_anchor_day(self):
        """After a clamped month the series goes back to the intended day."""
        assert next_date(date(2025, 2, 28), Frequency.MONTHLY, anchor_day=31) == date(2025, 3, 31)
        assert next_date(date(2025, 3, 31), Frequency.MONTHLY, anchor_day=31) == date(2025, 4, 30)

    def test_quarterly_keeps_anchor(self):
        assert next_date(date(2025, 1, 31), Frequency.QUARTERLY) == date(2025, 4, 30)
        assert next_date(date(2025, 4, 30), Frequency.QUARTERLY, anchor_day=31) == date(2025, 7, 31)

    def test_yearly_from_leap_day(self):
        assert next_date(date(2024, 2, 29), Frequency.YEARLY) == date(2025, 2, 28)

    def test_calendar_overflow_ends_series(self):
        """A date past year 9999 cannot exist; the series ends instead of raising."""
        assert next_date(date(9999, 12, 15), Frequency.MONTHLY) is None
        assert next_date(date(9999, 12, 30), Frequency.WEEKLY) is None
        assert next_date(date(9999, 6, 1), Frequency.YEARLY) is None


class TestGenerateDates:
    """Tests for income/expense candidate dates."""

    def test_past_start_is_fast_forwarded(self):
        """No date before today is ever emitted."""
        dates = generate_dates(date(2025, 1, 31), Frequency.MONTHLY, TODAY)

        assert dates[0] == date(2025, 3, 31)
        assert all(d >= TODAY for d in dates)

    def test_rolling_horizon_is_twelve_months(self):
        dates = generate_dates(date(2025, 1, 31), Frequency.MONTHLY, TODAY)

        assert len(dates) == 12
        assert dates[-1] == date(2026, 2, 28)
        assert dates[-1] <= rolling_horizon_end(TODAY)

    def test_end_of_month_anchor_is_preserved(self):
        dates = generate_dates(date(2025, 1, 31), Frequency.MONTHLY, TODAY)

        assert dates[:4] == [
            date(2025, 3, 31),
            date(2025, 4, 30),
            date(2025, 5, 31),
            date(2025, 6, 30),
        ]

    def test_dates_are_strictly_increasing(self):
        dates = generate_dates(date(2025, 1, 31), Frequency.MONTHLY, TODAY)
        assert all(earlier < later for earlier, later in zip(dates, dates[1:]))

    def test_end_date_is_inclusive(self):
        dates = generate_dates(
            date(2025, 3, 1),
            Frequency.WEEKLY,
            date(2025, 3, 1),
            end_date=date(2025, 3, 29),
        )

        assert dates == [
            date(2025, 3, 1),
            date(2025, 3, 8),
            date(2025, 3, 15),
            date(2025, 3, 22),
            date(2025, 3, 29),
        ]

    def test_end_date_before_today_yields_nothing(self):
        dates = generate_dates(
            date(2024, 1, 1),
            Frequency.MONTHLY,
            TODAY,
            end_date=date(2024, 12, 31),
        )
        assert dates == []

    def test_series_is_capped(self):
        """A far end date stops at the generation cap."""
        dates = generate_dates(
            TODAY,
            Frequency.WEEKLY,
            TODAY,
            end_date=date(2100, 1, 1),
        )
        assert len(dates) == MAX_GENERATED_DATES

    def test_one_time_future(self):
        assert generate_dates(date(2025, 4, 1), Frequency.ONE_TIME, TODAY) == [date(2025, 4, 1)]

    def test_one_time_today_is_kept(self):
        assert generate_dates(TODAY, Frequency.ONE_TIME, TODAY) == [TODAY]

    def test_one_time_past_yields_nothing(self):
        assert generate_dates(date(2025, 3, 9), Frequency.ONE_TIME, TODAY) == []


class TestLoanDueDates:
    """Tests for loan installment dates."""

    def test_first_installment_is_start_date(self):
        dates = loan_due_dates(date(2025, 1, 31), Frequency.MONTHLY, 3)
        assert dates == [date(2025, 1, 31), date(2025, 2, 28), date(2025, 3, 31)]

    def test_whole_term_ignores_today(self):
        """Loans materialize every installment, past ones included."""
        dates = loan_due_dates(date(2020, 1, 1), Frequency.MONTHLY, 120)

        assert len(dates) == 120
        assert dates[0] == date(2020, 1, 1)
        assert dates[-1] == date(2029, 12, 1)

    def test_zero_count(self):
        assert loan_due_dates(date(2025, 1, 1), Frequency.MONTHLY, 0) == []

    def test_calendar_running_out_shortens_term(self):
        dates = loan_due_dates(date(9999, 11, 1), Frequency.MONTHLY, 5)
        assert dates == [date(9999, 11, 1), date(9999, 12, 1)]
