"""
Scheduling package.

Pure calendar and money math (recurrence, amortization), the derived-field
reconciliation and the store-backed schedule generator.
"""

from src.scheduling.recurrence import (
    MAX_GENERATED_DATES,
    ROLLING_HORIZON_MONTHS,
    generate_dates,
    loan_due_dates,
    next_date,
)
from src.scheduling.amortization import (
    compute_loan_schedule,
    preview_loan,
    round_money,
)
from src.scheduling.reconciliation import (
    apply_derived_fields,
    schedule_mismatch,
)
from src.scheduling.generator import (
    ScheduleDelta,
    ScheduleGenerator,
    plan_schedule,
    rebuild_schedule,
    schedule_affecting_changes,
)

__all__ = [
    "MAX_GENERATED_DATES",
    "ROLLING_HORIZON_MONTHS",
    "ScheduleDelta",
    "ScheduleGenerator",
    "apply_derived_fields",
    "compute_loan_schedule",
    "generate_dates",
    "loan_due_dates",
    "next_date",
    "plan_schedule",
    "preview_loan",
    "rebuild_schedule",
    "round_money",
    "schedule_affecting_changes",
    "schedule_mismatch",
]
