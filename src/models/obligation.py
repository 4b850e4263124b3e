"""
Core Data Models for the Finance Tracker

These models define the schemas for everything the schedule engine touches:
1. Obligations (loans, income sources, recurring expenses)
2. Occurrences (one dated amount of an obligation)
3. Calculator input/output and due-date status values

DESIGN DECISION: Loans, income and expenses share ONE Obligation/Occurrence
pair tagged by ObligationKind. Loan-only data lives in LoanTerms, which is
present exactly when the kind is LOAN.

Occurrences reference their obligation by id (a foreign key), never by a
live object, so the store can keep both collections flat.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Frequency(str, Enum):
    """How often an obligation produces an occurrence."""
    ONE_TIME = "one_time"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class ObligationKind(str, Enum):
    """The variant tag of an Obligation."""
    LOAN = "loan"
    INCOME = "income"
    EXPENSE = "expense"


class OccurrenceStatus(str, Enum):
    """
    Occurrence status.

    CRITICAL: SETTLED occurrences are only created by an explicit user action
    (mark paid / mark received). Regeneration NEVER creates or alters them.
    """
    PLANNED = "planned"
    SETTLED = "settled"


class InterestMode(str, Enum):
    """How the total payable of a loan is determined."""
    NONE = "none"
    PERCENTAGE_ANNUAL = "percentage_annual"
    FIXED_TOTAL = "fixed_total"


class LoanRole(str, Enum):
    """Which side of the loan the user is on."""
    LENT = "lent"                # I lent money -> installments are money to receive
    BORROWED = "borrowed"        # I borrowed money -> installments are money to pay
    BANK_CREDIT = "bank_credit"  # Institution credit -> installments are money to pay


class DueState(str, Enum):
    """Due-date state of an occurrence relative to today."""
    OVERDUE = "overdue"
    DUE_TODAY = "due_today"
    DUE_TOMORROW = "due_tomorrow"
    DUE_IN_DAYS = "due_in_days"


# =============================================================================
# LOAN TERMS
# =============================================================================

class InterestTerms(BaseModel):
    """Interest terms of a loan."""

    mode: InterestMode = Field(
        default=InterestMode.NONE,
        description="Interest mode"
    )
    annual_rate_percent: Optional[Decimal] = Field(
        default=None,
        allow_inf_nan=True,
        description="Annual simple interest rate in percent (percentage_annual only)"
    )
    fixed_total: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Explicit total to repay (fixed_total, or an override for none)"
    )


class LoanTerms(BaseModel):
    """Kind-specific payload carried by loan obligations."""

    period_count: int = Field(
        ...,
        description="Number of installments. <= 0 means no schedule is generated."
    )
    interest: InterestTerms = Field(
        default_factory=InterestTerms,
        description="How interest is charged"
    )
    role: LoanRole = Field(
        default=LoanRole.BORROWED,
        description="Direction of the loan"
    )


# =============================================================================
# OBLIGATION
# =============================================================================

class Obligation(BaseModel):
    """
    A financial commitment that produces one or more dated amounts.

    The derived fields (next_due_date, totals) are denormalized copies of
    values computed from the occurrence list by the reconciliation pass.
    They are never edited directly.
    """
    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    # Identity
    id: UUID = Field(
        default_factory=uuid4,
        description="Unique obligation ID"
    )
    kind: ObligationKind = Field(
        ...,
        description="Variant tag"
    )

    # Timestamps
    created_at: datetime = Field(
        default_factory=datetime.now,
        description="When the obligation was created"
    )
    updated_at: datetime = Field(
        default_factory=datetime.now,
        description="Last update timestamp"
    )

    # Schedule-affecting fields
    title: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Display title"
    )
    amount: Decimal = Field(
        ...,
        decimal_places=2,
        description="Amount per occurrence, or principal for loans"
    )
    currency_code: str = Field(
        default="RON",
        min_length=3,
        max_length=3,
        description="ISO-4217-like currency code (display only)"
    )
    frequency: Frequency = Field(
        default=Frequency.MONTHLY,
        description="Recurrence frequency"
    )
    start_date: date = Field(
        ...,
        description="First due date"
    )
    end_date: Optional[date] = Field(
        default=None,
        description="Hard end of the schedule (income/expense)"
    )
    loan_terms: Optional[LoanTerms] = Field(
        default=None,
        description="Loan-only terms; present iff kind is LOAN"
    )

    # Cosmetic fields
    notes: Optional[str] = Field(
        default=None,
        max_length=1000,
    )
    category: Optional[str] = Field(
        default=None,
        max_length=50,
    )
    counterparty_name: Optional[str] = Field(
        default=None,
        max_length=200,
    )

    # Derived fields (reconciliation pass only)
    next_due_date: Optional[date] = None
    total_payable: Optional[Decimal] = None
    total_settled: Decimal = Decimal("0")
    remaining: Decimal = Decimal("0")
    schedule_total: Decimal = Decimal("0")

    @model_validator(mode='after')
    def validate_variant(self) -> 'Obligation':
        """Validate kind-specific invariants."""
        if self.kind == ObligationKind.LOAN:
            if self.loan_terms is None:
                raise ValueError("Loans require loan_terms")
            if self.frequency == Frequency.ONE_TIME:
                raise ValueError("Loans require a recurring frequency")
        elif self.loan_terms is not None:
            raise ValueError("loan_terms are only valid for loans")

        if self.end_date and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")

        return self

    @property
    def is_loan(self) -> bool:
        return self.kind == ObligationKind.LOAN

    @property
    def is_inflow(self) -> bool:
        """True when occurrences are money coming in (income, money lent out)."""
        if self.kind == ObligationKind.INCOME:
            return True
        if self.kind == ObligationKind.LOAN:
            return self.loan_terms.role == LoanRole.LENT
        return False

    def touch(self) -> None:
        """Refresh the update timestamp."""
        self.updated_at = datetime.now()


# =============================================================================
# OCCURRENCE
# =============================================================================

class Occurrence(BaseModel):
    """
    One concrete dated amount of an Obligation.

    snooze_until only delays reminders. It never moves due_date.
    """
    model_config = ConfigDict(validate_assignment=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique occurrence ID"
    )
    obligation_id: UUID = Field(
        ...,
        description="Owning obligation (foreign key)"
    )
    kind: ObligationKind = Field(
        ...,
        description="Kind of the owning obligation"
    )
    due_date: date = Field(
        ...,
        description="Calendar day the amount is due"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        decimal_places=2,
    )
    currency_code: str = Field(
        default="RON",
        min_length=3,
        max_length=3,
    )
    status: OccurrenceStatus = Field(
        default=OccurrenceStatus.PLANNED,
    )
    settled_date: Optional[date] = None
    snooze_until: Optional[datetime] = Field(
        default=None,
        description="Reminders are held back until this instant"
    )
    created_at: datetime = Field(
        default_factory=datetime.now,
    )
    updated_at: datetime = Field(
        default_factory=datetime.now,
    )

    @property
    def is_planned(self) -> bool:
        return self.status == OccurrenceStatus.PLANNED

    @property
    def is_settled(self) -> bool:
        return self.status == OccurrenceStatus.SETTLED

    def mark_settled(self, on: Optional[date] = None) -> None:
        """Mark this occurrence as paid/received."""
        self.status = OccurrenceStatus.SETTLED
        self.settled_date = on or date.today()
        self.snooze_until = None
        self.updated_at = datetime.now()


# =============================================================================
# SCHEDULE & CALCULATOR MODELS
# =============================================================================

class ScheduleItem(BaseModel):
    """A candidate occurrence (date + amount) that is not persisted yet."""

    due_date: date
    amount: Decimal


class LoanScheduleInput(BaseModel):
    """Input of the amortization calculator."""

    principal: Decimal = Field(
        ...,
        allow_inf_nan=True,
        description="Amount borrowed/lent"
    )
    interest: InterestTerms = Field(
        default_factory=InterestTerms,
    )
    period_count: int = Field(
        ...,
        description="Number of installments"
    )
    frequency: Frequency = Field(
        default=Frequency.MONTHLY,
    )
    start_date: date = Field(
        ...,
        description="Due date of the first installment"
    )


class LoanSchedule(BaseModel):
    """
    Output of the amortization calculator.

    sum(installments.amount) == total_payable whenever period_count > 0
    and the inputs are finite.
    """

    total_payable: Decimal = Field(..., allow_inf_nan=True)
    periodic_amount: Decimal = Field(..., allow_inf_nan=True)
    installments: list[ScheduleItem] = Field(default_factory=list)

    @property
    def installment_total(self) -> Decimal:
        return sum((item.amount for item in self.installments), Decimal("0"))


class LoanPreview(BaseModel):
    """Calculator preview for a loan that is not persisted."""

    periodic_amount: Decimal
    total_payable: Decimal
    total_interest: Decimal


class DueStatus(BaseModel):
    """Due-date status of an occurrence relative to a reference day."""

    state: DueState
    days: int = Field(
        default=0,
        ge=0,
        description="Days overdue (OVERDUE) or days until due (DUE_IN_DAYS)"
    )

    @property
    def days_until_due(self) -> int:
        """Signed number of days until due (negative when overdue)."""
        if self.state == DueState.OVERDUE:
            return -self.days
        if self.state == DueState.DUE_TODAY:
            return 0
        if self.state == DueState.DUE_TOMORROW:
            return 1
        return self.days
