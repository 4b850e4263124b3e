"""
Two-Stage Obligation Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - STRUCTURAL VALIDATION:
- Amount must be positive
- Currency code format
- Loan terms must match the interest mode
- This catches input the schedule engine cannot turn into a schedule

STAGE 2 - SEMANTIC VALIDATION:
- Absurd amounts and rates
- One-time obligations dated in the past (nothing will be generated)
- End dates already behind us
- Loans without installments (principal-only, no schedule)
- This catches input that is legal but probably not what the user meant

Stage 2 only runs when stage 1 found no errors.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them for the caller. Errors block the save, warnings don't.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from src.config import AppSettings, get_settings
from src.models.obligation import Frequency, InterestMode, Obligation
from src.models.validation import ValidationIssue, ValidationResult


logger = structlog.get_logger(__name__)


class ObligationValidationError(Exception):
    """Raised when an obligation has error-level validation issues."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = "; ".join(
            issue.message for issue in result.issues if issue.severity == "error"
        )
        super().__init__(f"Invalid obligation: {messages}")


class ObligationValidator:
    """
    Validates obligations before their schedule is generated.

    Stage 1: Structural validation
    Stage 2: Semantic validation
    """

    def __init__(
        self,
        settings: Optional[AppSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._settings = settings or get_settings().app
        self._clock = clock or datetime.now

    def _validate_structure(self, obligation: Obligation) -> list[ValidationIssue]:
        """
        Stage 1: Structural validation.

        Returns: list of issues
        """
        issues = []

        if obligation.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
                suggested_fix="Enter the amount per occurrence (or the loan principal)",
            ))

        code = obligation.currency_code
        if not (code.isalpha() and code.isupper()):
            issues.append(ValidationIssue(
                field="currency_code",
                issue_type="invalid_format",
                message=f"Currency code '{code}' must be three uppercase letters",
                severity="error",
                suggested_fix="Use an ISO code such as RON, EUR or USD",
            ))

        if obligation.is_loan:
            interest = obligation.loan_terms.interest

            if interest.mode == InterestMode.PERCENTAGE_ANNUAL:
                rate = interest.annual_rate_percent
                if rate is None:
                    issues.append(ValidationIssue(
                        field="loan_terms.interest.annual_rate_percent",
                        issue_type="missing",
                        message="An annual rate is required for percentage interest",
                        severity="error",
                    ))
                elif not rate.is_finite() or rate < 0:
                    issues.append(ValidationIssue(
                        field="loan_terms.interest.annual_rate_percent",
                        issue_type="invalid_value",
                        message=f"Annual rate ({rate}) must be a non-negative number",
                        severity="error",
                    ))

            if interest.mode == InterestMode.FIXED_TOTAL and interest.fixed_total is None:
                issues.append(ValidationIssue(
                    field="loan_terms.interest.fixed_total",
                    issue_type="missing",
                    message="A total to repay is required for fixed-total interest",
                    severity="error",
                ))

        return issues

    def _validate_semantic(self, obligation: Obligation) -> list[ValidationIssue]:
        """
        Stage 2: Semantic validation.

        Returns: list of issues
        """
        issues = []
        today = self._clock().date()

        max_amount = Decimal(str(self._settings.max_obligation_amount))
        if obligation.amount > max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({obligation.amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        if obligation.frequency == Frequency.ONE_TIME and obligation.start_date < today:
            issues.append(ValidationIssue(
                field="start_date",
                issue_type="past_date",
                message="One-time date is in the past; no occurrence will be scheduled",
                severity="warning",
                suggested_fix="Pick today or a future date",
            ))

        if obligation.end_date and obligation.end_date < today and not obligation.is_loan:
            issues.append(ValidationIssue(
                field="end_date",
                issue_type="past_date",
                message="End date is in the past; no occurrence will be scheduled",
                severity="warning",
            ))

        if obligation.start_date < today - timedelta(days=365 * 10):
            issues.append(ValidationIssue(
                field="start_date",
                issue_type="suspicious_date",
                message=f"Start date ({obligation.start_date}) seems unusually old",
                severity="info",
            ))

        if obligation.is_loan:
            issues.extend(self._validate_loan_semantics(obligation))

        return issues

    def _validate_loan_semantics(self, obligation: Obligation) -> list[ValidationIssue]:
        issues = []
        terms = obligation.loan_terms

        if terms.period_count <= 0:
            issues.append(ValidationIssue(
                field="loan_terms.period_count",
                issue_type="degenerate",
                message="Loan has no installments; only the principal is tracked",
                severity="warning",
                suggested_fix="Enter the number of installments",
            ))

        rate = terms.interest.annual_rate_percent
        max_rate = Decimal(str(self._settings.max_annual_rate_percent))
        if (
            terms.interest.mode == InterestMode.PERCENTAGE_ANNUAL
            and rate is not None
            and rate > max_rate
        ):
            issues.append(ValidationIssue(
                field="loan_terms.interest.annual_rate_percent",
                issue_type="suspicious_value",
                message=f"Annual rate ({rate}%) seems unusually high",
                severity="warning",
            ))

        fixed_total = terms.interest.fixed_total
        if (
            terms.interest.mode == InterestMode.FIXED_TOTAL
            and fixed_total is not None
            and fixed_total < obligation.amount
        ):
            issues.append(ValidationIssue(
                field="loan_terms.interest.fixed_total",
                issue_type="inconsistent",
                message="Total to repay is lower than the principal",
                severity="warning",
                suggested_fix="Please verify both amounts",
            ))

        return issues

    def validate(self, obligation: Obligation) -> ValidationResult:
        """
        Run both validation stages.

        Stage 2 is skipped when stage 1 reports an error.
        """
        issues = self._validate_structure(obligation)
        structure_ok = not any(issue.severity == "error" for issue in issues)

        if structure_ok:
            issues.extend(self._validate_semantic(obligation))

        result = ValidationResult(
            obligation_id=obligation.id,
            is_valid=not any(issue.severity == "error" for issue in issues),
            issues=issues,
        )

        if not result.is_valid:
            logger.info(
                "obligation_invalid",
                obligation_id=str(obligation.id),
                errors=result.error_count,
            )
        return result

    def ensure_valid(self, obligation: Obligation) -> ValidationResult:
        """
        Validate and raise on errors.

        Raises:
            ObligationValidationError: If any error-level issue exists
        """
        result = self.validate(obligation)
        if not result.is_valid:
            raise ObligationValidationError(result)
        return result


def result_from_model_error(obligation_id: UUID, error: ValidationError) -> ValidationResult:
    """Report a rejected model construction as error-level validation issues."""
    issues = [
        ValidationIssue(
            field=".".join(str(part) for part in detail["loc"]) or "obligation",
            issue_type="invalid_value",
            message=detail["msg"],
            severity="error",
        )
        for detail in error.errors()
    ]
    return ValidationResult(obligation_id=obligation_id, is_valid=False, issues=issues)
