"""
Data Models Package

This package contains all Pydantic models used by the finance tracker.
All data flowing through the schedule engine must conform to these schemas.
"""

from src.models.obligation import (
    DueState,
    DueStatus,
    Frequency,
    InterestMode,
    InterestTerms,
    LoanPreview,
    LoanRole,
    LoanSchedule,
    LoanScheduleInput,
    LoanTerms,
    Obligation,
    ObligationKind,
    Occurrence,
    OccurrenceStatus,
    ScheduleItem,
)
from src.models.preferences import AppPreferences
from src.models.validation import ValidationIssue, ValidationResult
from src.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Obligation models
    "DueState",
    "DueStatus",
    "Frequency",
    "InterestMode",
    "InterestTerms",
    "LoanPreview",
    "LoanRole",
    "LoanSchedule",
    "LoanScheduleInput",
    "LoanTerms",
    "Obligation",
    "ObligationKind",
    "Occurrence",
    "OccurrenceStatus",
    "ScheduleItem",
    # Preferences
    "AppPreferences",
    # Validation
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
