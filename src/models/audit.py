"""
Audit trail entries for obligations, occurrences and reminders.

Schedule regenerations, settlements, failed saves and reminder resyncs
each leave one event behind, so a schedule can be explained after the
fact. Events are only ever appended.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    OBLIGATION_CREATED = "obligation_created"
    OBLIGATION_UPDATED = "obligation_updated"
    OBLIGATION_DELETED = "obligation_deleted"

    SCHEDULE_GENERATED = "schedule_generated"
    SCHEDULE_REFRESHED = "schedule_refreshed"

    OCCURRENCE_SETTLED = "occurrence_settled"
    OCCURRENCE_SNOOZED = "occurrence_snoozed"

    VALIDATION_FAILED = "validation_failed"
    SAVE_FAILED = "save_failed"

    REMINDERS_RESYNCED = "reminders_resynced"
    NOTIFICATION_FAILED = "notification_failed"

    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """One append-only entry in the audit trail."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(default_factory=datetime.now)

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # "obligation", "occurrence" or "notifications"
    entity_type: Optional[str] = None
    entity_id: Optional[UUID] = None

    # Shared by every event one user action produces
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="True when a user edit, settlement or snooze caused it"
    )

    def to_log_dict(self) -> dict:
        return self.model_dump(mode="json")

    def to_sheets_row(self) -> list:
        """Flatten into the audit worksheet's column order (see AUDIT_COLUMNS)."""
        fields = self.to_log_dict()
        fields["timestamp"] = self.timestamp.isoformat()
        row = [
            "" if fields[name] is None else str(fields[name])
            for name in (
                "event_id", "timestamp", "event_type", "severity",
                "entity_type", "entity_id", "correlation_id", "description",
            )
        ]
        row.append(json.dumps(self.details) if self.details else "")
        row.append(self.error_message or "")
        row.append(str(self.is_user_action))
        return row


class AuditEventBuilder:
    """Factory methods for the events the service emits, one per event type."""

    @staticmethod
    def obligation_created(
        obligation_id: UUID,
        kind: str,
        title: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OBLIGATION_CREATED,
            entity_type="obligation",
            entity_id=obligation_id,
            correlation_id=correlation_id,
            description=f"Created {kind}: {title}",
            details={"kind": kind},
            is_user_action=True,
        )

    @staticmethod
    def obligation_updated(
        obligation_id: UUID,
        changed_fields: list[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OBLIGATION_UPDATED,
            entity_type="obligation",
            entity_id=obligation_id,
            correlation_id=correlation_id,
            description="Obligation updated",
            details={"schedule_fields_changed": changed_fields},
            is_user_action=True,
        )

    @staticmethod
    def obligation_deleted(
        obligation_id: UUID,
        occurrence_count: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OBLIGATION_DELETED,
            entity_type="obligation",
            entity_id=obligation_id,
            correlation_id=correlation_id,
            description=f"Obligation deleted with {occurrence_count} occurrences",
            details={"occurrence_count": occurrence_count},
            is_user_action=True,
        )

    @staticmethod
    def schedule_generated(
        obligation_id: UUID,
        created: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEDULE_GENERATED,
            entity_type="obligation",
            entity_id=obligation_id,
            correlation_id=correlation_id,
            description=f"Generated {created} occurrences",
            details={"created": created},
        )

    @staticmethod
    def schedule_refreshed(
        obligation_id: UUID,
        kept: int,
        removed: int,
        created: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEDULE_REFRESHED,
            entity_type="obligation",
            entity_id=obligation_id,
            correlation_id=correlation_id,
            description=f"Refreshed schedule: {kept} settled kept, {created} planned created",
            details={
                "kept": kept,
                "removed": removed,
                "created": created,
            },
        )

    @staticmethod
    def occurrence_settled(
        occurrence_id: UUID,
        obligation_id: UUID,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OCCURRENCE_SETTLED,
            entity_type="occurrence",
            entity_id=occurrence_id,
            correlation_id=correlation_id,
            description="Occurrence marked as settled",
            details={"obligation_id": str(obligation_id)},
            is_user_action=True,
        )

    @staticmethod
    def occurrence_snoozed(
        occurrence_id: UUID,
        until: datetime,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OCCURRENCE_SNOOZED,
            entity_type="occurrence",
            entity_id=occurrence_id,
            correlation_id=correlation_id,
            description=f"Reminders snoozed until {until.isoformat()}",
            details={"snooze_until": until.isoformat()},
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        obligation_id: UUID,
        issues: list[dict],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="obligation",
            entity_id=obligation_id,
            correlation_id=correlation_id,
            description=f"Validation failed with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def save_failed(
        obligation_id: Optional[UUID],
        operation: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="obligation",
            entity_id=obligation_id,
            correlation_id=correlation_id,
            description=f"Save failed during {operation}",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def reminders_resynced(
        scheduled: int,
        cancelled: int,
        badge_count: int,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMINDERS_RESYNCED,
            entity_type="notifications",
            correlation_id=correlation_id,
            description=f"Reminders resynced, badge = {badge_count}",
            details={
                "scheduled": scheduled,
                "cancelled": cancelled,
                "badge_count": badge_count,
            },
        )

    @staticmethod
    def notification_failed(
        error_message: str,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NOTIFICATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="notifications",
            correlation_id=correlation_id,
            description="Reminder resync failed; will retry on next foreground",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
