"""
Audit logging for schedule changes.

Every mutation of an obligation, its occurrences or the reminder set
produces one AuditEvent. Events go to the structured local log first and
then, when a backend is configured, to audit storage. Writing an audit
event never raises: a broken audit backend must not undo or block the
change being recorded.
"""

from collections import deque
from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

import structlog

from src.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from src.services.storage import AuditStorageInterface


# Local structured log, JSON lines
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

_LEVELS = {
    AuditSeverity.DEBUG: "debug",
    AuditSeverity.INFO: "info",
    AuditSeverity.WARNING: "warning",
    AuditSeverity.ERROR: "error",
    AuditSeverity.CRITICAL: "critical",
}


class AuditLogger:
    """
    Writes audit events to the local log and, optionally, to audit storage.

    The most recent ``recent_limit`` events are also kept in ``events`` so
    callers can inspect what an operation just recorded. Older events are
    only in the local log and audit storage.
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
        recent_limit: int = 500,
    ):
        self._storage = storage
        self._logger = structlog.get_logger()
        self.events: deque[AuditEvent] = deque(maxlen=recent_limit)

    async def log(self, event: AuditEvent) -> bool:
        """
        Record one event.

        Returns False only when audit storage rejected or failed the write.
        """
        self.events.append(event)
        emit = getattr(self._logger, _LEVELS[event.severity])
        emit("audit_event", **event.to_log_dict())

        if self._storage is None:
            return True
        try:
            return await self._storage.append_event(event)
        except Exception as e:
            self._logger.error(
                "audit_storage_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

    async def log_obligation_created(
        self,
        obligation_id: UUID,
        kind: str,
        title: str,
        correlation_id: UUID,
    ) -> None:
        """Log obligation creation."""
        await self.log(AuditEventBuilder.obligation_created(
            obligation_id=obligation_id,
            kind=kind,
            title=title,
            correlation_id=correlation_id,
        ))

    async def log_obligation_updated(
        self,
        obligation_id: UUID,
        changed_fields: list[str],
        correlation_id: UUID,
    ) -> None:
        """Log an obligation edit."""
        await self.log(AuditEventBuilder.obligation_updated(
            obligation_id=obligation_id,
            changed_fields=changed_fields,
            correlation_id=correlation_id,
        ))

    async def log_obligation_deleted(
        self,
        obligation_id: UUID,
        occurrence_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.obligation_deleted(
            obligation_id=obligation_id,
            occurrence_count=occurrence_count,
            correlation_id=correlation_id,
        ))

    async def log_schedule_generated(
        self,
        obligation_id: UUID,
        created: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.schedule_generated(
            obligation_id=obligation_id,
            created=created,
            correlation_id=correlation_id,
        ))

    async def log_schedule_refreshed(
        self,
        obligation_id: UUID,
        kept: int,
        removed: int,
        created: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.schedule_refreshed(
            obligation_id=obligation_id,
            kept=kept,
            removed=removed,
            created=created,
            correlation_id=correlation_id,
        ))

    async def log_occurrence_settled(
        self,
        occurrence_id: UUID,
        obligation_id: UUID,
        correlation_id: UUID,
    ) -> None:
        """Log a paid/received occurrence."""
        await self.log(AuditEventBuilder.occurrence_settled(
            occurrence_id=occurrence_id,
            obligation_id=obligation_id,
            correlation_id=correlation_id,
        ))

    async def log_occurrence_snoozed(
        self,
        occurrence_id: UUID,
        until: datetime,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.occurrence_snoozed(
            occurrence_id=occurrence_id,
            until=until,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        obligation_id: UUID,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        """Log validation failure."""
        await self.log(AuditEventBuilder.validation_failed(
            obligation_id=obligation_id,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_save_failed(
        self,
        obligation_id: Optional[UUID],
        operation: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a rolled-back save."""
        await self.log(AuditEventBuilder.save_failed(
            obligation_id=obligation_id,
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_reminders_resynced(
        self,
        scheduled: int,
        cancelled: int,
        badge_count: int,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.reminders_resynced(
            scheduled=scheduled,
            cancelled=cancelled,
            badge_count=badge_count,
            correlation_id=correlation_id,
        ))

    async def log_notification_failed(
        self,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.notification_failed(
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """One id per user action; every event and resync it triggers carries it."""
    return uuid4()
