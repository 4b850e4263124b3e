"""Tests for the audit logger."""

import pytest
from uuid import uuid4

from src.audit import AuditLogger, create_correlation_id
from src.models.audit import AuditEvent, AuditEventType, AuditSeverity
from src.services.storage import InMemoryAuditStorage, StorageError


class FailingAuditStorage(InMemoryAuditStorage):
    async def append_event(self, event: AuditEvent) -> bool:
        raise StorageError("sheet unavailable")


class TestAuditLogger:
    @pytest.mark.asyncio()
    async def test_events_reach_storage(self):
        storage = InMemoryAuditStorage()
        audit_logger = AuditLogger(storage)

        await audit_logger.log_schedule_generated(uuid4(), 12, create_correlation_id())

        assert len(storage.events) == 1
        assert list(audit_logger.events) == storage.events

    @pytest.mark.asyncio()
    async def test_local_only(self):
        audit_logger = AuditLogger()

        assert await audit_logger.log(AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description="boom",
        ))
        assert len(audit_logger.events) == 1

    @pytest.mark.asyncio()
    async def test_storage_failure_is_not_raised(self):
        """Audit storage problems never break the flow being audited."""
        audit_logger = AuditLogger(FailingAuditStorage())

        written = await audit_logger.log(AuditEvent(
            event_type=AuditEventType.NOTIFICATION_FAILED,
            severity=AuditSeverity.WARNING,
            description="resync failed",
        ))

        assert written is False
        assert len(audit_logger.events) == 1

    @pytest.mark.asyncio()
    async def test_save_failed_event(self):
        audit_logger = AuditLogger()
        obligation_id = uuid4()

        await audit_logger.log_save_failed(obligation_id, "update", "disk full", uuid4())

        event = audit_logger.events[0]
        assert event.event_type == AuditEventType.SAVE_FAILED
        assert event.entity_id == obligation_id

    def test_correlation_ids_are_unique(self):
        assert create_correlation_id() != create_correlation_id()

    @pytest.mark.asyncio()
    async def test_recent_events_are_bounded(self):
        """Only the newest events stay in memory; storage still gets all of them."""
        storage = InMemoryAuditStorage()
        audit_logger = AuditLogger(storage, recent_limit=3)
        obligation_ids = [uuid4() for _ in range(5)]

        for obligation_id in obligation_ids:
            await audit_logger.log_schedule_generated(obligation_id, 12, create_correlation_id())

        assert len(storage.events) == 5
        assert [e.entity_id for e in audit_logger.events] == obligation_ids[2:]
