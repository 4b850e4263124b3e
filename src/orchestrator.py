"""
ObligationService: the single entry point for schedule mutations and views.

Flows owned here:
1. Obligation lifecycle (create -> generate schedule -> edit -> refresh -> delete)
2. Occurrence actions (mark settled, snooze reminders)
3. Read views (upcoming list, dashboard, badge)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Every mutation of one obligation is serialized by a per-obligation lock
- Every mutation stages its writes and commits them with ONE save();
  on any failure the store is rolled back and the error is re-raised
- Notification resync runs AFTER the commit, as a separate phase. A
  dispatcher failure is logged and audited but never undoes a saved edit;
  the resync is retried on the next foreground
- Every step is audited
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from typing import Any, AsyncIterator, Callable, Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from src.audit import AuditLogger, create_correlation_id
from src.config import AppSettings, NotificationSettings, get_settings
from src.models.obligation import Obligation, Occurrence
from src.models.preferences import AppPreferences
from src.models.validation import ValidationResult
from src.queries.dashboard import (
    DashboardSummary,
    UpcomingItem,
    build_dashboard_summary,
    build_upcoming_items,
)
from src.scheduling.generator import ScheduleGenerator, schedule_affecting_changes
from src.scheduling.reconciliation import apply_derived_fields, schedule_mismatch
from src.services.notifications import (
    InMemoryNotificationDispatcher,
    NotificationDispatcher,
    NotificationDispatchError,
    NotificationReconciler,
)
from src.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
    InMemoryRecordStore,
    RecordStore,
    StorageError,
    load_preferences,
)
from src.validation import (
    ObligationValidationError,
    ObligationValidator,
    result_from_model_error,
)


# Fields a caller may change through update_obligation()
EDITABLE_FIELDS = frozenset({
    "title",
    "amount",
    "currency_code",
    "frequency",
    "start_date",
    "end_date",
    "loan_terms",
    "notes",
    "category",
    "counterparty_name",
})

EDITABLE_PREFERENCES = frozenset({
    "lead_time_days",
    "notifications_enabled",
    "default_currency_code",
})

logger = structlog.get_logger(__name__)


class ObligationService:
    """
    Orchestrates every change to obligations and their schedules.

    Flow of a mutation:
    1. Validate (obligation edits only)
    2. Lock the obligation
    3. Stage: regenerate occurrences, recompute derived fields
    4. Commit once (rollback + re-raise on failure)
    5. Audit
    6. Resync reminders and badge (failures isolated)
    """

    def __init__(
        self,
        store: RecordStore,
        dispatcher: Optional[NotificationDispatcher] = None,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[ObligationValidator] = None,
        app_settings: Optional[AppSettings] = None,
        notification_settings: Optional[NotificationSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._clock = clock or datetime.now
        self._app_settings = app_settings or get_settings().app
        self._generator = ScheduleGenerator(store, self._clock)
        self._validator = validator or ObligationValidator(self._app_settings, self._clock)
        self._audit_logger = audit_logger or AuditLogger()
        self._reconciler = None
        if dispatcher is not None:
            self._reconciler = NotificationReconciler(
                dispatcher,
                notification_settings or get_settings().notifications,
                self._clock,
            )

        self._locks: dict[UUID, asyncio.Lock] = {}
        # Guards the store's single staging area between stage and commit
        self._write_lock = asyncio.Lock()

    @property
    def reconciler(self) -> Optional[NotificationReconciler]:
        return self._reconciler

    def _today(self) -> date:
        return self._clock().date()

    def _lock_for(self, obligation_id: UUID) -> asyncio.Lock:
        return self._locks.setdefault(obligation_id, asyncio.Lock())

    @asynccontextmanager
    async def _unit_of_work(
        self,
        operation: str,
        obligation_id: Optional[UUID],
        correlation_id: UUID,
    ) -> AsyncIterator[None]:
        """
        Stage inside the block, commit on exit.

        Any exception rolls the store back and is re-raised.
        """
        async with self._write_lock:
            try:
                yield
                await self._store.save()
            except Exception as e:
                await self._store.rollback()
                logger.error(
                    "mutation_rolled_back",
                    operation=operation,
                    obligation_id=str(obligation_id) if obligation_id else None,
                    error=str(e),
                )
                if isinstance(e, StorageError):
                    await self._audit_logger.log_save_failed(
                        obligation_id=obligation_id,
                        operation=operation,
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
                else:
                    await self._audit_logger.log_error(
                        error_type=type(e).__name__,
                        error_message=str(e),
                        details={"operation": operation},
                        correlation_id=correlation_id,
                    )
                raise

    async def _reconcile_derived_fields(self, obligation: Obligation) -> Obligation:
        """Stage the obligation with derived fields recomputed from its occurrences."""
        occurrences = await self._store.occurrences_for(obligation.id)
        apply_derived_fields(obligation, occurrences)
        await self._store.insert(obligation)
        schedule_mismatch(obligation)
        return obligation

    async def _rejection(
        self,
        result: ValidationResult,
        correlation_id: UUID,
    ) -> ObligationValidationError:
        await self._audit_logger.log_validation_failed(
            obligation_id=result.obligation_id,
            issues=[issue.model_dump() for issue in result.issues],
            correlation_id=correlation_id,
        )
        return ObligationValidationError(result)

    async def _validate(self, obligation: Obligation, correlation_id: UUID) -> None:
        result = self._validator.validate(obligation)
        if not result.is_valid:
            raise await self._rejection(result, correlation_id)

    # =========================================================================
    # OBLIGATION LIFECYCLE
    # =========================================================================

    async def create_obligation(
        self,
        obligation: Obligation,
        correlation_id: Optional[UUID] = None,
    ) -> Obligation:
        """
        Validate, persist and schedule a new obligation.

        Raises:
            ObligationValidationError: If the obligation has errors
            StorageError: If the commit fails (nothing is persisted)
        """
        correlation_id = correlation_id or create_correlation_id()
        await self._validate(obligation, correlation_id)

        async with self._lock_for(obligation.id):
            async with self._unit_of_work("create", obligation.id, correlation_id):
                occurrences = await self._generator.generate_initial_schedule(obligation)
                await self._reconcile_derived_fields(obligation)

            await self._audit_logger.log_obligation_created(
                obligation_id=obligation.id,
                kind=obligation.kind.value,
                title=obligation.title,
                correlation_id=correlation_id,
            )
            await self._audit_logger.log_schedule_generated(
                obligation_id=obligation.id,
                created=len(occurrences),
                correlation_id=correlation_id,
            )

        await self._resync_safely(correlation_id)
        return obligation

    async def update_obligation(
        self,
        obligation_id: UUID,
        changes: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> Obligation:
        """
        Apply field changes to an obligation.

        The planned tail is regenerated only when a schedule-affecting field
        changed. Cosmetic edits (title, notes, ...) leave occurrences alone.

        Raises:
            ValueError: If changes name a field that cannot be edited
            NotFoundError: If the obligation does not exist
            ObligationValidationError: If the edited obligation has errors
            StorageError: If the commit fails (nothing is persisted)
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        correlation_id = correlation_id or create_correlation_id()

        async with self._lock_for(obligation_id):
            before = await self._store.get_obligation(obligation_id)
            try:
                after = Obligation.model_validate({**before.model_dump(), **changes})
            except ValidationError as e:
                raise await self._rejection(
                    result_from_model_error(obligation_id, e),
                    correlation_id,
                ) from e
            await self._validate(after, correlation_id)

            changed = sorted(schedule_affecting_changes(before, after))
            delta = None

            async with self._unit_of_work("update", obligation_id, correlation_id):
                if changed:
                    delta = await self._generator.apply_refresh(after)
                else:
                    after.touch()
                await self._reconcile_derived_fields(after)

            await self._audit_logger.log_obligation_updated(
                obligation_id=obligation_id,
                changed_fields=changed,
                correlation_id=correlation_id,
            )
            if delta is not None:
                await self._audit_logger.log_schedule_refreshed(
                    obligation_id=obligation_id,
                    kept=len(delta.kept),
                    removed=len(delta.removed),
                    created=len(delta.created),
                    correlation_id=correlation_id,
                )

        if changed:
            await self._resync_safely(correlation_id)
        return after

    async def delete_obligation(
        self,
        obligation_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """
        Delete an obligation together with all of its occurrences.

        Returns:
            Number of occurrences deleted

        Raises:
            NotFoundError: If the obligation does not exist
        """
        correlation_id = correlation_id or create_correlation_id()

        async with self._lock_for(obligation_id):
            obligation = await self._store.get_obligation(obligation_id)
            async with self._unit_of_work("delete", obligation_id, correlation_id):
                occurrences = await self._store.occurrences_for(obligation_id)
                for occurrence in occurrences:
                    await self._store.delete(occurrence)
                await self._store.delete(obligation)

            await self._audit_logger.log_obligation_deleted(
                obligation_id=obligation_id,
                occurrence_count=len(occurrences),
                correlation_id=correlation_id,
            )
        self._locks.pop(obligation_id, None)

        await self._resync_safely(correlation_id)
        return len(occurrences)

    async def get_obligation(self, obligation_id: UUID) -> Obligation:
        return await self._store.get_obligation(obligation_id)

    async def list_obligations(self) -> list[Obligation]:
        obligations = await self._store.all_obligations()
        return sorted(obligations, key=lambda o: o.created_at, reverse=True)

    async def occurrences_for(self, obligation_id: UUID) -> list[Occurrence]:
        return await self._store.occurrences_for(obligation_id)

    # =========================================================================
    # SCHEDULE GENERATION
    # =========================================================================

    async def generate_initial_schedule(
        self,
        obligation_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> list[Occurrence]:
        """Replace every occurrence of an obligation with a fresh schedule."""
        correlation_id = correlation_id or create_correlation_id()

        async with self._lock_for(obligation_id):
            async with self._unit_of_work("generate", obligation_id, correlation_id):
                obligation = await self._store.get_obligation(obligation_id)
                occurrences = await self._generator.generate_initial_schedule(obligation)
                await self._reconcile_derived_fields(obligation)

            await self._audit_logger.log_schedule_generated(
                obligation_id=obligation_id,
                created=len(occurrences),
                correlation_id=correlation_id,
            )

        await self._resync_safely(correlation_id)
        return occurrences

    async def _refresh(self, obligation_id: UUID, correlation_id: UUID) -> list[Occurrence]:
        async with self._lock_for(obligation_id):
            async with self._unit_of_work("refresh", obligation_id, correlation_id):
                obligation = await self._store.get_obligation(obligation_id)
                delta = await self._generator.apply_refresh(obligation)
                await self._reconcile_derived_fields(obligation)

            await self._audit_logger.log_schedule_refreshed(
                obligation_id=obligation_id,
                kept=len(delta.kept),
                removed=len(delta.removed),
                created=len(delta.created),
                correlation_id=correlation_id,
            )
        return delta.created

    async def refresh_schedule(
        self,
        obligation_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> list[Occurrence]:
        """
        Regenerate the planned tail of an obligation.

        Settled occurrences are preserved. Returns the new planned ones.
        """
        correlation_id = correlation_id or create_correlation_id()
        created = await self._refresh(obligation_id, correlation_id)
        await self._resync_safely(correlation_id)
        return created

    async def reschedule_all(
        self,
        correlation_id: Optional[UUID] = None,
    ) -> dict[UUID, int]:
        """
        Refresh every obligation, e.g. to roll the 12-month horizon forward.

        Each obligation commits on its own; one failure does not stop the
        others. Failed obligations are left out of the returned mapping.

        Returns:
            Number of new planned occurrences per refreshed obligation
        """
        correlation_id = correlation_id or create_correlation_id()
        results: dict[UUID, int] = {}

        for obligation in await self._store.all_obligations():
            try:
                created = await self._refresh(obligation.id, correlation_id)
            except StorageError as e:
                logger.error(
                    "reschedule_failed",
                    obligation_id=str(obligation.id),
                    error=str(e),
                )
                continue
            results[obligation.id] = len(created)

        await self._resync_safely(correlation_id)
        return results

    # =========================================================================
    # OCCURRENCE ACTIONS
    # =========================================================================

    async def mark_settled(
        self,
        occurrence_id: UUID,
        settled_on: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Occurrence:
        """
        Mark an occurrence as paid/received.

        Settling an already settled occurrence changes nothing.

        Raises:
            NotFoundError: If the occurrence does not exist
        """
        correlation_id = correlation_id or create_correlation_id()
        obligation_id = (await self._store.get_occurrence(occurrence_id)).obligation_id

        async with self._lock_for(obligation_id):
            occurrence = await self._store.get_occurrence(occurrence_id)
            if occurrence.is_settled:
                return occurrence

            async with self._unit_of_work("settle", obligation_id, correlation_id):
                occurrence.mark_settled(settled_on or self._today())
                await self._store.insert(occurrence)
                obligation = await self._store.get_obligation(obligation_id)
                await self._reconcile_derived_fields(obligation)

            await self._audit_logger.log_occurrence_settled(
                occurrence_id=occurrence_id,
                obligation_id=obligation_id,
                correlation_id=correlation_id,
            )

        await self._resync_safely(correlation_id)
        return occurrence

    async def snooze_occurrence(
        self,
        occurrence_id: UUID,
        until: Optional[datetime] = None,
        days: int = 1,
        correlation_id: Optional[UUID] = None,
    ) -> Occurrence:
        """
        Hold back the reminders of an occurrence.

        The due date never moves. Defaults to one day from now.

        Raises:
            NotFoundError: If the occurrence does not exist
            ValueError: If the occurrence is already settled
        """
        correlation_id = correlation_id or create_correlation_id()
        obligation_id = (await self._store.get_occurrence(occurrence_id)).obligation_id

        async with self._lock_for(obligation_id):
            occurrence = await self._store.get_occurrence(occurrence_id)
            if occurrence.is_settled:
                raise ValueError("Settled occurrences cannot be snoozed")

            snooze_until = until or self._clock() + timedelta(days=days)
            async with self._unit_of_work("snooze", obligation_id, correlation_id):
                occurrence.snooze_until = snooze_until
                occurrence.updated_at = self._clock()
                await self._store.insert(occurrence)

            await self._audit_logger.log_occurrence_snoozed(
                occurrence_id=occurrence_id,
                until=snooze_until,
                correlation_id=correlation_id,
            )

        await self._resync_safely(correlation_id)
        return occurrence

    # =========================================================================
    # PREFERENCES
    # =========================================================================

    async def preferences(self) -> AppPreferences:
        """The singleton preferences record, created with defaults on first access."""
        async with self._write_lock:
            return await load_preferences(
                self._store,
                AppPreferences(
                    lead_time_days=self._app_settings.default_lead_time_days,
                    default_currency_code=self._app_settings.default_currency_code,
                ),
            )

    async def update_preferences(
        self,
        changes: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> AppPreferences:
        """
        Change lead time, notification switch or default currency.

        Reminders are resynced afterwards since both the lead time and the
        switch change what is scheduled.
        """
        unknown = set(changes) - EDITABLE_PREFERENCES
        if unknown:
            raise ValueError(f"Preferences cannot be edited: {', '.join(sorted(unknown))}")

        correlation_id = correlation_id or create_correlation_id()
        current = await self.preferences()
        updated = AppPreferences.model_validate({**current.model_dump(), **changes})
        updated.touch()

        async with self._unit_of_work("preferences", None, correlation_id):
            await self._store.insert(updated)

        await self._resync_safely(correlation_id)
        return updated

    # =========================================================================
    # NOTIFICATIONS
    # =========================================================================

    async def _resync_safely(self, correlation_id: Optional[UUID]) -> Optional[int]:
        """Resync reminders; failures are logged and audited, never raised."""
        if self._reconciler is None:
            return None

        preferences = await self.preferences()
        occurrences = await self._store.all_occurrences()
        titles = {o.id: o.title for o in await self._store.all_obligations()}

        try:
            result = await self._reconciler.resync(occurrences, preferences, titles)
        except NotificationDispatchError as e:
            logger.warning("reminders_pending", error=str(e))
            await self._audit_logger.log_notification_failed(
                error_message=str(e),
                correlation_id=correlation_id,
            )
            return None

        await self._audit_logger.log_reminders_resynced(
            scheduled=result.scheduled,
            cancelled=result.cancelled,
            badge_count=result.badge_count,
            correlation_id=correlation_id,
        )
        return result.badge_count

    async def resync_notifications(
        self,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[int]:
        """
        Bring reminders and the badge in line with the stored schedule.

        Returns:
            The published badge count, or None when no dispatcher is
            configured or the resync failed (it stays pending)
        """
        return await self._resync_safely(correlation_id or create_correlation_id())

    async def on_foreground(self) -> Optional[int]:
        """Retry a resync that failed earlier. No-op when nothing is pending."""
        if self._reconciler is None or not self._reconciler.pending:
            return None
        logger.info("retrying_pending_resync")
        return await self._resync_safely(create_correlation_id())

    # =========================================================================
    # READ VIEWS
    # =========================================================================

    async def upcoming(self, now: Optional[datetime] = None) -> list[UpcomingItem]:
        """Upcoming occurrences for the dashboard list, earliest first."""
        preferences = await self.preferences()
        return build_upcoming_items(
            await self._store.all_occurrences(),
            await self._store.all_obligations(),
            preferences.lead_time_days,
            now or self._clock(),
        )

    async def dashboard_summary(self, now: Optional[datetime] = None) -> DashboardSummary:
        """Upcoming list, badge and per-currency totals."""
        preferences = await self.preferences()
        return build_dashboard_summary(
            await self._store.all_obligations(),
            await self._store.all_occurrences(),
            preferences.lead_time_days,
            now or self._clock(),
        )


def create_service(
    use_storage: bool = True,
) -> ObligationService:
    """
    Build a service on the sheet store, or on memory when sheets are
    unconfigured or ``use_storage`` is False.
    """
    store: RecordStore
    audit_logger: AuditLogger

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            store = GoogleSheetsRecordStore(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            logger.warning("storage_not_configured", error=str(e))
            store = InMemoryRecordStore()
            audit_logger = AuditLogger()
    else:
        store = InMemoryRecordStore()
        audit_logger = AuditLogger()

    return ObligationService(
        store=store,
        dispatcher=InMemoryNotificationDispatcher(),
        audit_logger=audit_logger,
    )
