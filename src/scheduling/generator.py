"""
Schedule Generator

Turns an obligation into persisted occurrences and keeps them correct as the
obligation is edited.

TWO OPERATIONS:
- Generate: wipe the obligation's occurrences and create one planned
  occurrence per candidate.
- Refresh: keep every SETTLED occurrence verbatim, discard every PLANNED
  one, regenerate candidates from the current fields and skip a candidate
  when a kept settled occurrence already sits on that calendar day.

Refresh must run whenever a schedule-affecting field changes and must NOT
run for cosmetic edits; schedule_affecting_changes() tells the two apart.

The planning functions are pure. ScheduleGenerator stages the resulting
inserts/deletes on the record store; committing is the caller's job so that
regeneration and the reconciliation pass land in one save.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Optional

import structlog

from src.models.obligation import (
    LoanScheduleInput,
    Obligation,
    ObligationKind,
    Occurrence,
    OccurrenceStatus,
    ScheduleItem,
)
from src.scheduling.amortization import compute_loan_schedule
from src.scheduling.recurrence import generate_dates
from src.services.storage.interface import RecordStore


SCHEDULE_FIELDS = (
    "amount",
    "currency_code",
    "frequency",
    "start_date",
    "end_date",
    "loan_terms",
)

logger = structlog.get_logger(__name__)


@dataclass
class ScheduleDelta:
    """Outcome of a refresh: what stays, what goes, what is new."""

    kept: list[Occurrence] = field(default_factory=list)
    removed: list[Occurrence] = field(default_factory=list)
    created: list[Occurrence] = field(default_factory=list)

    @property
    def occurrences(self) -> list[Occurrence]:
        """The final occurrence set: settled history + new planned tail."""
        return sorted(self.kept + self.created, key=lambda o: o.due_date)


def loan_schedule_input(obligation: Obligation) -> LoanScheduleInput:
    """Calculator input for a loan obligation."""
    terms = obligation.loan_terms
    return LoanScheduleInput(
        principal=obligation.amount,
        interest=terms.interest,
        period_count=terms.period_count,
        frequency=obligation.frequency,
        start_date=obligation.start_date,
    )


def plan_schedule(obligation: Obligation, today: date) -> list[ScheduleItem]:
    """Candidate (date, amount) series for the obligation's current fields."""
    if obligation.kind == ObligationKind.LOAN:
        return compute_loan_schedule(loan_schedule_input(obligation)).installments

    return [
        ScheduleItem(due_date=due_date, amount=obligation.amount)
        for due_date in generate_dates(
            obligation.start_date,
            obligation.frequency,
            today,
            obligation.end_date,
        )
    ]


def _new_occurrence(obligation: Obligation, item: ScheduleItem) -> Occurrence:
    return Occurrence(
        obligation_id=obligation.id,
        kind=obligation.kind,
        due_date=item.due_date,
        amount=item.amount,
        currency_code=obligation.currency_code,
        status=OccurrenceStatus.PLANNED,
    )


def build_initial_schedule(obligation: Obligation, today: date) -> list[Occurrence]:
    """One planned occurrence per candidate."""
    return [_new_occurrence(obligation, item) for item in plan_schedule(obligation, today)]


def rebuild_schedule(
    obligation: Obligation,
    existing: list[Occurrence],
    today: date,
) -> ScheduleDelta:
    """Preserve settled history, replace the planned tail."""
    delta = ScheduleDelta()
    for occurrence in existing:
        if occurrence.status == OccurrenceStatus.SETTLED:
            delta.kept.append(occurrence)
        else:
            delta.removed.append(occurrence)

    settled_days = {occurrence.due_date for occurrence in delta.kept}

    for item in plan_schedule(obligation, today):
        if item.due_date in settled_days:
            continue
        delta.created.append(_new_occurrence(obligation, item))

    return delta


def schedule_affecting_changes(before: Obligation, after: Obligation) -> set[str]:
    """Names of schedule-affecting fields that differ between two versions."""
    return {
        name for name in SCHEDULE_FIELDS
        if getattr(before, name) != getattr(after, name)
    }


class ScheduleGenerator:
    """
    Applies generated schedules to the record store.

    Changes are only staged here; the caller commits them with store.save().
    """

    def __init__(
        self,
        store: RecordStore,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._clock = clock or datetime.now

    def _today(self) -> date:
        return self._clock().date()

    async def generate_initial_schedule(self, obligation: Obligation) -> list[Occurrence]:
        """
        Create the full planned schedule of an obligation.

        Any stored occurrences are removed first (none for a brand-new
        obligation).
        """
        for occurrence in await self._store.occurrences_for(obligation.id):
            await self._store.delete(occurrence)

        occurrences = build_initial_schedule(obligation, self._today())
        for occurrence in occurrences:
            await self._store.insert(occurrence)

        obligation.touch()
        await self._store.insert(obligation)

        logger.info(
            "schedule_generated",
            obligation_id=str(obligation.id),
            kind=obligation.kind.value,
            created=len(occurrences),
        )
        return occurrences

    async def refresh_schedule(self, obligation: Obligation) -> list[Occurrence]:
        """
        Regenerate the planned tail of an obligation.

        Returns only the newly created occurrences. Settled ones are kept
        but not re-inserted.
        """
        delta = await self.apply_refresh(obligation)
        return delta.created

    async def apply_refresh(self, obligation: Obligation) -> ScheduleDelta:
        """Stage a refresh and return the full delta."""
        existing = await self._store.occurrences_for(obligation.id)
        delta = rebuild_schedule(obligation, existing, self._today())

        for occurrence in delta.removed:
            await self._store.delete(occurrence)
        for occurrence in delta.created:
            await self._store.insert(occurrence)

        obligation.touch()
        await self._store.insert(obligation)

        logger.info(
            "schedule_refreshed",
            obligation_id=str(obligation.id),
            kept=len(delta.kept),
            removed=len(delta.removed),
            created=len(delta.created),
        )
        return delta
