"""
Record store port.

The schedule engine talks to persistence only through RecordStore, so
the Google Sheets backend and the in-memory store used by tests are
interchangeable.

The store is a unit of work. insert() and delete() only STAGE changes;
save() commits everything staged since the last save/rollback in one go,
and rollback() discards it. A failed save leaves the committed state
untouched, so a mutation is either fully applied or not at all.
"""

from abc import ABC, abstractmethod
from typing import Optional, Type, TypeVar, Union
from uuid import UUID

from src.models.audit import AuditEvent
from src.models.obligation import Obligation, Occurrence
from src.models.preferences import AppPreferences


Record = Union[Obligation, Occurrence, AppPreferences]
RecordT = TypeVar("RecordT", Obligation, Occurrence, AppPreferences)


class RecordStore(ABC):
    """
    Abstract interface for obligation/occurrence storage.

    Any storage implementation (Google Sheets, SQLite, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def insert(self, record: Record) -> None:
        """
        Stage an insert. A record with an existing id replaces the old one.

        Args:
            record: Obligation, Occurrence or AppPreferences
        """
        pass

    @abstractmethod
    async def delete(self, record: Record) -> None:
        """
        Stage a delete.

        Raises:
            NotFoundError: If the record is not in the store
        """
        pass

    @abstractmethod
    async def fetch_all(self, model: Type[RecordT]) -> list[RecordT]:
        """
        Return every record of a model type, staged changes included.

        Returned records are copies; mutate them and insert() them back.
        """
        pass

    @abstractmethod
    async def save(self) -> None:
        """
        Commit all staged changes.

        Raises:
            StorageError: If the commit fails. Staged changes are kept so
                         the caller can roll back.
        """
        pass

    @abstractmethod
    async def rollback(self) -> None:
        """Discard all staged changes."""
        pass

    # =========================================================================
    # Convenience lookups built on fetch_all()
    # =========================================================================

    async def get_obligation(self, obligation_id: UUID) -> Obligation:
        """
        Raises:
            NotFoundError: If no obligation has this id
        """
        for obligation in await self.fetch_all(Obligation):
            if obligation.id == obligation_id:
                return obligation
        raise NotFoundError(f"Obligation not found: {obligation_id}")

    async def get_occurrence(self, occurrence_id: UUID) -> Occurrence:
        """
        Raises:
            NotFoundError: If no occurrence has this id
        """
        for occurrence in await self.fetch_all(Occurrence):
            if occurrence.id == occurrence_id:
                return occurrence
        raise NotFoundError(f"Occurrence not found: {occurrence_id}")

    async def occurrences_for(self, obligation_id: UUID) -> list[Occurrence]:
        """Occurrences of one obligation, ordered by due date."""
        occurrences = [
            o for o in await self.fetch_all(Occurrence)
            if o.obligation_id == obligation_id
        ]
        occurrences.sort(key=lambda o: o.due_date)
        return occurrences

    async def all_occurrences(self) -> list[Occurrence]:
        """Every occurrence, ordered by due date."""
        occurrences = await self.fetch_all(Occurrence)
        occurrences.sort(key=lambda o: o.due_date)
        return occurrences

    async def all_obligations(self) -> list[Obligation]:
        return await self.fetch_all(Obligation)


async def load_preferences(
    store: RecordStore,
    defaults: Optional[AppPreferences] = None,
) -> AppPreferences:
    """
    Return the singleton preferences record, creating it on first access.

    A freshly created record is committed immediately.
    """
    existing = await store.fetch_all(AppPreferences)
    if existing:
        return existing[0]

    preferences = defaults or AppPreferences()
    await store.insert(preferences)
    await store.save()
    return preferences


class AuditStorageInterface(ABC):
    """Durable home for audit events. Events are appended, never edited."""

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        ...

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Everything one user action produced, oldest first."""
        ...

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """History of one obligation or occurrence, oldest first."""
        ...

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Up to ``limit`` events, newest first."""
        ...


class StorageError(Exception):
    """Raised by record and audit stores; save() failures included."""


class NotFoundError(StorageError):
    """No record with the requested id."""


class DuplicateError(StorageError):
    """A record with this id is already staged or committed."""


class ConnectionError(StorageError):
    """The backend (spreadsheet, credentials) could not be reached."""
