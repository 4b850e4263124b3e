"""
In-Memory Storage

Dictionary-backed record store and audit storage. Used by the tests and
as the working-set cache of the Google Sheets store.

Two copies of every collection are kept: the COMMITTED state and the
WORKING state that insert()/delete() modify. save() promotes the working
state, rollback() restores the committed one.
"""

from copy import deepcopy
from typing import Type
from uuid import UUID

import structlog

from src.models.audit import AuditEvent
from src.models.obligation import Obligation, Occurrence
from src.models.preferences import AppPreferences
from src.services.storage.interface import (
    AuditStorageInterface,
    NotFoundError,
    Record,
    RecordStore,
    RecordT,
    StorageError,
)


MODELS: tuple[type, ...] = (Obligation, Occurrence, AppPreferences)

Collections = dict[type, dict[UUID, Record]]

logger = structlog.get_logger(__name__)


def empty_collections() -> Collections:
    return {model: {} for model in MODELS}


def _model_of(record: Record) -> type:
    for model in MODELS:
        if isinstance(record, model):
            return model
    raise StorageError(f"Unsupported record type: {type(record).__name__}")


class InMemoryRecordStore(RecordStore):
    """
    Record store kept entirely in process memory.

    Set fail_next_save to make the next save() raise StorageError, which
    is how tests exercise the rollback path.
    """

    def __init__(self):
        self._committed: Collections = empty_collections()
        self._working: Collections = empty_collections()
        self._loaded = False
        self.fail_next_save = False
        self.save_count = 0

    async def _load(self) -> Collections:
        """Initial committed state. Subclasses read their backend here."""
        return empty_collections()

    async def _persist(self, collections: Collections) -> None:
        """Write the state about to be committed. No-op in memory."""
        return None

    async def _ensure_loaded(self) -> None:
        if not self._loaded:
            self._committed = await self._load()
            self._working = deepcopy(self._committed)
            self._loaded = True

    async def insert(self, record: Record) -> None:
        await self._ensure_loaded()
        self._working[_model_of(record)][record.id] = record.model_copy(deep=True)

    async def delete(self, record: Record) -> None:
        await self._ensure_loaded()
        collection = self._working[_model_of(record)]
        if record.id not in collection:
            raise NotFoundError(f"{type(record).__name__} not found: {record.id}")
        del collection[record.id]

    async def fetch_all(self, model: Type[RecordT]) -> list[RecordT]:
        await self._ensure_loaded()
        if model not in self._working:
            raise StorageError(f"Unsupported record type: {model.__name__}")
        return [record.model_copy(deep=True) for record in self._working[model].values()]

    async def save(self) -> None:
        await self._ensure_loaded()
        if self.fail_next_save:
            self.fail_next_save = False
            raise StorageError("Simulated save failure")

        await self._persist(self._working)
        self._committed = deepcopy(self._working)
        self.save_count += 1

    async def rollback(self) -> None:
        await self._ensure_loaded()
        self._working = deepcopy(self._committed)
        logger.info("store_rolled_back")

    def committed(self, model: Type[RecordT]) -> list[RecordT]:
        """Committed records of a model type (staged changes excluded)."""
        return list(self._committed[model].values())


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        events = [
            e for e in self.events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self.events, key=lambda e: e.timestamp, reverse=True)[:limit]

    def of_type(self, event_type: str) -> list[AuditEvent]:
        """Events whose type value matches, in insertion order."""
        return [e for e in self.events if e.event_type.value == event_type]
