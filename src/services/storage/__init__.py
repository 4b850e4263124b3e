"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
The in-memory store backs the tests; Google Sheets is the durable backend.
"""

from src.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    Record,
    RecordStore,
    StorageError,
    load_preferences,
)
from src.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryRecordStore,
)
from src.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "Record",
    "RecordStore",
    "load_preferences",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryRecordStore",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRecordStore",
]
