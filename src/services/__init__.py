"""Services package."""

from src.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
    InMemoryAuditStorage,
    InMemoryRecordStore,
    NotFoundError,
    RecordStore,
    StorageError,
    load_preferences,
)
from src.services.notifications import (
    InMemoryNotificationDispatcher,
    NotificationDispatcher,
    NotificationDispatchError,
    NotificationReconciler,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRecordStore",
    "InMemoryAuditStorage",
    "InMemoryRecordStore",
    "NotFoundError",
    "RecordStore",
    "StorageError",
    "load_preferences",
    # Notification services
    "InMemoryNotificationDispatcher",
    "NotificationDispatcher",
    "NotificationDispatchError",
    "NotificationReconciler",
]
