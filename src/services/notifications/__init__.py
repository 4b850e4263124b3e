"""
Notification Services Package

Reminder delivery port, an in-memory dispatcher and the reconciler that
keeps reminders and the badge in line with the stored schedule.
"""

from src.services.notifications.interface import (
    NotificationDispatcher,
    NotificationDispatchError,
)
from src.services.notifications.memory import (
    InMemoryNotificationDispatcher,
    ScheduledReminder,
)
from src.services.notifications.reconciler import (
    NotificationReconciler,
    ResyncResult,
    plan_reminders,
)

__all__ = [
    "InMemoryNotificationDispatcher",
    "NotificationDispatcher",
    "NotificationDispatchError",
    "NotificationReconciler",
    "ResyncResult",
    "ScheduledReminder",
    "plan_reminders",
]
