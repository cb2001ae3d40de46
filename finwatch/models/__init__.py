"""
Data Models Package

This package contains all Pydantic models used by finwatch.
All data flowing between the store client and the notification
pipeline must conform to these schemas.
"""

from finwatch.models.finance import (
    Category,
    Goal,
    RecurrenceFrequency,
    Transaction,
    TransactionKind,
    TransactionStatus,
    UserSession,
)
from finwatch.models.notification import (
    AINotification,
    CalendarTrigger,
    DelayTrigger,
    DeliveredNotification,
    DisplayItem,
    Intensity,
    NotificationPreferences,
    NotificationPriority,
    NotificationRequest,
    NotificationSource,
    NotificationType,
    Periodicity,
    ReminderTime,
    SchedulePolicy,
    sort_by_priority,
)

__all__ = [
    # Finance models
    "Category",
    "Goal",
    "RecurrenceFrequency",
    "Transaction",
    "TransactionKind",
    "TransactionStatus",
    "UserSession",
    # Notification models
    "AINotification",
    "CalendarTrigger",
    "DelayTrigger",
    "DeliveredNotification",
    "DisplayItem",
    "Intensity",
    "NotificationPreferences",
    "NotificationPriority",
    "NotificationRequest",
    "NotificationSource",
    "NotificationType",
    "Periodicity",
    "ReminderTime",
    "SchedulePolicy",
    "sort_by_priority",
]
