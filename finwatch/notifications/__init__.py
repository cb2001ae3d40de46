"""
Notifications Package

Analysis of transactions into bill notifications, periodic scheduling with
the platform notifier, and merging of all sources for display.
"""

from finwatch.notifications.analyzer import NotificationAnalyzer
from finwatch.notifications.merger import NotificationInbox, merge
from finwatch.notifications.notifier import (
    InMemoryNotifier,
    NotifierError,
    PlatformNotifier,
)
from finwatch.notifications.scheduler import NotificationScheduler

__all__ = [
    "InMemoryNotifier",
    "NotificationAnalyzer",
    "NotificationInbox",
    "NotificationScheduler",
    "NotifierError",
    "PlatformNotifier",
    "merge",
]
