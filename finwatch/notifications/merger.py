"""
Notification Merger

Builds the in-app notifications list from three sources:
- notifications the analyzer produced this session
- requests pending on the platform (reminders, scheduled bills, pushes)
- notifications the platform already delivered

Newest first, one row per id.
"""

from datetime import datetime
from typing import Callable, Iterable, Optional

from finwatch.log import get_logger
from finwatch.models.notification import (
    AINotification,
    DeliveredNotification,
    DisplayItem,
    NotificationRequest,
    NotificationSource,
    NotificationType,
)
from finwatch.notifications.notifier import PUSH_MARKER, RESERVED_PREFIX, PlatformNotifier


logger = get_logger(__name__)

ICONS_BY_TYPE = {
    NotificationType.BILL_DUE_TODAY: "doc.text.fill",
    NotificationType.BILL_DUE_TOMORROW: "doc.text.fill",
    NotificationType.BILL_OVERDUE: "exclamationmark.triangle.fill",
    NotificationType.LOW_BALANCE: "dollarsign.circle.fill",
    NotificationType.GOAL_PROGRESS: "target",
    NotificationType.MONTHLY_SUMMARY: "chart.bar.fill",
    NotificationType.CUSTOM: "bell",
}

ICONS_BY_SOURCE = {
    NotificationSource.PUSH: "paperplane.fill",
    NotificationSource.SCHEDULED: "arrow.triangle.2.circlepath",
    NotificationSource.INSIGHT: "bell",
}

FALLBACK_TITLES = {
    "insight": "Notification",
    "pending": "Scheduled notification",
    "delivered": "Received notification",
}


def source_for(identifier: str) -> NotificationSource:
    if PUSH_MARKER in identifier:
        return NotificationSource.PUSH
    if RESERVED_PREFIX in identifier:
        return NotificationSource.SCHEDULED
    return NotificationSource.INSIGHT


def _from_insight(notification: AINotification, now: datetime) -> DisplayItem:
    return DisplayItem(
        id=notification.id,
        title=notification.title or FALLBACK_TITLES["insight"],
        message=notification.message,
        date=notification.scheduled_at or now,
        source=NotificationSource.INSIGHT,
        priority=notification.priority,
        icon=ICONS_BY_TYPE.get(notification.type, "bell"),
        metadata=notification.metadata,
    )


def _from_pending(request: NotificationRequest, now: datetime) -> Optional[DisplayItem]:
    fires_at = request.next_trigger_date(now)
    if fires_at is None:
        return None
    source = source_for(request.id)
    return DisplayItem(
        id=request.id,
        title=request.title or FALLBACK_TITLES["pending"],
        message=request.body,
        date=fires_at,
        source=source,
        icon=ICONS_BY_SOURCE[source],
        metadata=request.metadata,
    )


def _from_delivered(delivered: DeliveredNotification) -> DisplayItem:
    request = delivered.request
    source = source_for(request.id)
    return DisplayItem(
        id=f"{request.id}_delivered_{delivered.delivered_at.timestamp()}",
        title=request.title or FALLBACK_TITLES["delivered"],
        message=request.body,
        date=delivered.delivered_at,
        source=source,
        icon=ICONS_BY_SOURCE[source],
        metadata=request.metadata,
    )


def deduplicate(items: Iterable[DisplayItem]) -> list[DisplayItem]:
    """Keep the first item for every id."""
    seen: set[str] = set()
    unique = []
    for item in items:
        if item.id not in seen:
            seen.add(item.id)
            unique.append(item)
    return unique


def merge(
    analyzed: Iterable[AINotification],
    pending: Iterable[NotificationRequest],
    delivered: Iterable[DeliveredNotification],
    now: datetime,
) -> list[DisplayItem]:
    """
    Combine all sources into display rows.

    Pending requests without a next fire date are skipped. Rows are sorted
    newest first (stable for equal dates) and deduplicated by id.
    """
    combined = [_from_insight(n, now) for n in analyzed]
    for request in pending:
        item = _from_pending(request, now)
        if item is not None:
            combined.append(item)
    combined.extend(_from_delivered(d) for d in delivered)

    combined.sort(key=lambda item: item.date, reverse=True)
    return deduplicate(combined)


class NotificationInbox:
    """
    The notifications list shown to the user, with its unread badge.

    Args:
        notifier: Platform notification center
        clock: Returns the current local time
    """

    def __init__(self, notifier: PlatformNotifier, clock: Optional[Callable[[], datetime]] = None):
        self._notifier = notifier
        self._clock = clock or (lambda: datetime.now().astimezone())
        self.items: list[DisplayItem] = []
        self.badge_count = 0

    async def refresh(self, analyzed: Iterable[AINotification]) -> list[DisplayItem]:
        """Reload platform state, rebuild the list and mark everything read."""
        pending = await self._notifier.list_pending()
        delivered = await self._notifier.list_delivered()
        self.items = merge(analyzed, pending, delivered, self._clock())
        await self._set_badge(0)
        logger.debug("inbox_refreshed", items=len(self.items))
        return self.items

    async def clear(self) -> None:
        """Clear delivered notifications and drop push/scheduled rows."""
        await self._notifier.clear_delivered()
        self.items = [
            item for item in self.items
            if item.source not in (NotificationSource.PUSH, NotificationSource.SCHEDULED)
        ]
        await self._set_badge(0)

    async def refresh_badge(self, analyzed: Iterable[AINotification]) -> int:
        """Badge = pending + delivered + analyzed notifications."""
        pending = await self._notifier.list_pending()
        delivered = await self._notifier.list_delivered()
        count = len(pending) + len(delivered) + len(list(analyzed))
        await self._set_badge(count)
        return count

    async def _set_badge(self, count: int) -> None:
        self.badge_count = count
        await self._notifier.set_badge(count)
