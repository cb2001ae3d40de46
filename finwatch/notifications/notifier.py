"""
Platform Notifier Interface

DESIGN DECISION: The operating system's notification center is an external
collaborator. The scheduler and the inbox only see this interface, so a
host can plug in its platform and tests can use InMemoryNotifier.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Optional

from finwatch.log import get_logger
from finwatch.models.notification import DeliveredNotification, NotificationRequest


logger = get_logger(__name__)

RESERVED_PREFIX = "check_"
PUSH_MARKER = "push_"


class PlatformNotifier(ABC):
    """
    Abstract interface for the platform's local notification center.

    Scheduling a request whose id is already pending replaces it.
    """

    @abstractmethod
    async def is_authorized(self) -> bool:
        """True if the user allowed notifications."""
        pass

    @abstractmethod
    async def schedule(self, request: NotificationRequest) -> None:
        """
        Hand a request to the platform.

        Raises:
            NotifierError: If the platform refused the request
        """
        pass

    @abstractmethod
    async def cancel(self, ids: Iterable[str]) -> None:
        """Remove pending requests by id. Unknown ids are ignored."""
        pass

    @abstractmethod
    async def list_pending(self) -> list[NotificationRequest]:
        pass

    @abstractmethod
    async def list_delivered(self) -> list[DeliveredNotification]:
        pass

    @abstractmethod
    async def clear_delivered(self) -> None:
        pass

    @abstractmethod
    async def set_badge(self, count: int) -> None:
        """Set the app icon badge."""
        pass


class InMemoryNotifier(PlatformNotifier):
    """
    Notification center kept in memory.

    Used by tests and by hosts without a notification center. deliver()
    moves a pending request to the delivered list, as the platform would
    when its trigger fires.
    """

    def __init__(self, authorized: bool = True):
        self.authorized = authorized
        self.badge = 0
        self._pending: dict[str, NotificationRequest] = {}
        self._delivered: list[DeliveredNotification] = []
        self.scheduled_log: list[NotificationRequest] = []

    async def is_authorized(self) -> bool:
        return self.authorized

    async def schedule(self, request: NotificationRequest) -> None:
        self._pending[request.id] = request
        self.scheduled_log.append(request)
        logger.debug("notification_scheduled", id=request.id)

    async def cancel(self, ids: Iterable[str]) -> None:
        for notification_id in ids:
            self._pending.pop(notification_id, None)

    async def list_pending(self) -> list[NotificationRequest]:
        return list(self._pending.values())

    async def list_delivered(self) -> list[DeliveredNotification]:
        return list(self._delivered)

    async def clear_delivered(self) -> None:
        self._delivered.clear()

    async def set_badge(self, count: int) -> None:
        self.badge = count

    def deliver(self, notification_id: str, at: Optional[datetime] = None) -> DeliveredNotification:
        request = self._pending.get(notification_id)
        if request is None:
            raise KeyError(notification_id)
        if not request.trigger.repeats:
            del self._pending[notification_id]
        delivered = DeliveredNotification(request=request, delivered_at=at or datetime.now().astimezone())
        self._delivered.append(delivered)
        return delivered


class NotifierError(Exception):
    """The platform refused a notification request."""
    pass
