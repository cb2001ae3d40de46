"""
Notification Scheduler

Periodically fetches the user's transactions around today, runs the
analyzer and hands the most important notifications to the platform.

State machine:

    Idle --start()--> Active --stop()--> Idle

While Active one asyncio task waits for the next interval of the policy
(cycling through the list) or the stop event, whichever comes first, and
runs a check cycle. Repeating reminder entries, all with ids starting
with `check_`, are registered with the platform alongside.

DESIGN DECISION: Nothing is looked up from ambient state. The query
client, notifier, analyzer and preferences are injected and swapped with
update_policy().
"""

import asyncio
from datetime import datetime
from typing import Callable, Optional, Union

from finwatch.config import NotificationSettings, get_settings
from finwatch.log import get_logger
from finwatch.models.finance import UserSession
from finwatch.models.notification import (
    AINotification,
    CalendarTrigger,
    DelayTrigger,
    Intensity,
    NotificationPreferences,
    NotificationRequest,
    Periodicity,
    ReminderTime,
    SchedulePolicy,
    sort_by_priority,
)
from finwatch.notifications.analyzer import NotificationAnalyzer, window
from finwatch.notifications.notifier import RESERVED_PREFIX, NotifierError, PlatformNotifier
from finwatch.services.store.client import QueryClient
from finwatch.services.store.interface import StoreError


logger = get_logger(__name__)

Clock = Callable[[], datetime]

MIN_DELAY_SECONDS = 1.0

REMINDER_TITLE = "Finance check"
REMINDER_BODY = "Take a minute to review your upcoming and overdue bills."


def _local_now() -> datetime:
    return datetime.now().astimezone()


def reminder_id(periodicity: Periodicity, user_id: str, index: int) -> str:
    return f"{RESERVED_PREFIX}{periodicity.value}_{user_id}_{index}"


class NotificationScheduler:
    """
    Drives periodic check cycles for one signed-in user.

    Args:
        client: Query client used to fetch transactions
        notifier: Platform notification center
        analyzer: Notification analyzer (built from preferences if omitted)
        preferences: Enabled types, periodicity and intensity
        settings: Reminder time, window size and defaults
        clock: Returns the current local time
    """

    def __init__(
        self,
        client: QueryClient,
        notifier: PlatformNotifier,
        analyzer: Optional[NotificationAnalyzer] = None,
        preferences: Optional[NotificationPreferences] = None,
        settings: Optional[NotificationSettings] = None,
        clock: Optional[Clock] = None,
    ):
        self._client = client
        self._notifier = notifier
        self._settings = settings or get_settings().notifications
        self._preferences = preferences or NotificationPreferences(
            periodicity=self._settings.default_periodicity,
            intensity=self._settings.default_intensity,
        )
        self._analyzer = analyzer or NotificationAnalyzer(
            self._preferences,
            currency_symbol=self._settings.currency_symbol,
        )
        self._analyzer.update_policy(self._preferences)
        self._clock = clock or _local_now

        self._session: Optional[UserSession] = None
        self._policy = self._resolve_policy()
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._cycle_lock = asyncio.Lock()

        self.latest_notifications: list[AINotification] = []

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def is_active(self) -> bool:
        return self._session is not None

    @property
    def policy(self) -> SchedulePolicy:
        return self._policy

    @property
    def preferences(self) -> NotificationPreferences:
        return self._preferences

    def _resolve_policy(self) -> SchedulePolicy:
        return SchedulePolicy.resolve(
            self._preferences.periodicity,
            self._preferences.intensity,
            default_time=ReminderTime(
                hour=self._settings.reminder_hour,
                minute=self._settings.reminder_minute,
            ),
        )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(
        self,
        session: UserSession,
        periodicity: Optional[Union[Periodicity, str]] = None,
        intensity: Optional[Union[Intensity, str]] = None,
    ) -> None:
        """
        Activate for a user: run one check now, register reminders, start polling.

        Does nothing while already Active.
        """
        if self.is_active:
            logger.debug("scheduler_already_active", user_id=self._session.user_id)
            return

        self._session = session
        self._apply_cadence(periodicity, intensity)
        logger.info(
            "scheduler_started",
            user_id=session.user_id,
            periodicity=self._policy.periodicity.value,
            intensity=self._policy.intensity.value,
        )

        await self._guarded_check()
        await self._schedule()

    async def stop(self) -> None:
        """
        Return to Idle.

        Signals the polling task, lets an in-flight cycle finish and removes
        the reminder entries. Notifications already handed to the platform
        by check cycles stay pending.
        """
        if not self.is_active:
            return

        await self._stop_polling()
        await self._cancel_reminders()
        logger.info("scheduler_stopped", user_id=self._session.user_id)
        self._session = None

    async def update_schedule(
        self,
        periodicity: Optional[Union[Periodicity, str]] = None,
        intensity: Optional[Union[Intensity, str]] = None,
    ) -> None:
        """Change cadence; reminders and polling are rebuilt when Active."""
        self._apply_cadence(periodicity, intensity)
        logger.info(
            "schedule_updated",
            periodicity=self._policy.periodicity.value,
            intensity=self._policy.intensity.value,
        )
        if self.is_active:
            await self._schedule()

    def update_policy(self, preferences: NotificationPreferences) -> None:
        """Swap preferences for both the scheduler and the analyzer."""
        self._preferences = preferences
        self._analyzer.update_policy(preferences)
        self._policy = self._resolve_policy()

    async def on_app_became_active(self) -> None:
        """Rerun a check when the host comes to the foreground."""
        if self.is_active:
            await self._guarded_check()

    async def cancel_generated_notifications(self) -> None:
        """Remove pending notifications produced by check cycles, keeping reminders."""
        pending = await self._notifier.list_pending()
        generated = [r.id for r in pending if not r.id.startswith(RESERVED_PREFIX)]
        await self._notifier.cancel(generated)
        logger.info("generated_notifications_cancelled", count=len(generated))

    def _apply_cadence(
        self,
        periodicity: Optional[Union[Periodicity, str]],
        intensity: Optional[Union[Intensity, str]],
    ) -> None:
        updates = {}
        if periodicity is not None:
            updates["periodicity"] = Periodicity(periodicity)
        if intensity is not None:
            updates["intensity"] = Intensity(intensity)
        if updates:
            self.update_policy(self._preferences.model_copy(update=updates))

    # =========================================================================
    # SCHEDULING
    # =========================================================================

    async def _schedule(self) -> None:
        """(Re)register reminders and restart the polling task."""
        await self._stop_polling()
        await self._schedule_reminders()

        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._poll(self._stop_event, self._policy.intervals))

    async def _stop_polling(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        if self._task is not None:
            await self._task
        self._task = None
        self._stop_event = None

    async def _poll(self, stop_event: asyncio.Event, intervals: tuple[float, ...]) -> None:
        index = 0
        while not stop_event.is_set():
            interval = intervals[index % len(intervals)]
            index += 1
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                await self._guarded_check()

    async def _guarded_check(self) -> None:
        """Run a check cycle; a failing cycle is logged and never stops the scheduler."""
        try:
            await self.run_check()
        except Exception as e:
            logger.exception("check_cycle_failed", error=str(e))

    async def _cancel_reminders(self) -> None:
        pending = await self._notifier.list_pending()
        await self._notifier.cancel([r.id for r in pending if r.id.startswith(RESERVED_PREFIX)])

    async def _schedule_reminders(self) -> None:
        await self._cancel_reminders()

        policy = self._policy
        for index, at in enumerate(policy.reminder_times):
            trigger = CalendarTrigger(
                hour=at.hour,
                minute=at.minute,
                weekday=0 if policy.periodicity == Periodicity.WEEKLY else None,
                day=1 if policy.periodicity == Periodicity.MONTHLY else None,
            )
            request = NotificationRequest(
                id=reminder_id(policy.periodicity, self._session.user_id, index),
                title=REMINDER_TITLE,
                body=REMINDER_BODY,
                trigger=trigger,
                metadata={"periodicity": policy.periodicity.value},
                scheduled_at=self._clock(),
            )
            try:
                await self._notifier.schedule(request)
            except NotifierError as e:
                logger.warning("reminder_not_scheduled", id=request.id, error=str(e))

        logger.info(
            "reminders_scheduled",
            count=len(policy.reminder_times),
            times=[str(t) for t in policy.reminder_times],
        )

    # =========================================================================
    # CHECK CYCLE
    # =========================================================================

    async def run_check(self) -> list[AINotification]:
        """
        Run one check cycle.

        Returns:
            The notifications handed to the platform, in priority order
        """
        session = self._session
        if session is None:
            return []

        async with self._cycle_lock:
            if not await self._notifier.is_authorized():
                logger.info("check_skipped_not_authorized", user_id=session.user_id)
                return []

            now = self._clock()
            start, end = window(now.date(), self._settings.window_days)
            try:
                transactions = await self._client.get_transactions(
                    session.user_id, start, end, alt_identity=session.email
                )
            except StoreError as e:
                logger.warning("check_fetch_failed", user_id=session.user_id, error=str(e))
                return []

            try:
                generated = self._analyzer.analyze(transactions, now)
            except Exception as e:
                logger.exception("check_analysis_failed", user_id=session.user_id, error=str(e))
                return []

            selected = self.select(generated)
            for notification in selected:
                await self._hand_to_platform(notification, now)

            self.latest_notifications = selected
            logger.info(
                "check_completed",
                user_id=session.user_id,
                transactions=len(transactions),
                generated=len(generated),
                scheduled=len(selected),
            )
            return selected

    def select(self, notifications: list[AINotification]) -> list[AINotification]:
        """Drop disabled types, order by priority and apply the intensity cap."""
        enabled = [n for n in notifications if self._preferences.is_enabled(n.type)]
        ranked = sort_by_priority(enabled)
        cap = self._policy.cap
        if cap is not None:
            ranked = ranked[:cap]
        return ranked

    async def _hand_to_platform(self, notification: AINotification, now: datetime) -> None:
        delay = MIN_DELAY_SECONDS
        if notification.scheduled_at is not None:
            delay = max(MIN_DELAY_SECONDS, (notification.scheduled_at - now).total_seconds())

        request = NotificationRequest(
            id=notification.id,
            title=notification.title,
            body=notification.message,
            trigger=DelayTrigger(seconds=delay),
            metadata=notification.metadata,
            scheduled_at=now,
        )
        try:
            await self._notifier.schedule(request)
        except NotifierError as e:
            logger.warning("notification_not_scheduled", id=notification.id, error=str(e))