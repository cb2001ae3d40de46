"""
Notification Models

Shapes shared by the analyzer, the scheduler, the platform notifier and
the merger:

- AINotification: one actionable condition found in a check cycle
- NotificationPreferences: the user's per-type switches and cadence
- SchedulePolicy: cadence resolved to intervals, reminder times and a cap
- NotificationRequest / DeliveredNotification: what the platform holds
- DisplayItem: one row of the in-app notifications list

DESIGN DECISION: Preferences are an explicit object handed to the analyzer
and the scheduler, never looked up from ambient storage.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# ENUMS
# =============================================================================

class NotificationType(str, Enum):
    """Conditions the analyzer can report."""
    BILL_DUE_TODAY = "bill_due_today"
    BILL_DUE_TOMORROW = "bill_due_tomorrow"
    BILL_OVERDUE = "bill_overdue"
    LOW_BALANCE = "low_balance"
    GOAL_PROGRESS = "goal_progress"
    MONTHLY_SUMMARY = "monthly_summary"
    CUSTOM = "custom"


class NotificationPriority(str, Enum):
    """
    Notification priority.

    Ordering is fixed: urgent > high > medium > low.
    """
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        """0 for the most important priority."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    NotificationPriority.URGENT: 0,
    NotificationPriority.HIGH: 1,
    NotificationPriority.MEDIUM: 2,
    NotificationPriority.LOW: 3,
}


class Periodicity(str, Enum):
    """How often the background check cycle runs."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class Intensity(str, Enum):
    """How many notifications per cycle the user accepts."""
    LIGHT = "light"
    MODERATE = "moderate"
    INTENSE = "intense"


class NotificationSource(str, Enum):
    """Where a displayed notification came from."""
    INSIGHT = "insight"        # Generated by the analyzer in this session
    PUSH = "push"              # Remote push delivered through the platform
    SCHEDULED = "scheduled"    # Reminder entries owned by the scheduler


# =============================================================================
# ANALYZER OUTPUT
# =============================================================================

class AINotification(BaseModel):
    """
    A notification produced by the analyzer for one check cycle.

    Not persisted: it lives until the scheduler hands it to the platform
    notifier and the merger shows it.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    type: NotificationType
    title: str
    message: str
    priority: NotificationPriority
    scheduled_at: Optional[datetime] = None
    metadata: dict[str, str] = Field(default_factory=dict)


def sort_by_priority(notifications: list[AINotification]) -> list[AINotification]:
    """Order urgent -> high -> medium -> low, keeping input order for ties."""
    return sorted(notifications, key=lambda n: n.priority.rank)


# =============================================================================
# PREFERENCES & POLICY
# =============================================================================

class NotificationPreferences(BaseModel):
    """
    User notification preferences.

    Every type is enabled unless switched off. Custom notifications cannot
    be disabled.
    """

    bill_due_today: bool = True
    bill_due_tomorrow: bool = True
    bill_overdue: bool = True
    low_balance: bool = True
    goal_progress: bool = True
    monthly_summary: bool = True

    periodicity: Periodicity = Periodicity.DAILY
    intensity: Intensity = Intensity.MODERATE

    def is_enabled(self, notification_type: NotificationType) -> bool:
        if notification_type == NotificationType.CUSTOM:
            return True
        return getattr(self, notification_type.value)


class ReminderTime(BaseModel):
    """A wall-clock time of day."""
    model_config = ConfigDict(frozen=True)

    hour: int = Field(..., ge=0, le=23)
    minute: int = Field(default=0, ge=0, le=59)

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


HOUR = 60 * 60
DAY = 24 * HOUR

_MODERATE_TIMES = ((8, 30), (13, 0), (19, 30))
_INTENSE_TIMES = ((8, 0), (10, 30), (13, 0), (15, 30), (18, 0), (20, 30))

_CAPS = {
    Intensity.LIGHT: 2,
    Intensity.MODERATE: 5,
    Intensity.INTENSE: None,
}


class SchedulePolicy(BaseModel):
    """
    Cadence derived from periodicity x intensity.

    Use SchedulePolicy.resolve(); the table is:

        daily   light     1 x 24h   1 reminder (default time)
        daily   moderate  3 x 8h    08:30, 13:00, 19:30
        daily   intense   6 x 4h    08:00, 10:30, 13:00, 15:30, 18:00, 20:30
        weekly  any       1 x 7d    1 reminder, Mondays
        monthly any       1 x 30d   1 reminder, day 1
    """
    model_config = ConfigDict(frozen=True)

    periodicity: Periodicity
    intensity: Intensity
    intervals: tuple[float, ...]
    reminder_times: tuple[ReminderTime, ...]

    @classmethod
    def resolve(
        cls,
        periodicity: Union[Periodicity, str],
        intensity: Union[Intensity, str],
        default_time: ReminderTime = ReminderTime(hour=9, minute=0),
    ) -> "SchedulePolicy":
        periodicity = Periodicity(periodicity)
        intensity = Intensity(intensity)

        if periodicity == Periodicity.DAILY:
            if intensity == Intensity.LIGHT:
                intervals = (float(DAY),)
                times = (default_time,)
            elif intensity == Intensity.MODERATE:
                intervals = (float(8 * HOUR),) * 3
                times = tuple(ReminderTime(hour=h, minute=m) for h, m in _MODERATE_TIMES)
            else:
                intervals = (float(4 * HOUR),) * 6
                times = tuple(ReminderTime(hour=h, minute=m) for h, m in _INTENSE_TIMES)
        elif periodicity == Periodicity.WEEKLY:
            intervals = (float(7 * DAY),)
            times = (default_time,)
        else:
            intervals = (float(30 * DAY),)
            times = (default_time,)

        return cls(
            periodicity=periodicity,
            intensity=intensity,
            intervals=intervals,
            reminder_times=times,
        )

    @property
    def cap(self) -> Optional[int]:
        """Maximum notifications handed to the platform per cycle (None = unbounded)."""
        return _CAPS[self.intensity]


# =============================================================================
# PLATFORM NOTIFIER SHAPES
# =============================================================================

class CalendarTrigger(BaseModel):
    """Repeating wall-clock trigger, optionally pinned to a weekday or day of month."""
    model_config = ConfigDict(frozen=True)

    hour: int = Field(..., ge=0, le=23)
    minute: int = Field(default=0, ge=0, le=59)
    weekday: Optional[int] = Field(
        default=None,
        ge=0,
        le=6,
        description="Monday = 0, as in datetime.weekday()"
    )
    day: Optional[int] = Field(default=None, ge=1, le=31)
    repeats: bool = True

    def next_fire(self, now: datetime) -> datetime:
        """First time at or after `now` matching this trigger."""
        candidate = now.replace(hour=self.hour, minute=self.minute, second=0, microsecond=0)
        for _ in range(0, 400):
            if candidate >= now and self._matches(candidate):
                return candidate
            candidate += timedelta(days=1)
        return candidate

    def _matches(self, moment: datetime) -> bool:
        if self.weekday is not None and moment.weekday() != self.weekday:
            return False
        if self.day is not None and moment.day != self.day:
            return False
        return True


class DelayTrigger(BaseModel):
    """One-shot trigger firing a number of seconds after scheduling."""
    model_config = ConfigDict(frozen=True)

    seconds: float = Field(..., gt=0)
    repeats: bool = False


Trigger = Union[CalendarTrigger, DelayTrigger]


class NotificationRequest(BaseModel):
    """A notification handed to (or pending on) the platform notifier."""

    id: str
    title: str
    body: str
    trigger: Trigger
    metadata: dict[str, str] = Field(default_factory=dict)
    scheduled_at: datetime = Field(
        default_factory=lambda: datetime.now().astimezone(),
        description="When the request was handed to the platform"
    )

    def next_trigger_date(self, now: datetime) -> Optional[datetime]:
        """When the platform will next fire this request."""
        if isinstance(self.trigger, CalendarTrigger):
            return self.trigger.next_fire(now)
        if isinstance(self.trigger, DelayTrigger):
            return self.scheduled_at + timedelta(seconds=self.trigger.seconds)
        return None


class DeliveredNotification(BaseModel):
    """A notification the platform has already shown."""

    request: NotificationRequest
    delivered_at: datetime


# =============================================================================
# DISPLAY
# =============================================================================

class DisplayItem(BaseModel):
    """One row of the notifications list."""
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    message: str
    date: datetime
    source: NotificationSource
    priority: Optional[NotificationPriority] = None
    icon: str = "bell"
    metadata: dict[str, str] = Field(default_factory=dict)
