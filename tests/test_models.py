"""
Tests for finwatch models

Test strategy:
1. Unit tests for models and validators
2. Component tests against in-memory fakes (see helpers.py)
3. No real network calls in tests
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from finwatch.models import (
    AINotification,
    CalendarTrigger,
    Category,
    DelayTrigger,
    Goal,
    NotificationPreferences,
    NotificationPriority,
    NotificationRequest,
    NotificationType,
    SchedulePolicy,
    Transaction,
    TransactionKind,
    TransactionStatus,
    UserSession,
    sort_by_priority,
)


class TestTransaction:
    """Tests for the Transaction model."""

    def test_defaults(self):
        """A bare transaction is an unpaid expense."""
        tx = Transaction(user_id="u1", date="2024-01-15")
        assert tx.kind == TransactionKind.EXPENSE
        assert tx.status == TransactionStatus.UNPAID
        assert tx.category == "general"
        assert tx.is_open_expense

    def test_rejects_negative_amount(self):
        with pytest.raises(ValidationError):
            Transaction(user_id="u1", date="2024-01-15", amount=Decimal("-1"))

    def test_rejects_status_of_another_kind(self):
        """Expenses cannot be 'received'."""
        with pytest.raises(ValidationError):
            Transaction(user_id="u1", date="2024-01-15", status=TransactionStatus.RECEIVED)

    def test_investment_statuses(self):
        tx = Transaction(
            user_id="u1",
            date="2024-01-15",
            kind=TransactionKind.INVESTMENT,
            status=TransactionStatus.INVESTED,
        )
        assert not tx.is_open_expense

    def test_blank_strings_become_none(self):
        tx = Transaction(
            user_id="u1",
            date="2024-01-15",
            title="  ",
            recurring_frequency="",
            recurring_end_date="",
        )
        assert tx.title is None
        assert tx.recurring_frequency is None
        assert tx.recurring_end_date is None

    def test_day_parsing(self):
        assert Transaction(user_id="u1", date="2024-02-29").day == date(2024, 2, 29)
        assert Transaction(user_id="u1", date="2024-02-30").day is None

    def test_display_name_fallbacks(self):
        assert Transaction(user_id="u1", date="2024-01-15", title="Rent").display_name == "Rent"
        assert Transaction(user_id="u1", date="2024-01-15", description="Gym").display_name == "Gym"
        assert Transaction(user_id="u1", date="2024-01-15").display_name == "a bill"


class TestGoalAndCategory:
    def test_progress_is_clamped(self):
        assert Goal(user_id="u1", target_amount=Decimal("100"), current_amount=Decimal("25")).progress == 0.25
        assert Goal(user_id="u1", target_amount=Decimal("100"), current_amount=Decimal("250")).progress == 1.0
        assert Goal(user_id="u1").progress == 0.0

    def test_category_identified_by_id_then_name(self):
        assert Category(id="food", name="Food").identified_id == "food"
        assert Category(name="Pets").identified_id == "Pets"


class TestUserSession:
    def test_requires_user_id(self):
        with pytest.raises(ValidationError):
            UserSession(user_id="   ")

    def test_is_immutable(self):
        session = UserSession(user_id="u1")
        with pytest.raises(ValidationError):
            session.user_id = "u2"


class TestNotifications:
    """Tests for notification shapes."""

    def test_priority_sort_is_stable(self):
        def make(title, priority):
            return AINotification(type=NotificationType.CUSTOM, title=title, message="", priority=priority)

        ordered = sort_by_priority([
            make("a", NotificationPriority.LOW),
            make("b", NotificationPriority.HIGH),
            make("c", NotificationPriority.URGENT),
            make("d", NotificationPriority.HIGH),
        ])
        assert [n.title for n in ordered] == ["c", "b", "d", "a"]

    def test_ids_are_unique(self):
        first = AINotification(type=NotificationType.CUSTOM, title="t", message="m", priority="low")
        second = AINotification(type=NotificationType.CUSTOM, title="t", message="m", priority="low")
        assert first.id != second.id

    def test_custom_notifications_cannot_be_disabled(self):
        preferences = NotificationPreferences(bill_overdue=False)
        assert not preferences.is_enabled(NotificationType.BILL_OVERDUE)
        assert preferences.is_enabled(NotificationType.BILL_DUE_TODAY)
        assert preferences.is_enabled(NotificationType.CUSTOM)


class TestSchedulePolicy:
    @pytest.mark.parametrize("periodicity, intensity, intervals, reminders, cap", [
        ("daily", "light", (86400.0,), 1, 2),
        ("daily", "moderate", (28800.0,) * 3, 3, 5),
        ("daily", "intense", (14400.0,) * 6, 6, None),
        ("weekly", "intense", (604800.0,), 1, None),
        ("monthly", "light", (2592000.0,), 1, 2),
    ])
    def test_table(self, periodicity, intensity, intervals, reminders, cap):
        policy = SchedulePolicy.resolve(periodicity, intensity)
        assert policy.intervals == intervals
        assert len(policy.reminder_times) == reminders
        assert policy.cap == cap

    def test_unknown_values_are_rejected(self):
        with pytest.raises(ValueError):
            SchedulePolicy.resolve("hourly", "light")


class TestTriggers:
    NOW = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)  # a Monday

    def test_daily_later_today(self):
        assert CalendarTrigger(hour=13).next_fire(self.NOW) == self.NOW.replace(hour=13)

    def test_daily_already_passed_fires_tomorrow(self):
        fire = CalendarTrigger(hour=8, minute=30).next_fire(self.NOW)
        assert fire == datetime(2024, 1, 16, 8, 30, tzinfo=timezone.utc)

    def test_weekly_on_given_weekday(self):
        fire = CalendarTrigger(hour=9, weekday=0).next_fire(self.NOW)
        assert fire == datetime(2024, 1, 22, 9, 0, tzinfo=timezone.utc)

    def test_monthly_on_first_day(self):
        fire = CalendarTrigger(hour=9, day=1).next_fire(self.NOW)
        assert fire == datetime(2024, 2, 1, 9, 0, tzinfo=timezone.utc)

    def test_delay_must_be_positive(self):
        with pytest.raises(ValidationError):
            DelayTrigger(seconds=0)

    def test_delayed_request_fire_date(self):
        request = NotificationRequest(
            id="n1", title="t", body="b", trigger=DelayTrigger(seconds=90), scheduled_at=self.NOW,
        )
        assert request.next_trigger_date(self.NOW) == self.NOW + timedelta(seconds=90)
