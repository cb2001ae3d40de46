"""Tests for the notification analyzer."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from finwatch.models.finance import Transaction, TransactionKind, TransactionStatus
from finwatch.models.notification import (
    NotificationPreferences,
    NotificationPriority,
    NotificationType,
)
from finwatch.notifications.analyzer import NotificationAnalyzer


NOW = datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc)
TODAY = "2024-01-15"
TOMORROW = "2024-01-16"
YESTERDAY = "2024-01-14"


def bill(day, amount="10.00", **overrides):
    values = dict(user_id="u1", date=day, amount=Decimal(amount))
    values.update(overrides)
    return Transaction(**values)


@pytest.fixture
def analyzer():
    return NotificationAnalyzer(NotificationPreferences(), currency_symbol="R$")


class TestDueToday:
    def test_two_bills_are_aggregated(self, analyzer):
        notifications = analyzer.analyze(
            [bill(TODAY, "50.00"), bill(TODAY, "100.00")],
            NOW,
        )

        assert len(notifications) == 1
        notification = notifications[0]
        assert notification.type == NotificationType.BILL_DUE_TODAY
        assert notification.priority == NotificationPriority.HIGH
        assert "2 bills" in notification.message
        assert "R$ 150.00" in notification.message
        assert notification.scheduled_at == NOW
        assert notification.metadata == {
            "bill_count": "2",
            "total_amount": "150.00",
            "notification_type": "bill_due_today",
        }

    def test_single_bill_is_named(self, analyzer):
        [notification] = analyzer.analyze([bill(TODAY, title="Electricity")], NOW)
        assert "Electricity" in notification.message

    def test_untitled_bill_uses_description_then_generic_name(self, analyzer):
        [by_description] = analyzer.analyze([bill(TODAY, description="Water")], NOW)
        [generic] = analyzer.analyze([bill(TODAY)], NOW)

        assert "Water" in by_description.message
        assert generic.message.startswith("a bill")


class TestOtherConditions:
    def test_tomorrow_is_medium_and_scheduled_a_day_later(self, analyzer):
        [notification] = analyzer.analyze([bill(TOMORROW)], NOW)

        assert notification.type == NotificationType.BILL_DUE_TOMORROW
        assert notification.priority == NotificationPriority.MEDIUM
        assert notification.scheduled_at == NOW + timedelta(days=1)

    def test_overdue_is_urgent_with_warning(self, analyzer):
        [notification] = analyzer.analyze([bill(YESTERDAY), bill("2024-01-01")], NOW)

        assert notification.type == NotificationType.BILL_OVERDUE
        assert notification.priority == NotificationPriority.URGENT
        assert notification.message.startswith("⚠️")
        assert notification.metadata["bill_count"] == "2"

    def test_all_three_in_order(self, analyzer):
        notifications = analyzer.analyze([bill(YESTERDAY), bill(TOMORROW), bill(TODAY)], NOW)
        assert [n.type for n in notifications] == [
            NotificationType.BILL_DUE_TODAY,
            NotificationType.BILL_DUE_TOMORROW,
            NotificationType.BILL_OVERDUE,
        ]


class TestBillPredicate:
    """Only open expenses count."""

    def test_paid_income_and_investments_are_ignored(self, analyzer):
        transactions = [
            bill(TODAY, status=TransactionStatus.PAID),
            bill(TODAY, kind=TransactionKind.INCOME, status=TransactionStatus.PENDING),
            bill(TODAY, kind=TransactionKind.INVESTMENT, status=TransactionStatus.PENDING),
            bill(TODAY, is_income=True),
        ]
        assert analyzer.analyze(transactions, NOW) == []

    def test_future_bills_beyond_tomorrow_are_ignored(self, analyzer):
        assert analyzer.analyze([bill("2024-01-20")], NOW) == []

    def test_malformed_dates_are_ignored(self, analyzer):
        assert analyzer.analyze([bill("15/01/2024")], NOW) == []


class TestPreferences:
    def test_disabled_types_are_not_generated(self):
        analyzer = NotificationAnalyzer(
            NotificationPreferences(bill_due_today=False),
            currency_symbol="R$",
        )
        assert analyzer.analyze([bill(TODAY)], NOW) == []

    def test_update_policy_replaces_preferences(self, analyzer):
        analyzer.update_policy(NotificationPreferences(bill_overdue=False))
        assert analyzer.analyze([bill(YESTERDAY)], NOW) == []
