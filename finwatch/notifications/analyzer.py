"""
Notification Analyzer

Turns a window of transactions into actionable notifications:

- bills due today     -> priority high, scheduled now
- bills due tomorrow  -> priority medium, scheduled one day from now
- overdue bills       -> priority urgent, scheduled now

A bill is an open expense: kind expense, not flagged as income, status
not paid. Each condition produces at most one aggregated notification.

DESIGN DECISION: The analyzer is pure. It never reads the clock or any
ambient preference store; `now` and the preferences are handed in.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from finwatch.config import get_settings
from finwatch.log import get_logger
from finwatch.models.finance import Transaction
from finwatch.models.notification import (
    AINotification,
    NotificationPreferences,
    NotificationPriority,
    NotificationType,
)


logger = get_logger(__name__)

WARNING_GLYPH = "⚠️"


class NotificationAnalyzer:
    """
    Derives bill notifications from transactions.

    Args:
        preferences: Which notification types are enabled
        currency_symbol: Prefix for formatted amounts (defaults to settings)
    """

    def __init__(
        self,
        preferences: Optional[NotificationPreferences] = None,
        currency_symbol: Optional[str] = None,
    ):
        self._preferences = preferences or NotificationPreferences()
        if currency_symbol is None:
            currency_symbol = get_settings().notifications.currency_symbol
        self._currency_symbol = currency_symbol

    @property
    def preferences(self) -> NotificationPreferences:
        return self._preferences

    def update_policy(self, preferences: NotificationPreferences) -> None:
        """Replace the preferences used by subsequent analyses."""
        self._preferences = preferences

    def format_amount(self, amount: Decimal) -> str:
        return f"{self._currency_symbol} {amount:,.2f}"

    def analyze(self, transactions: Iterable[Transaction], now: datetime) -> list[AINotification]:
        """
        Generate notifications for the given transactions.

        Args:
            transactions: Transactions to inspect, in any order
            now: Current local time; its date decides today/tomorrow/overdue

        Returns:
            Notifications for enabled types, in the order today, tomorrow, overdue
        """
        today = now.date()
        tomorrow = today + timedelta(days=1)

        due_today: list[Transaction] = []
        due_tomorrow: list[Transaction] = []
        overdue: list[Transaction] = []

        for transaction in transactions:
            if not transaction.is_open_expense:
                continue
            day = transaction.day
            if day is None:
                continue
            if day == today:
                due_today.append(transaction)
            elif day == tomorrow:
                due_tomorrow.append(transaction)
            elif day < today:
                overdue.append(transaction)

        notifications = []
        if due_today and self._preferences.is_enabled(NotificationType.BILL_DUE_TODAY):
            notifications.append(self._due_today(due_today, now))
        if due_tomorrow and self._preferences.is_enabled(NotificationType.BILL_DUE_TOMORROW):
            notifications.append(self._due_tomorrow(due_tomorrow, now))
        if overdue and self._preferences.is_enabled(NotificationType.BILL_OVERDUE):
            notifications.append(self._overdue(overdue, now))

        logger.debug(
            "transactions_analyzed",
            due_today=len(due_today),
            due_tomorrow=len(due_tomorrow),
            overdue=len(overdue),
            generated=len(notifications),
        )
        return notifications

    # =========================================================================
    # GENERATORS
    # =========================================================================

    def _build(
        self,
        notification_type: NotificationType,
        bills: list[Transaction],
        title: str,
        message: str,
        priority: NotificationPriority,
        scheduled_at: datetime,
    ) -> AINotification:
        return AINotification(
            type=notification_type,
            title=title,
            message=message,
            priority=priority,
            scheduled_at=scheduled_at,
            metadata={
                "bill_count": str(len(bills)),
                "total_amount": f"{_total(bills):.2f}",
                "notification_type": notification_type.value,
            },
        )

    def _due_today(self, bills: list[Transaction], now: datetime) -> AINotification:
        amount = self.format_amount(_total(bills))
        if len(bills) == 1:
            title = "Bill due today"
            message = f"{bills[0].display_name} for {amount} is due today."
        else:
            title = "Bills due today"
            message = f"You have {len(bills)} bills totaling {amount} due today."
        return self._build(
            NotificationType.BILL_DUE_TODAY, bills, title, message,
            NotificationPriority.HIGH, now,
        )

    def _due_tomorrow(self, bills: list[Transaction], now: datetime) -> AINotification:
        amount = self.format_amount(_total(bills))
        if len(bills) == 1:
            title = "Bill due tomorrow"
            message = f"{bills[0].display_name} for {amount} is due tomorrow."
        else:
            title = "Bills due tomorrow"
            message = f"You have {len(bills)} bills totaling {amount} due tomorrow."
        return self._build(
            NotificationType.BILL_DUE_TOMORROW, bills, title, message,
            NotificationPriority.MEDIUM, now + timedelta(days=1),
        )

    def _overdue(self, bills: list[Transaction], now: datetime) -> AINotification:
        amount = self.format_amount(_total(bills))
        if len(bills) == 1:
            title = "Overdue bill"
            message = f"{WARNING_GLYPH} {bills[0].display_name} for {amount} is overdue."
        else:
            title = "Overdue bills"
            message = f"{WARNING_GLYPH} You have {len(bills)} overdue bills totaling {amount}."
        return self._build(
            NotificationType.BILL_OVERDUE, bills, title, message,
            NotificationPriority.URGENT, now,
        )


def _total(bills: Iterable[Transaction]) -> Decimal:
    return sum((b.amount for b in bills), Decimal("0"))


def window(today: date, days: int) -> tuple[date, date]:
    """The [today - days, today + days] window the check cycle fetches."""
    return today - timedelta(days=days), today + timedelta(days=days)
