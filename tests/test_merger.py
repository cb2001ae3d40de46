"""Tests for the notifications list merger and inbox."""

from datetime import datetime, timedelta, timezone

import pytest

from finwatch.models.notification import (
    AINotification,
    CalendarTrigger,
    DelayTrigger,
    DeliveredNotification,
    NotificationPriority,
    NotificationRequest,
    NotificationSource,
    NotificationType,
)
from finwatch.notifications.merger import NotificationInbox, deduplicate, merge, source_for
from finwatch.notifications.notifier import InMemoryNotifier


NOW = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


def insight(title="Bills due today", at=None, **kwargs):
    return AINotification(
        type=kwargs.pop("type", NotificationType.BILL_DUE_TODAY),
        title=title,
        message="...",
        priority=kwargs.pop("priority", NotificationPriority.HIGH),
        scheduled_at=at,
        **kwargs,
    )


def request(request_id, trigger=None, title="Reminder", scheduled_at=NOW):
    return NotificationRequest(
        id=request_id,
        title=title,
        body="body",
        trigger=trigger or DelayTrigger(seconds=60),
        scheduled_at=scheduled_at,
    )


class TestSources:
    def test_identifier_markers(self):
        assert source_for("push_abc") == NotificationSource.PUSH
        assert source_for("check_daily_u1_0") == NotificationSource.SCHEDULED
        assert source_for("3f2a") == NotificationSource.INSIGHT

    def test_push_marker_wins_over_reserved_prefix(self):
        assert source_for("check_push_1") == NotificationSource.PUSH


class TestMerge:
    def test_newest_first_across_sources(self):
        delivered = DeliveredNotification(
            request=request("push_1", title="Sale"),
            delivered_at=NOW - timedelta(hours=2),
        )
        items = merge(
            analyzed=[insight(at=NOW)],
            pending=[request("check_daily_u1_0", CalendarTrigger(hour=19, minute=30))],
            delivered=[delivered],
            now=NOW,
        )

        assert [item.source for item in items] == [
            NotificationSource.SCHEDULED,
            NotificationSource.INSIGHT,
            NotificationSource.PUSH,
        ]
        assert items[0].date == NOW.replace(hour=19, minute=30)
        assert items[0].icon == "arrow.triangle.2.circlepath"
        assert items[2].icon == "paperplane.fill"

    def test_insight_without_date_uses_now_and_type_icon(self):
        [item] = merge([insight(type=NotificationType.BILL_OVERDUE)], [], [], NOW)

        assert item.date == NOW
        assert item.icon == "exclamationmark.triangle.fill"
        assert item.priority == NotificationPriority.HIGH

    def test_delivered_ids_carry_the_delivery_time(self):
        delivered_at = NOW - timedelta(minutes=5)
        delivered = DeliveredNotification(request=request("abc"), delivered_at=delivered_at)

        [item] = merge([], [], [delivered], NOW)

        assert item.id == f"abc_delivered_{delivered_at.timestamp()}"

    def test_pending_without_fire_date_is_skipped(self):
        undated = NotificationRequest.model_construct(
            id="odd", title="Odd", body="", trigger=None, metadata={}, scheduled_at=NOW,
        )
        assert merge([], [undated], [], NOW) == []

    def test_missing_titles_fall_back(self):
        items = merge(
            [insight(title="", at=NOW)],
            [request("check_x", title="")],
            [],
            NOW,
        )
        titles = {item.source: item.title for item in items}
        assert titles[NotificationSource.INSIGHT] == "Notification"
        assert titles[NotificationSource.SCHEDULED] == "Scheduled notification"

    def test_same_id_appears_once(self):
        shared = insight(at=NOW)
        pending_copy = request(shared.id, DelayTrigger(seconds=1), scheduled_at=NOW)

        items = merge([shared], [pending_copy], [], NOW)

        assert len(items) == 1
        # The pending entry fires one second later, so it sorts first and wins
        assert items[0].title == "Reminder"

    def test_merging_is_idempotent(self):
        items = merge(
            [insight(at=NOW), insight("Tomorrow", at=NOW + timedelta(days=1))],
            [request("check_daily_u1_0", CalendarTrigger(hour=8))],
            [],
            NOW,
        )
        assert deduplicate(sorted(items, key=lambda i: i.date, reverse=True)) == items


class TestInbox:
    @pytest.fixture
    def notifier(self):
        return InMemoryNotifier()

    @pytest.mark.asyncio
    async def test_refresh_builds_list_and_zeroes_badge(self, notifier):
        await notifier.schedule(request("check_daily_u1_0", CalendarTrigger(hour=13)))
        await notifier.set_badge(4)
        inbox = NotificationInbox(notifier, clock=lambda: NOW)

        items = await inbox.refresh([insight(at=NOW)])

        assert len(items) == 2
        assert inbox.items == items
        assert notifier.badge == 0
        assert inbox.badge_count == 0

    @pytest.mark.asyncio
    async def test_refresh_badge_counts_every_source(self, notifier):
        await notifier.schedule(request("check_daily_u1_0", CalendarTrigger(hour=13)))
        await notifier.schedule(request("push_1"))
        notifier.deliver("push_1", at=NOW)
        inbox = NotificationInbox(notifier, clock=lambda: NOW)

        count = await inbox.refresh_badge([insight(), insight()])

        assert count == 4
        assert notifier.badge == 4

    @pytest.mark.asyncio
    async def test_clear_keeps_only_insights(self, notifier):
        await notifier.schedule(request("check_daily_u1_0", CalendarTrigger(hour=13)))
        await notifier.schedule(request("push_1"))
        notifier.deliver("push_1", at=NOW)
        inbox = NotificationInbox(notifier, clock=lambda: NOW)
        await inbox.refresh([insight(at=NOW)])

        await inbox.clear()

        assert [item.source for item in inbox.items] == [NotificationSource.INSIGHT]
        assert await notifier.list_delivered() == []
        assert inbox.badge_count == 0
