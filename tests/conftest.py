"""Shared pytest fixtures for all tests."""

from datetime import datetime, timezone

import pytest

from finwatch.config import CacheSettings, NotificationSettings
from finwatch.services.cache import MemoryCache
from finwatch.services.store.client import QueryClient
from tests.helpers import ManualClock, ScriptedTransport


@pytest.fixture
def clock():
    return ManualClock(datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def cache(clock):
    return MemoryCache(clock=clock)


@pytest.fixture
def transport():
    return ScriptedTransport()


@pytest.fixture
def cache_settings():
    return CacheSettings(
        directory="/tmp/finwatch-tests",
        transactions_max_age=300,
        goals_max_age=300,
        categories_max_age=600,
    )


@pytest.fixture
def notification_settings():
    return NotificationSettings(
        default_periodicity="daily",
        default_intensity="moderate",
        reminder_hour=9,
        reminder_minute=0,
        window_days=7,
        currency_symbol="R$",
    )


@pytest.fixture
def client(transport, cache, cache_settings):
    return QueryClient(transport, cache, cache_settings=cache_settings, rate_limit_backoff=0)
