"""Configuration package."""

from finwatch.config.settings import (
    AppSettings,
    CacheSettings,
    DocumentStoreSettings,
    NotificationSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "CacheSettings",
    "DocumentStoreSettings",
    "NotificationSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
