"""
Configuration Management for finwatch

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DocumentStoreSettings(BaseSettings):
    """Firestore REST document store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FIRESTORE_",
        extra="ignore"
    )

    project_id: str = Field(
        default="",
        description="Firestore project ID"
    )
    api_key: str = Field(
        default="",
        description="Web API key sent as the `key` query parameter"
    )
    credentials_path: Optional[str] = Field(
        default=None,
        description="Optional service account credentials JSON (uses google-auth instead of the API key)"
    )
    database: str = Field(
        default="(default)",
        description="Firestore database name"
    )
    base_url: str = Field(
        default="https://firestore.googleapis.com/v1",
        description="Firestore REST endpoint"
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Transport timeout for a single HTTP call"
    )
    rate_limit_backoff_seconds: float = Field(
        default=3.0,
        ge=0,
        description="Fixed wait before the single retry after HTTP 429"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: Optional[str]) -> Optional[str]:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if v and not Path(v).exists():
            import warnings
            warnings.warn(
                f"Firestore credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v or None

    @property
    def is_configured(self) -> bool:
        """A project is required, plus either an API key or service account credentials."""
        return bool(self.project_id) and bool(self.api_key or self.credentials_path)

    @property
    def documents_url(self) -> str:
        return f"{self.base_url}/projects/{self.project_id}/databases/{self.database}/documents"


class CacheSettings(BaseSettings):
    """Local result cache configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        extra="ignore"
    )

    directory: str = Field(
        default=str(Path.home() / ".cache" / "finwatch"),
        description="Directory holding one JSON envelope per cache key"
    )
    transactions_max_age: float = Field(
        default=300.0,
        ge=0,
        description="Freshness window for transaction result sets (seconds)"
    )
    goals_max_age: float = Field(
        default=300.0,
        ge=0,
        description="Freshness window for goal result sets (seconds)"
    )
    categories_max_age: float = Field(
        default=600.0,
        ge=0,
        description="Freshness window for category result sets (seconds)"
    )


class NotificationSettings(BaseSettings):
    """Notification pipeline configuration."""

    model_config = SettingsConfigDict(
        env_prefix="NOTIFICATIONS_",
        extra="ignore"
    )

    default_periodicity: str = Field(
        default="daily",
        description="Periodicity used when the host does not supply one"
    )
    default_intensity: str = Field(
        default="moderate",
        description="Intensity used when the host does not supply one"
    )
    reminder_hour: int = Field(
        default=9,
        ge=0,
        le=23,
        description="Hour of the single reminder for light/weekly/monthly policies"
    )
    reminder_minute: int = Field(
        default=0,
        ge=0,
        le=59,
        description="Minute of the single reminder"
    )
    window_days: int = Field(
        default=7,
        ge=1,
        le=90,
        description="Days before and after today fetched for each check"
    )
    currency_symbol: str = Field(
        default="R$",
        description="Currency symbol used in notification messages"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Root log level"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def store(self) -> DocumentStoreSettings:
        return DocumentStoreSettings()

    @property
    def cache(self) -> CacheSettings:
        return CacheSettings()

    @property
    def notifications(self) -> NotificationSettings:
        return NotificationSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        results["store"] = settings.store.is_configured
        if not results["store"]:
            results["store_error"] = "FIRESTORE_PROJECT_ID and FIRESTORE_API_KEY are required"
    except Exception as e:
        results["store"] = False
        results["store_error"] = str(e)

    try:
        _ = settings.cache
        results["cache"] = True
    except Exception as e:
        results["cache"] = False
        results["cache_error"] = str(e)

    try:
        _ = settings.notifications
        results["notifications"] = True
    except Exception as e:
        results["notifications"] = False
        results["notifications_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
