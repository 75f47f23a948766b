"""
Configuration service for reading settings from the environment.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, List, Optional

logger = logging.getLogger("rollgroups.config")


class ConfigService:
    """Service for managing application configuration."""

    def __init__(self):
        self._cache: dict[str, Any] = {}

    def get_setting(self, key: str, default: Any = None) -> Any:
        """
        Get setting value from the environment.

        Priority: Override > Environment > Default
        """
        if key in self._cache:
            return self._cache[key]

        value = os.getenv(key, default)
        self._cache[key] = value

        logger.debug(f"Retrieved setting {key}={value}")
        return value

    def get_int(self, key: str, default: int) -> int:
        """Get an integer setting, falling back to default on bad values."""
        value = self.get_setting(key, default)
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning(f"Invalid integer for {key}: {value}, using {default}")
            return default

    def set_setting(self, key: str, value: Any) -> None:
        """Override a setting for the lifetime of the process."""
        self._cache[key] = value
        logger.info(f"Set setting {key}={value}")

    def clear_cache(self) -> None:
        self._cache.clear()

    def now(self) -> datetime:
        """
        Get current time (real or fake based on APP_NOW_MODE).

        Timestamps are stored as naive UTC, so the value returned here is naive
        UTC too.

        Returns:
            Current datetime (real or fake)
        """
        fake_now = self.get_fake_time()
        if fake_now is not None:
            logger.debug(f"Using fake time: {fake_now}")
            return fake_now

        return datetime.now(timezone.utc).replace(tzinfo=None)

    def is_fake_time_enabled(self) -> bool:
        """Check if fake time mode is enabled."""
        return self.get_setting("APP_NOW_MODE", "real") == "fake"

    def get_fake_time(self) -> Optional[datetime]:
        """Get fake time if enabled, None otherwise."""
        if not self.is_fake_time_enabled():
            return None

        fake_now_str = self.get_setting("APP_FAKE_NOW")
        if fake_now_str:
            try:
                return datetime.strptime(fake_now_str, "%Y-%m-%d")
            except ValueError:
                logger.warning(f"Invalid APP_FAKE_NOW format: {fake_now_str}, using real time")

        return None

    @property
    def database_url(self) -> str:
        return self.get_setting("DB_URL", "sqlite:///./rollgroups.db")

    @property
    def group_filter_max_workers(self) -> int:
        return max(1, self.get_int("GROUP_FILTER_MAX_WORKERS", 4))

    @property
    def cors_origins(self) -> List[str]:
        """Comma-separated CORS_ORIGINS, "*" when unset."""
        value = self.get_setting("CORS_ORIGINS", "*")
        return [origin.strip() for origin in str(value).split(",") if origin.strip()]


# Global instance
config_service = ConfigService()


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
