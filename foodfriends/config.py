"""Application configuration with environment-specific profiles.

Supports dev, staging, and production environments via APP_ENV.
All values can be overridden by environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta, tzinfo
from zoneinfo import ZoneInfo


@dataclass(frozen=True)
class Settings:
    """Immutable application settings resolved from environment."""

    app_env: str = "dev"
    log_level: str = "INFO"

    # Firestore
    firebase_project_id: str = ""
    firebase_credentials_path: str = ""
    firestore_in_limit: int = 30

    # Feed & posting rules
    feed_window_hours: int = 24
    description_max_length: int = 100

    # Registration rules
    min_name_length: int = 3
    min_password_length: int = 6

    # IANA zone for calendar-day streak math; empty means system local time
    local_timezone: str = ""

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def feed_window(self) -> timedelta:
        return timedelta(hours=self.feed_window_hours)

    @property
    def tz(self) -> tzinfo | None:
        return ZoneInfo(self.local_timezone) if self.local_timezone else None


# -- Environment profiles --

_ENV_PROFILES: dict[str, dict] = {
    "dev": {
        "log_level": "DEBUG",
    },
    "staging": {
        "log_level": "INFO",
    },
    "production": {
        "log_level": "WARNING",
    },
}


def get_settings() -> Settings:
    """Build Settings by merging environment profile with env-var overrides."""
    app_env = os.getenv("APP_ENV", "dev")
    profile = _ENV_PROFILES.get(app_env, _ENV_PROFILES["dev"])

    return Settings(
        app_env=app_env,
        log_level=os.getenv("LOG_LEVEL", profile.get("log_level", "INFO")),
        firebase_project_id=os.getenv("FIREBASE_PROJECT_ID", ""),
        firebase_credentials_path=os.getenv("GOOGLE_APPLICATION_CREDENTIALS", ""),
        firestore_in_limit=int(os.getenv("FIRESTORE_IN_LIMIT", "30")),
        feed_window_hours=int(os.getenv("FEED_WINDOW_HOURS", "24")),
        description_max_length=int(os.getenv("DESCRIPTION_MAX_LENGTH", "100")),
        min_name_length=int(os.getenv("MIN_NAME_LENGTH", "3")),
        min_password_length=int(os.getenv("MIN_PASSWORD_LENGTH", "6")),
        local_timezone=os.getenv("LOCAL_TIMEZONE", ""),
    )
