"""Application settings via pydantic-settings. Loads from environment and .env file."""

from __future__ import annotations

from pydantic import model_validator
from pydantic_settings import BaseSettings

# Discord rejects voice user limits above 99; 0 means unlimited.
MAX_VOICE_USER_LIMIT = 99


class Settings(BaseSettings):
    """Eventsmode application configuration.

    All values can be overridden via environment variables or .env file.
    """

    # Discord
    discord_bot_token: str = ""
    discord_guild_id: str = ""
    discord_enabled: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///eventsmode.db"

    # Environment
    eventsmode_env: str = "development"

    # Event activity lifecycle
    eventsmode_selection_timeout_seconds: float = 15.0
    eventsmode_voice_user_limit: int = 10

    # Maintenance jobs
    eventsmode_maintenance_enabled: bool = True
    eventsmode_clock_interval_seconds: int = 60
    eventsmode_weekly_reset_cron: str = "0 0 * * 1"  # Monday 00:00

    # Logging
    eventsmode_log_level: str = "INFO"

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}

    @model_validator(mode="after")
    def _check_lifecycle_limits(self) -> Settings:
        """Reject timeouts and channel limits Discord could never honour."""
        if self.eventsmode_selection_timeout_seconds <= 0:
            msg = "EVENTSMODE_SELECTION_TIMEOUT_SECONDS must be positive"
            raise ValueError(msg)
        if not 0 <= self.eventsmode_voice_user_limit <= MAX_VOICE_USER_LIMIT:
            msg = f"EVENTSMODE_VOICE_USER_LIMIT must be between 0 and {MAX_VOICE_USER_LIMIT}"
            raise ValueError(msg)
        if self.eventsmode_clock_interval_seconds < 60:
            msg = "EVENTSMODE_CLOCK_INTERVAL_SECONDS must be at least 60"
            raise ValueError(msg)
        return self
