"""Tests for application configuration."""

import pytest
from pydantic import ValidationError

from eventsmode.config import MAX_VOICE_USER_LIMIT, Settings


class TestDefaults:
    def test_lifecycle_defaults(self) -> None:
        settings = Settings(database_url="sqlite+aiosqlite:///:memory:")
        assert settings.eventsmode_selection_timeout_seconds == 15.0
        assert settings.eventsmode_voice_user_limit == 10
        assert settings.eventsmode_clock_interval_seconds == 60
        assert settings.eventsmode_weekly_reset_cron == "0 0 * * 1"

    def test_discord_disabled_by_default(self) -> None:
        settings = Settings(database_url="sqlite+aiosqlite:///:memory:")
        assert settings.discord_enabled is False


class TestLifecycleLimits:
    def test_rejects_zero_selection_timeout(self) -> None:
        with pytest.raises(ValidationError, match="SELECTION_TIMEOUT"):
            Settings(eventsmode_selection_timeout_seconds=0)

    def test_rejects_voice_limit_above_discord_max(self) -> None:
        with pytest.raises(ValidationError, match="VOICE_USER_LIMIT"):
            Settings(eventsmode_voice_user_limit=MAX_VOICE_USER_LIMIT + 1)

    def test_zero_voice_limit_means_unlimited(self) -> None:
        settings = Settings(eventsmode_voice_user_limit=0)
        assert settings.eventsmode_voice_user_limit == 0

    def test_rejects_sub_minute_clock(self) -> None:
        with pytest.raises(ValidationError, match="CLOCK_INTERVAL"):
            Settings(eventsmode_clock_interval_seconds=30)

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("EVENTSMODE_SELECTION_TIMEOUT_SECONDS", "30")
        assert Settings().eventsmode_selection_timeout_seconds == 30.0
