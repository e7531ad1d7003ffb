"""Tests for the activity clock and weekly reset jobs."""

from unittest.mock import patch

from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import OperationalError

from eventsmode.config import Settings
from eventsmode.core.maintenance import build_scheduler, tick_event_clock, weekly_reset
from eventsmode.core.settlement import settle
from eventsmode.models.activity import HistoryEntry


class TestEventClock:
    async def test_advances_running_activities(self, engine, stores, seed_guild):
        operator, (event,) = await seed_guild()
        async with stores() as repo:
            record = await repo.insert_activity_if_absent(event, operator, "v", "t")

        assert await tick_event_clock(engine) == 1
        assert await tick_event_clock(engine, minutes=2) == 1

        async with stores() as repo:
            assert (await repo.get_activity(record.id)).event_time == 3

    async def test_no_activities(self, engine):
        assert await tick_event_clock(engine) == 0

    async def test_db_error_is_logged_not_raised(self, engine):
        with patch(
            "eventsmode.core.maintenance.Repository.add_event_time",
            side_effect=OperationalError("UPDATE", {}, Exception("locked")),
        ):
            assert await tick_event_clock(engine) == 0


class TestWeeklyReset:
    async def test_resets_weekly_keeps_totals_and_global(self, engine, stores, seed_guild):
        operator, (event,) = await seed_guild(events=(("Games", "Mafia", "1"),))
        async with stores() as repo:
            record = await repo.insert_activity_if_absent(event, operator, "v", "t")
            record = record.model_copy(update={"event_time": 30})
            await settle(repo, record)
            entry = HistoryEntry(
                guild_id=operator.guild_id,
                event=event,
                operator=operator,
                started_at=record.started_at,
                total_time=30,
                total_salary=30,
            )
            await repo.append_weekly_history(entry)
            await repo.append_global_history(entry)

        assert await weekly_reset(engine) == (1, 1)

        async with stores() as repo:
            profile = await repo.find_operator(operator.guild_id, operator.user_id)
            assert await repo.list_weekly_history(operator.guild_id) == []
            assert len(await repo.list_global_history(operator.guild_id)) == 1
        assert profile.weekly_salary == 0
        assert profile.total_salary == 30
        assert profile.longest_event == 30


class TestScheduler:
    def test_registers_both_jobs(self, engine):
        settings = Settings(
            eventsmode_clock_interval_seconds=120,
            eventsmode_weekly_reset_cron="30 4 * * 0",
        )
        scheduler = build_scheduler(settings, engine)
        jobs = {job.id: job for job in scheduler.get_jobs()}
        assert set(jobs) == {"tick_event_clock", "weekly_reset"}
        assert isinstance(jobs["tick_event_clock"].trigger, IntervalTrigger)
        assert jobs["tick_event_clock"].kwargs["minutes"] == 2
        assert isinstance(jobs["weekly_reset"].trigger, CronTrigger)
        assert not scheduler.running
