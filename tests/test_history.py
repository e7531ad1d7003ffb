"""Tests for the history recorder."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import pytest

from eventsmode.core.errors import HistoryRecordError
from eventsmode.core.history import HistoryRecorder, build_history_entry
from eventsmode.core.ports import StoreScope
from eventsmode.models.activity import ActivityRecord


def _record(operator, event, event_time: int = 40) -> ActivityRecord:
    return ActivityRecord(
        id="a-1",
        guild_id=operator.guild_id,
        event=event,
        operator=operator,
        voice_channel_id="v",
        text_channel_id="t",
        event_time=event_time,
    )


def _failing_scope(stores: StoreScope, method: str) -> StoreScope:
    """Wrap *stores* so that *method* raises on the repository it yields."""

    @asynccontextmanager
    async def scope() -> AsyncGenerator:
        async with stores() as repo:

            async def boom(*args, **kwargs):
                raise RuntimeError(f"{method} unavailable")

            setattr(repo, method, boom)
            yield repo

    return scope


class TestBuildEntry:
    async def test_totals_come_from_record(self, seed_guild):
        operator, (event,) = await seed_guild()
        entry = build_history_entry(_record(operator, event, event_time=40), 20)
        assert (entry.total_time, entry.total_salary) == (40, 20)
        assert entry.operator == operator
        assert entry.event == event


class TestRecord:
    async def test_writes_both_stores(self, stores: StoreScope, seed_guild):
        operator, (event,) = await seed_guild(events=(("Games", "Mafia", "0.5"),))
        entry = await HistoryRecorder(stores).record(_record(operator, event), salary=20)
        assert entry.total_time == 40
        assert entry.total_salary == 20
        async with stores() as repo:
            (weekly,) = await repo.list_weekly_history(operator.guild_id)
            (global_,) = await repo.list_global_history(operator.guild_id)
        for stored in (weekly, global_):
            assert stored.total_time == 40
            assert stored.total_salary == 20
            assert stored.event.name == "Mafia"

    async def test_weekly_failure_still_writes_global(self, stores: StoreScope, seed_guild):
        operator, (event,) = await seed_guild()
        recorder = HistoryRecorder(_failing_scope(stores, "append_weekly_history"))
        with pytest.raises(HistoryRecordError) as excinfo:
            await recorder.record(_record(operator, event), salary=20)
        assert excinfo.value.failed == ["weekly"]
        async with stores() as repo:
            assert await repo.list_weekly_history(operator.guild_id) == []
            assert len(await repo.list_global_history(operator.guild_id)) == 1

    async def test_global_failure_keeps_weekly(self, stores: StoreScope, seed_guild):
        operator, (event,) = await seed_guild()
        recorder = HistoryRecorder(_failing_scope(stores, "append_global_history"))
        with pytest.raises(HistoryRecordError) as excinfo:
            await recorder.record(_record(operator, event), salary=20)
        assert excinfo.value.failed == ["global"]
        async with stores() as repo:
            assert len(await repo.list_weekly_history(operator.guild_id)) == 1
