"""Tests for database layer: engine, ORM models, repository round-trips."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncEngine

from eventsmode.core.ports import StoreScope
from eventsmode.db.engine import get_session
from eventsmode.db.repository import Repository
from eventsmode.models.activity import HistoryEntry, StatisticsDelta

GUILD = "g-1"


@pytest.fixture
async def repo(engine: AsyncEngine) -> Repository:
    """Yield a repository with a session bound to the in-memory database."""
    async with get_session(engine) as session:
        yield Repository(session)


class TestTableCreation:
    async def test_all_tables_created(self, engine: AsyncEngine):
        async with engine.connect() as conn:
            tables = await conn.run_sync(
                lambda sync_conn: sync_conn.dialect.get_table_names(sync_conn)
            )
        expected = {
            "guild_settings",
            "events",
            "eventsmodes",
            "event_bans",
            "global_event_bans",
            "event_activities",
            "weekly_event_history",
            "global_event_history",
        }
        assert expected.issubset(set(tables))


class TestGuildSettings:
    async def test_unconfigured_defaults(self, repo: Repository):
        settings = await repo.get_guild_settings(GUILD)
        assert settings.guild_id == GUILD
        assert not settings.is_channel_configured
        assert settings.eventsmode_category_id is None

    async def test_upsert_merges_fields(self, repo: Repository):
        await repo.upsert_guild_settings(GUILD, log_channel_id="log")
        settings = await repo.upsert_guild_settings(
            GUILD, is_channel_configured=True, eventsmode_category_id="cat"
        )
        assert settings.log_channel_id == "log"
        assert settings.eventsmode_category_id == "cat"

    async def test_upsert_rejects_unknown_field(self, repo: Repository):
        with pytest.raises(ValueError, match="Unknown guild setting"):
            await repo.upsert_guild_settings(GUILD, colour="red")


class TestEventCatalog:
    async def test_create_and_find(self, repo: Repository):
        created = await repo.create_event(GUILD, "Games", "Mafia", Decimal("0.5"))
        found = await repo.find_event(GUILD, "Games", "Mafia")
        assert found == created
        assert found.multiplier == Decimal("0.5")

    async def test_find_is_scoped_to_guild(self, repo: Repository):
        await repo.create_event(GUILD, "Games", "Mafia", Decimal("0.5"))
        assert await repo.find_event("other", "Games", "Mafia") is None

    async def test_list_orders_by_category_then_name(self, repo: Repository):
        await repo.create_event(GUILD, "Quiz", "Music", Decimal("1"))
        await repo.create_event(GUILD, "Games", "Uno", Decimal("1"))
        await repo.create_event(GUILD, "Games", "Mafia", Decimal("1"))
        labels = [e.label for e in await repo.list_events(GUILD)]
        assert labels == ["Games | Mafia", "Games | Uno", "Quiz | Music"]

    async def test_rejects_long_name(self, repo: Repository):
        with pytest.raises(ValidationError):
            await repo.create_event(GUILD, "Games", "x" * 21, Decimal("1"))

    async def test_rejects_non_positive_multiplier(self, repo: Repository):
        with pytest.raises(ValidationError):
            await repo.create_event(GUILD, "Games", "Mafia", Decimal("0"))

    async def test_update_field(self, repo: Repository):
        event = await repo.create_event(GUILD, "Games", "Mafia", Decimal("0.5"))
        updated = await repo.update_event_field(event.id, "multiplier", "0.75")
        assert updated.multiplier == Decimal("0.75")
        assert (await repo.get_event(event.id)).multiplier == Decimal("0.75")

    async def test_update_rejects_non_editable_field(self, repo: Repository):
        event = await repo.create_event(GUILD, "Games", "Mafia", Decimal("0.5"))
        with pytest.raises(ValueError, match="not editable"):
            await repo.update_event_field(event.id, "guild_id", "other")

    async def test_remove(self, repo: Repository):
        await repo.create_event(GUILD, "Games", "Mafia", Decimal("0.5"))
        assert await repo.remove_event(GUILD, "Games", "Mafia")
        assert not await repo.remove_event(GUILD, "Games", "Mafia")


class TestBans:
    async def test_guild_ban_is_idempotent(self, repo: Repository):
        assert await repo.add_guild_ban(GUILD, "mod", "target")
        assert not await repo.add_guild_ban(GUILD, "mod2", "target")
        bans = await repo.list_guild_bans(GUILD)
        assert [b.target_id for b in bans] == ["target"]
        assert not bans[0].is_global

    async def test_global_ban(self, repo: Repository):
        assert await repo.add_global_ban("owner", "target")
        bans = await repo.list_global_bans()
        assert bans[0].is_global
        assert await repo.remove_global_ban("target")
        assert await repo.list_global_bans() == []

    async def test_remove_guild_ban(self, repo: Repository):
        await repo.add_guild_ban(GUILD, "mod", "target")
        assert await repo.remove_guild_ban(GUILD, "target")
        assert not await repo.remove_guild_ban(GUILD, "target")


class TestOperators:
    async def test_hire_creates_profile(self, repo: Repository):
        profile = await repo.hire_operator(GUILD, "u")
        assert profile.is_hired
        assert profile.weekly_salary == 0

    async def test_rehire_keeps_statistics(self, repo: Repository):
        await repo.hire_operator(GUILD, "u")
        await repo.update_statistics(
            GUILD, "u", StatisticsDelta(weekly_salary=5, total_salary=5, longest_event=9)
        )
        assert await repo.fire_operator(GUILD, "u")
        profile = await repo.hire_operator(GUILD, "u")
        assert profile.is_hired
        assert profile.total_salary == 5
        assert profile.longest_event == 9

    async def test_fire_unknown_returns_false(self, repo: Repository):
        assert not await repo.fire_operator(GUILD, "nobody")

    async def test_update_statistics_increments(self, repo: Repository):
        await repo.hire_operator(GUILD, "u")
        delta = StatisticsDelta(weekly_salary=3, total_salary=3)
        await repo.update_statistics(GUILD, "u", delta)
        profile = await repo.update_statistics(GUILD, "u", delta)
        assert profile.weekly_salary == 6
        assert profile.total_salary == 6
        assert profile.longest_event == 0

    async def test_update_statistics_unknown_operator(self, repo: Repository):
        assert await repo.update_statistics(GUILD, "nobody", StatisticsDelta()) is None

    async def test_reset_weekly_salaries(self, repo: Repository):
        await repo.hire_operator(GUILD, "u")
        await repo.update_statistics(
            GUILD, "u", StatisticsDelta(weekly_salary=4, total_salary=4)
        )
        assert await repo.reset_weekly_salaries() == 1
        profile = await repo.find_operator(GUILD, "u")
        assert profile.weekly_salary == 0
        assert profile.total_salary == 4


class TestActivities:
    async def test_insert_if_absent_once_per_operator(self, stores: StoreScope, seed_guild):
        operator, (event,) = await seed_guild()
        async with stores() as repo:
            first = await repo.insert_activity_if_absent(event, operator, "v1", "t1")
        async with stores() as repo:
            second = await repo.insert_activity_if_absent(event, operator, "v2", "t2")
        assert first is not None
        assert second is None
        async with stores() as repo:
            active = await repo.find_activity_by_operator(operator.guild_id, operator.user_id)
        assert active.id == first.id
        assert active.voice_channel_id == "v1"

    async def test_insert_without_profile_returns_none(self, stores: StoreScope, seed_guild):
        operator, (event,) = await seed_guild()
        ghost = operator.model_copy(update={"user_id": "ghost"})
        async with stores() as repo:
            assert await repo.insert_activity_if_absent(event, ghost, "v", "t") is None

    async def test_delete_returns_snapshot_once(self, stores: StoreScope, seed_guild):
        operator, (event,) = await seed_guild()
        async with stores() as repo:
            record = await repo.insert_activity_if_absent(event, operator, "v", "t")
        async with stores() as repo:
            snapshot = await repo.delete_activity(record.id)
        async with stores() as repo:
            again = await repo.delete_activity(record.id)
        assert snapshot.event == event
        assert snapshot.operator.user_id == operator.user_id
        assert again is None

    async def test_add_event_time(self, stores: StoreScope, seed_guild):
        operator, (event,) = await seed_guild()
        async with stores() as repo:
            record = await repo.insert_activity_if_absent(event, operator, "v", "t")
        async with stores() as repo:
            assert await repo.add_event_time(1) == 1
            await repo.add_event_time(2)
        async with stores() as repo:
            fetched = await repo.get_activity(record.id)
        assert fetched.event_time == 3


class TestHistory:
    def _entry(self, operator, event) -> HistoryEntry:
        return HistoryEntry(
            guild_id=operator.guild_id,
            event=event,
            operator=operator,
            started_at=datetime(2024, 1, 1, tzinfo=UTC),
            total_time=40,
            total_salary=20,
        )

    async def test_weekly_and_global_are_separate(self, stores: StoreScope, seed_guild):
        operator, (event,) = await seed_guild()
        async with stores() as repo:
            await repo.append_weekly_history(self._entry(operator, event))
            await repo.append_global_history(self._entry(operator, event))
            await repo.append_global_history(self._entry(operator, event))
        async with stores() as repo:
            assert len(await repo.list_weekly_history(operator.guild_id)) == 1
            assert len(await repo.list_global_history(operator.guild_id)) == 2

    async def test_entries_keep_event_snapshot(self, stores: StoreScope, seed_guild):
        operator, (event,) = await seed_guild()
        async with stores() as repo:
            await repo.append_weekly_history(self._entry(operator, event))
            await repo.update_event_field(event.id, "multiplier", "2")
        async with stores() as repo:
            (entry,) = await repo.list_weekly_history(operator.guild_id, operator.user_id)
        assert entry.event.multiplier == Decimal("0.5")
        assert entry.total_salary == 20

    async def test_truncate_weekly_only(self, stores: StoreScope, seed_guild):
        operator, (event,) = await seed_guild()
        async with stores() as repo:
            await repo.append_weekly_history(self._entry(operator, event))
            await repo.append_global_history(self._entry(operator, event))
        async with stores() as repo:
            assert await repo.truncate_weekly_history() == 1
        async with stores() as repo:
            assert await repo.list_weekly_history(operator.guild_id) == []
            assert len(await repo.list_global_history(operator.guild_id)) == 1
