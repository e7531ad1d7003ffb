"""Tests for the activity tracker: one running activity per operator."""

import asyncio

import pytest

from eventsmode.core.activity import ActivityTracker
from eventsmode.core.errors import ActivityNotFound, AlreadyActive, OperatorNotFound
from eventsmode.core.ports import StoreScope


class TestBeginActivity:
    async def test_returns_id_of_stored_record(self, stores: StoreScope, seed_guild):
        operator, (event,) = await seed_guild()
        tracker = ActivityTracker(stores)
        activity_id = await tracker.begin_activity(event, operator, "v", "t")
        record = await tracker.find_active(operator.guild_id, operator.user_id)
        assert record.id == activity_id
        assert record.event_time == 0

    async def test_second_begin_raises(self, stores: StoreScope, seed_guild):
        operator, (event,) = await seed_guild()
        tracker = ActivityTracker(stores)
        await tracker.begin_activity(event, operator, "v", "t")
        with pytest.raises(AlreadyActive):
            await tracker.begin_activity(event, operator, "v2", "t2")

    async def test_concurrent_begins_register_exactly_one(self, stores: StoreScope, seed_guild):
        operator, (event,) = await seed_guild()
        tracker = ActivityTracker(stores)
        results = await asyncio.gather(
            tracker.begin_activity(event, operator, "v1", "t1"),
            tracker.begin_activity(event, operator, "v2", "t2"),
            return_exceptions=True,
        )
        ids = [r for r in results if isinstance(r, str)]
        errors = [r for r in results if isinstance(r, AlreadyActive)]
        assert len(ids) == 1
        assert len(errors) == 1

    async def test_separate_trackers_still_one_activity(self, stores: StoreScope, seed_guild):
        """The store's insert-if-absent holds even without the shared lock."""
        operator, (event,) = await seed_guild()
        await ActivityTracker(stores).begin_activity(event, operator, "v1", "t1")
        with pytest.raises(AlreadyActive):
            await ActivityTracker(stores).begin_activity(event, operator, "v2", "t2")

    async def test_same_user_in_other_guild_is_independent(self, stores: StoreScope, seed_guild):
        operator, (event,) = await seed_guild()
        other_op, (other_event,) = await seed_guild(guild_id="g-2")
        tracker = ActivityTracker(stores)
        await tracker.begin_activity(event, operator, "v1", "t1")
        await tracker.begin_activity(other_event, other_op, "v2", "t2")


    async def test_unknown_operator_is_not_found(self, stores: StoreScope, seed_guild):
        operator, (event,) = await seed_guild()
        ghost = operator.model_copy(update={"user_id": "ghost"})
        with pytest.raises(OperatorNotFound):
            await ActivityTracker(stores).begin_activity(event, ghost, "v", "t")


class TestLocks:
    async def test_lock_shared_while_held(self, stores: StoreScope):
        tracker = ActivityTracker(stores)
        lock = tracker.lock_for("g-1", "u-1")
        assert tracker.lock_for("g-1", "u-1") is lock
        assert tracker.lock_for("g-1", "u-2") is not lock

    async def test_lock_dropped_after_begin(self, stores: StoreScope, seed_guild):
        operator, (event,) = await seed_guild()
        tracker = ActivityTracker(stores)
        await tracker.begin_activity(event, operator, "v", "t")
        assert (operator.guild_id, operator.user_id) not in tracker._locks

class TestEndActivity:
    async def test_returns_snapshot_and_frees_operator(self, stores: StoreScope, seed_guild):
        operator, (event,) = await seed_guild()
        tracker = ActivityTracker(stores)
        activity_id = await tracker.begin_activity(event, operator, "v", "t")
        record = await tracker.end_activity(activity_id)
        assert record.id == activity_id
        assert record.voice_channel_id == "v"
        assert await tracker.find_active(operator.guild_id, operator.user_id) is None
        await tracker.begin_activity(event, operator, "v2", "t2")

    async def test_second_end_raises(self, stores: StoreScope, seed_guild):
        operator, (event,) = await seed_guild()
        tracker = ActivityTracker(stores)
        activity_id = await tracker.begin_activity(event, operator, "v", "t")
        await tracker.end_activity(activity_id)
        with pytest.raises(ActivityNotFound):
            await tracker.end_activity(activity_id)
