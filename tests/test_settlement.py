"""Tests for salary computation and operator statistics settlement."""

from decimal import Decimal

import pytest

from eventsmode.core.errors import OperatorNotFound
from eventsmode.core.ports import StoreScope
from eventsmode.core.settlement import compute_salary, is_new_longest, settle
from eventsmode.models.activity import ActivityRecord


def _record(operator, event, event_time: int) -> ActivityRecord:
    return ActivityRecord(
        id="a-1",
        guild_id=operator.guild_id,
        event=event,
        operator=operator,
        voice_channel_id="v",
        text_channel_id="t",
        event_time=event_time,
    )


class TestComputeSalary:
    def test_exact_product(self):
        assert compute_salary(100, Decimal("0.30")) == 30

    def test_truncates_fraction(self):
        assert compute_salary(7, Decimal("0.99")) == 6

    def test_zero_time_pays_nothing(self):
        assert compute_salary(0, Decimal("5")) == 0

    def test_no_binary_float_drift(self):
        # 0.1 * 30 is 3.0000000000000004 in binary floating point.
        assert compute_salary(30, Decimal("0.1")) == 3

    def test_multiplier_above_one(self):
        assert compute_salary(45, Decimal("1.5")) == 67


class TestWatermark:
    def test_unset_watermark_always_moves(self):
        assert is_new_longest(50, 0)

    def test_equal_does_not_move(self):
        assert not is_new_longest(50, 50)

    def test_strict_increase_moves(self):
        assert is_new_longest(51, 50)

    def test_shorter_does_not_move(self):
        assert not is_new_longest(10, 50)


class TestSettle:
    async def test_credits_both_salaries(self, stores: StoreScope, seed_guild):
        operator, (event,) = await seed_guild(events=(("Games", "Mafia", "0.30"),))
        async with stores() as repo:
            result = await settle(repo, _record(operator, event, 100))
        assert result.salary == 30
        assert result.operator.weekly_salary == 30
        assert result.operator.total_salary == 30

    async def test_watermark_sequence(self, stores: StoreScope, seed_guild):
        operator, (event,) = await seed_guild(events=(("Games", "Mafia", "1"),))

        async with stores() as repo:
            first = await settle(repo, _record(operator, event, 50))
        assert first.longest_event_updated
        assert first.operator.longest_event == 50

        async with stores() as repo:
            second = await settle(repo, _record(operator, event, 50))
        assert not second.longest_event_updated
        assert second.operator.longest_event == 50

        async with stores() as repo:
            third = await settle(repo, _record(operator, event, 51))
        assert third.longest_event_updated
        assert third.operator.longest_event == 51
        assert third.operator.total_salary == 151

    async def test_compares_against_stored_watermark(self, stores: StoreScope, seed_guild):
        """The snapshot taken at start may be stale; the stored value wins."""
        operator, (event,) = await seed_guild()
        async with stores() as repo:
            await settle(repo, _record(operator, event, 80))
        # operator snapshot still says longest_event == 0
        async with stores() as repo:
            result = await settle(repo, _record(operator, event, 60))
        assert not result.longest_event_updated
        assert result.operator.longest_event == 80

    async def test_missing_operator_raises(self, stores: StoreScope, seed_guild):
        operator, (event,) = await seed_guild()
        ghost = operator.model_copy(update={"user_id": "nobody"})
        async with stores() as repo:
            with pytest.raises(OperatorNotFound):
                await settle(repo, _record(ghost, event, 10))
