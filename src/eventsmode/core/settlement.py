"""Settlement: payout and operator statistics for a closed activity."""

from __future__ import annotations

import logging
from decimal import ROUND_DOWN, Decimal
from typing import TYPE_CHECKING

from eventsmode.core.errors import OperatorNotFound
from eventsmode.models.activity import SettlementResult, StatisticsDelta

if TYPE_CHECKING:
    from eventsmode.core.ports import OperatorStore
    from eventsmode.models.activity import ActivityRecord

logger = logging.getLogger(__name__)


def compute_salary(event_time: int, multiplier: Decimal) -> int:
    """floor(event_time * multiplier), truncating toward zero in exact decimal arithmetic.

    >>> compute_salary(100, Decimal("0.30"))
    30
    >>> compute_salary(7, Decimal("0.99"))
    6
    """
    product = Decimal(event_time) * multiplier
    return int(product.to_integral_value(rounding=ROUND_DOWN))


def is_new_longest(event_time: int, longest_event: int) -> bool:
    """An unset watermark (0) always moves; otherwise only a strict increase does."""
    return longest_event == 0 or event_time > longest_event


async def settle(store: OperatorStore, record: ActivityRecord) -> SettlementResult:
    """Credit the salary and move the peak watermark for *record*'s operator.

    Store errors propagate unchanged; nothing is retried.
    """
    salary = compute_salary(record.event_time, record.event.multiplier)
    operator = record.operator

    # Re-read so the watermark compares against the stored value, not the
    # snapshot taken when the activity began.
    current = await store.find_operator(operator.guild_id, operator.user_id)
    if current is None:
        raise OperatorNotFound
    longest_updated = is_new_longest(record.event_time, current.longest_event)

    delta = StatisticsDelta(
        weekly_salary=salary,
        total_salary=salary,
        longest_event=record.event_time if longest_updated else None,
    )
    updated = await store.update_statistics(operator.guild_id, operator.user_id, delta)
    if updated is None:
        raise OperatorNotFound

    logger.info(
        "settled activity=%s user_id=%s event_time=%d salary=%d longest_updated=%s",
        record.id,
        operator.user_id,
        record.event_time,
        salary,
        longest_updated,
    )
    return SettlementResult(
        salary=salary,
        event_time=record.event_time,
        longest_event_updated=longest_updated,
        operator=updated,
    )
