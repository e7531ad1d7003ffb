"""Scheduled maintenance jobs, invoked by APScheduler.

``tick_event_clock`` advances every running activity's ``event_time``.
``weekly_reset`` zeroes weekly salaries and truncates the weekly history;
global history is never touched.

Errors are logged but never propagated so the scheduler keeps running.
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from eventsmode.config import Settings
from eventsmode.db.engine import get_session
from eventsmode.db.repository import Repository

logger = logging.getLogger(__name__)


async def tick_event_clock(engine: AsyncEngine, minutes: int = 1) -> int:
    """Add *minutes* to every running activity. Returns activities touched."""
    try:
        async with get_session(engine) as session:
            touched = await Repository(session).add_event_time(minutes)
    except SQLAlchemyError:
        logger.exception("event_clock_tick_failed minutes=%d", minutes)
        return 0
    if touched:
        logger.debug("event_clock_ticked minutes=%d activities=%d", minutes, touched)
    return touched


async def weekly_reset(engine: AsyncEngine) -> tuple[int, int]:
    """Zero weekly salaries and drop weekly history in one transaction.

    Returns (operators reset, history rows removed).
    """
    try:
        async with get_session(engine) as session:
            repo = Repository(session)
            operators = await repo.reset_weekly_salaries()
            removed = await repo.truncate_weekly_history()
    except SQLAlchemyError:
        logger.exception("weekly_reset_failed")
        return (0, 0)
    logger.info("weekly_reset_done operators=%d history_removed=%d", operators, removed)
    return (operators, removed)


def build_scheduler(settings: Settings, engine: AsyncEngine) -> AsyncIOScheduler:
    """Create (but do not start) the scheduler with both maintenance jobs."""
    scheduler = AsyncIOScheduler()
    interval = settings.eventsmode_clock_interval_seconds
    scheduler.add_job(
        tick_event_clock,
        trigger=IntervalTrigger(seconds=interval),
        kwargs={"engine": engine, "minutes": interval // 60},
        id="tick_event_clock",
        name="Advance running activity clocks",
        replace_existing=True,
    )
    scheduler.add_job(
        weekly_reset,
        trigger=CronTrigger.from_crontab(settings.eventsmode_weekly_reset_cron),
        kwargs={"engine": engine},
        id="weekly_reset",
        name="Reset weekly salaries and history",
        replace_existing=True,
    )
    return scheduler
