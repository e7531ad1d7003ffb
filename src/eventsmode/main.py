"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from eventsmode.api.activities import router as activities_router
from eventsmode.api.history import router as history_router
from eventsmode.api.operators import router as operators_router
from eventsmode.config import Settings
from eventsmode.core.event_bus import EventBus
from eventsmode.core.maintenance import build_scheduler
from eventsmode.db.engine import create_engine, create_tables

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: create engine/tables, optionally start the Discord bot and scheduler."""
    settings: Settings = app.state.settings
    engine = create_engine(settings.database_url)
    await create_tables(engine)
    app.state.engine = engine
    app.state.event_bus = EventBus()

    # Start Discord bot if configured
    discord_bot = None
    from eventsmode.discord.bot import is_discord_enabled

    if is_discord_enabled(settings):
        from eventsmode.discord.bot import start_discord_bot

        discord_bot = await start_discord_bot(settings, app.state.event_bus, engine)
        app.state.discord_bot = discord_bot
        logger.info("discord_bot_integration_started")
    else:
        logger.info("discord_bot_integration_disabled")

    # Activity clock and weekly reset
    scheduler = None
    if settings.eventsmode_maintenance_enabled:
        scheduler = build_scheduler(settings, engine)
        scheduler.start()
        logger.info(
            "scheduler_started clock_interval=%ds weekly_cron=%s",
            settings.eventsmode_clock_interval_seconds,
            settings.eventsmode_weekly_reset_cron,
        )
    else:
        logger.info("scheduler_disabled")
    app.state.scheduler = scheduler

    yield

    if scheduler is not None:
        scheduler.shutdown(wait=False)
        logger.info("scheduler_stopped")

    if discord_bot is not None:
        await discord_bot.close()
        logger.info("discord_bot_integration_stopped")

    await engine.dispose()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the eventsmode FastAPI application."""
    settings = settings or Settings()

    logging.basicConfig(
        level=getattr(logging, settings.eventsmode_log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Eventsmode",
        version="0.1.0",
        description="Discord event hosting with salaries, event bans and history",
        docs_url="/docs" if settings.eventsmode_env != "production" else None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.include_router(activities_router)
    app.include_router(operators_router)
    app.include_router(history_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "env": settings.eventsmode_env}

    return app


app = create_app()
