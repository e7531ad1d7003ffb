"""SQLAlchemy ORM models for the eventsmode database.

Tables: guild_settings, events, eventsmodes, event_bans, global_event_bans,
event_activities, weekly_event_history, global_event_history.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.sqlite import JSON
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class GuildSettingsRow(Base):
    __tablename__ = "guild_settings"

    guild_id: Mapped[str] = mapped_column(String(20), primary_key=True)
    is_channel_configured: Mapped[bool] = mapped_column(Boolean, default=False)
    eventsmode_category_id: Mapped[str | None] = mapped_column(String(20), nullable=True)
    log_channel_id: Mapped[str | None] = mapped_column(String(20), nullable=True)
    moderator_role_id: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_event_announce: Mapped[bool] = mapped_column(Boolean, default=False)
    announce_channel_id: Mapped[str | None] = mapped_column(String(20), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )


class EventRow(Base):
    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    guild_id: Mapped[str] = mapped_column(String(20), nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(20), nullable=False)
    # Stored as text so the multiplier round-trips as an exact Decimal.
    multiplier: Mapped[str] = mapped_column(String(20), nullable=False)
    start_embed: Mapped[str] = mapped_column(Text, default="")
    announce_embed: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))

    __table_args__ = (
        UniqueConstraint("guild_id", "category", "name", name="uq_event_identity"),
        Index("ix_events_guild_category", "guild_id", "category"),
    )


class EventsmodeRow(Base):
    """An eventsmode operator profile, one per (guild, user)."""

    __tablename__ = "eventsmodes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    guild_id: Mapped[str] = mapped_column(String(20), nullable=False)
    user_id: Mapped[str] = mapped_column(String(20), nullable=False)
    is_hired: Mapped[bool] = mapped_column(Boolean, default=True)
    weekly_salary: Mapped[int] = mapped_column(Integer, default=0)
    total_salary: Mapped[int] = mapped_column(Integer, default=0)
    longest_event: Mapped[int] = mapped_column(Integer, default=0)
    hired_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))

    __table_args__ = (UniqueConstraint("guild_id", "user_id", name="uq_eventsmode_member"),)


class EventBanRow(Base):
    __tablename__ = "event_bans"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    guild_id: Mapped[str] = mapped_column(String(20), nullable=False)
    executor_id: Mapped[str] = mapped_column(String(20), nullable=False)
    target_id: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))

    __table_args__ = (UniqueConstraint("guild_id", "target_id", name="uq_event_ban_target"),)


class GlobalEventBanRow(Base):
    __tablename__ = "global_event_bans"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    executor_id: Mapped[str] = mapped_column(String(20), nullable=False)
    target_id: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))


class EventActivityRow(Base):
    """The in-flight activity. The unique constraint is the one-per-operator guard."""

    __tablename__ = "event_activities"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    guild_id: Mapped[str] = mapped_column(String(20), nullable=False)
    event_id: Mapped[str] = mapped_column(ForeignKey("events.id"), nullable=False)
    eventsmode_id: Mapped[str] = mapped_column(ForeignKey("eventsmodes.id"), nullable=False)
    voice_channel_id: Mapped[str] = mapped_column(String(20), nullable=False)
    text_channel_id: Mapped[str] = mapped_column(String(20), nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))
    event_time: Mapped[int] = mapped_column(Integer, default=0)

    event: Mapped[EventRow] = relationship()
    eventsmode: Mapped[EventsmodeRow] = relationship()

    __table_args__ = (
        UniqueConstraint("guild_id", "eventsmode_id", name="uq_activity_operator"),
    )


class _HistoryColumns:
    """Columns shared by the weekly and global history tables.

    Event and operator are stored as JSON snapshots, not foreign keys, so
    history survives event removal and operator firing.
    """

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    guild_id: Mapped[str] = mapped_column(String(20), nullable=False)
    event_snapshot: Mapped[dict] = mapped_column(JSON, nullable=False)
    operator_snapshot: Mapped[dict] = mapped_column(JSON, nullable=False)
    operator_user_id: Mapped[str] = mapped_column(String(20), nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    total_time: Mapped[int] = mapped_column(Integer, nullable=False)
    total_salary: Mapped[int] = mapped_column(Integer, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))


class WeeklyEventHistoryRow(_HistoryColumns, Base):
    __tablename__ = "weekly_event_history"

    __table_args__ = (Index("ix_weekly_history_guild_user", "guild_id", "operator_user_id"),)


class GlobalEventHistoryRow(_HistoryColumns, Base):
    __tablename__ = "global_event_history"

    __table_args__ = (Index("ix_global_history_guild_user", "guild_id", "operator_user_id"),)
