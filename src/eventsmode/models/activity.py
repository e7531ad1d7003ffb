"""Operator, in-flight activity, and history models."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from eventsmode.models.event import Event


class OperatorProfile(BaseModel):
    """An eventsmode operator's standing in one guild."""

    model_config = ConfigDict(frozen=True)

    guild_id: str
    user_id: str
    is_hired: bool = True
    weekly_salary: int = Field(default=0, ge=0)
    total_salary: int = Field(default=0, ge=0)
    longest_event: int = Field(default=0, ge=0)  # minutes; 0 = unset


class StatisticsDelta(BaseModel):
    """Changes applied to an operator profile in one settlement.

    Salaries are additive. ``longest_event`` replaces the stored value when set.
    """

    model_config = ConfigDict(frozen=True)

    weekly_salary: int = Field(default=0, ge=0)
    total_salary: int = Field(default=0, ge=0)
    longest_event: int | None = Field(default=None, ge=0)


class ActivityRecord(BaseModel):
    """Full snapshot of an Event Activity, as returned when it is ended."""

    model_config = ConfigDict(frozen=True)

    id: str
    guild_id: str
    event: Event
    operator: OperatorProfile
    voice_channel_id: str
    text_channel_id: str
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    event_time: int = Field(default=0, ge=0)  # minutes


class SettlementResult(BaseModel):
    """Outcome of settling one closed activity."""

    model_config = ConfigDict(frozen=True)

    salary: int
    event_time: int
    longest_event_updated: bool
    operator: OperatorProfile  # profile after the update


class HistoryEntry(BaseModel):
    """Append-only snapshot shared by the weekly and global history stores."""

    model_config = ConfigDict(frozen=True)

    guild_id: str
    event: Event
    operator: OperatorProfile
    started_at: datetime
    total_time: int
    total_salary: int
