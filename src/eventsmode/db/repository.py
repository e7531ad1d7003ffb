"""Repository pattern for database access.

Wraps SQLAlchemy async sessions. Implements every storage collaborator the
activity lifecycle depends on (see ``eventsmode.core.ports``). History tables
are append-only; rows are converted to frozen pydantic models before they
leave this module.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from eventsmode.db.models import (
    EventActivityRow,
    EventBanRow,
    EventRow,
    EventsmodeRow,
    GlobalEventBanRow,
    GlobalEventHistoryRow,
    GuildSettingsRow,
    WeeklyEventHistoryRow,
    _uuid,
)
from eventsmode.models.activity import (
    ActivityRecord,
    HistoryEntry,
    OperatorProfile,
    StatisticsDelta,
)
from eventsmode.models.event import EDITABLE_EVENT_FIELDS, BanEntry, Event
from eventsmode.models.guild import GuildSettings

HistoryRow = WeeklyEventHistoryRow | GlobalEventHistoryRow


def _row_to_event(row: EventRow) -> Event:
    return Event(
        id=row.id,
        guild_id=row.guild_id,
        category=row.category,
        name=row.name,
        multiplier=Decimal(row.multiplier),
        start_embed=row.start_embed or "",
        announce_embed=row.announce_embed,
    )


def _row_to_operator(row: EventsmodeRow) -> OperatorProfile:
    return OperatorProfile(
        guild_id=row.guild_id,
        user_id=row.user_id,
        is_hired=row.is_hired,
        weekly_salary=row.weekly_salary,
        total_salary=row.total_salary,
        longest_event=row.longest_event,
    )


def _row_to_activity(row: EventActivityRow) -> ActivityRecord:
    return ActivityRecord(
        id=row.id,
        guild_id=row.guild_id,
        event=_row_to_event(row.event),
        operator=_row_to_operator(row.eventsmode),
        voice_channel_id=row.voice_channel_id,
        text_channel_id=row.text_channel_id,
        started_at=row.started_at,
        event_time=row.event_time,
    )


def _row_to_history(row: HistoryRow) -> HistoryEntry:
    return HistoryEntry(
        guild_id=row.guild_id,
        event=Event.model_validate(row.event_snapshot),
        operator=OperatorProfile.model_validate(row.operator_snapshot),
        started_at=row.started_at,
        total_time=row.total_time,
        total_salary=row.total_salary,
    )


def _row_to_settings(row: GuildSettingsRow) -> GuildSettings:
    return GuildSettings(
        guild_id=row.guild_id,
        is_channel_configured=row.is_channel_configured,
        eventsmode_category_id=row.eventsmode_category_id,
        log_channel_id=row.log_channel_id,
        moderator_role_id=row.moderator_role_id,
        is_event_announce=row.is_event_announce,
        announce_channel_id=row.announce_channel_id,
    )


class Repository:
    """Async repository for all database operations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # --- Guild settings ---

    async def get_guild_settings(self, guild_id: str) -> GuildSettings:
        """Return the guild's settings, or unconfigured defaults."""
        row = await self.session.get(GuildSettingsRow, guild_id)
        if row is None:
            return GuildSettings(guild_id=guild_id)
        return _row_to_settings(row)

    async def upsert_guild_settings(self, guild_id: str, **fields: object) -> GuildSettings:
        row = await self.session.get(GuildSettingsRow, guild_id)
        if row is None:
            row = GuildSettingsRow(guild_id=guild_id)
            self.session.add(row)
        for key, value in fields.items():
            if not hasattr(GuildSettingsRow, key):
                msg = f"Unknown guild setting: {key}"
                raise ValueError(msg)
            setattr(row, key, value)
        await self.session.flush()
        return _row_to_settings(row)

    # --- Event catalog ---

    async def find_event(self, guild_id: str, category: str, name: str) -> Event | None:
        stmt = select(EventRow).where(
            EventRow.guild_id == guild_id,
            EventRow.category == category,
            EventRow.name == name,
        )
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return _row_to_event(row) if row else None

    async def get_event(self, event_id: str) -> Event | None:
        row = await self.session.get(EventRow, event_id)
        return _row_to_event(row) if row else None

    async def list_events(self, guild_id: str) -> list[Event]:
        """All events of a guild, ordered by category then name."""
        stmt = (
            select(EventRow)
            .where(EventRow.guild_id == guild_id)
            .order_by(EventRow.category, EventRow.name)
        )
        result = await self.session.execute(stmt)
        return [_row_to_event(r) for r in result.scalars().all()]

    async def create_event(
        self,
        guild_id: str,
        category: str,
        name: str,
        multiplier: Decimal,
        start_embed: str = "",
        announce_embed: str | None = None,
    ) -> Event:
        # Validate through the value model before touching the table.
        event = Event(
            id=_uuid(),
            guild_id=guild_id,
            category=category,
            name=name,
            multiplier=multiplier,
            start_embed=start_embed,
            announce_embed=announce_embed or None,
        )
        row = EventRow(
            id=event.id,
            guild_id=guild_id,
            category=category,
            name=name,
            multiplier=str(event.multiplier),
            start_embed=start_embed,
            announce_embed=event.announce_embed,
        )
        self.session.add(row)
        await self.session.flush()
        return event

    async def update_event_field(self, event_id: str, field: str, value: str) -> Event | None:
        """Replace one editable field. Returns None if the event is gone."""
        if field not in EDITABLE_EVENT_FIELDS:
            msg = f"Field {field!r} is not editable"
            raise ValueError(msg)
        row = await self.session.get(EventRow, event_id)
        if row is None:
            return None
        current = _row_to_event(row)
        updated = Event.model_validate({**current.model_dump(), field: value})
        row.category = updated.category
        row.name = updated.name
        row.multiplier = str(updated.multiplier)
        row.start_embed = updated.start_embed
        row.announce_embed = updated.announce_embed
        await self.session.flush()
        return updated

    async def remove_event(self, guild_id: str, category: str, name: str) -> bool:
        result = await self.session.execute(
            delete(EventRow).where(
                EventRow.guild_id == guild_id,
                EventRow.category == category,
                EventRow.name == name,
            )
        )
        return result.rowcount > 0  # type: ignore[union-attr]

    # --- Ban registry ---

    async def list_guild_bans(self, guild_id: str) -> list[BanEntry]:
        stmt = select(EventBanRow).where(EventBanRow.guild_id == guild_id)
        result = await self.session.execute(stmt)
        return [
            BanEntry(guild_id=r.guild_id, executor_id=r.executor_id, target_id=r.target_id)
            for r in result.scalars().all()
        ]

    async def list_global_bans(self) -> list[BanEntry]:
        result = await self.session.execute(select(GlobalEventBanRow))
        return [
            BanEntry(executor_id=r.executor_id, target_id=r.target_id)
            for r in result.scalars().all()
        ]

    async def add_guild_ban(self, guild_id: str, executor_id: str, target_id: str) -> bool:
        """Ban *target_id* from this guild's events. False if already banned."""
        stmt = (
            sqlite_insert(EventBanRow)
            .values(id=_uuid(), guild_id=guild_id, executor_id=executor_id, target_id=target_id)
            .on_conflict_do_nothing(index_elements=["guild_id", "target_id"])
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0  # type: ignore[union-attr]

    async def remove_guild_ban(self, guild_id: str, target_id: str) -> bool:
        result = await self.session.execute(
            delete(EventBanRow).where(
                EventBanRow.guild_id == guild_id,
                EventBanRow.target_id == target_id,
            )
        )
        return result.rowcount > 0  # type: ignore[union-attr]

    async def add_global_ban(self, executor_id: str, target_id: str) -> bool:
        stmt = (
            sqlite_insert(GlobalEventBanRow)
            .values(id=_uuid(), executor_id=executor_id, target_id=target_id)
            .on_conflict_do_nothing(index_elements=["target_id"])
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0  # type: ignore[union-attr]

    async def remove_global_ban(self, target_id: str) -> bool:
        result = await self.session.execute(
            delete(GlobalEventBanRow).where(GlobalEventBanRow.target_id == target_id)
        )
        return result.rowcount > 0  # type: ignore[union-attr]

    # --- Operator profiles ---

    async def _get_operator_row(self, guild_id: str, user_id: str) -> EventsmodeRow | None:
        stmt = select(EventsmodeRow).where(
            EventsmodeRow.guild_id == guild_id,
            EventsmodeRow.user_id == user_id,
        )
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def find_operator(self, guild_id: str, user_id: str) -> OperatorProfile | None:
        row = await self._get_operator_row(guild_id, user_id)
        return _row_to_operator(row) if row else None

    async def hire_operator(self, guild_id: str, user_id: str) -> OperatorProfile:
        """Create the profile, or re-hire a fired operator keeping their statistics."""
        row = await self._get_operator_row(guild_id, user_id)
        if row is None:
            row = EventsmodeRow(guild_id=guild_id, user_id=user_id, is_hired=True)
            self.session.add(row)
        else:
            row.is_hired = True
        await self.session.flush()
        return _row_to_operator(row)

    async def fire_operator(self, guild_id: str, user_id: str) -> bool:
        row = await self._get_operator_row(guild_id, user_id)
        if row is None or not row.is_hired:
            return False
        row.is_hired = False
        await self.session.flush()
        return True

    async def list_operators(self, guild_id: str) -> list[OperatorProfile]:
        stmt = (
            select(EventsmodeRow)
            .where(EventsmodeRow.guild_id == guild_id, EventsmodeRow.is_hired.is_(True))
            .order_by(EventsmodeRow.weekly_salary.desc())
        )
        result = await self.session.execute(stmt)
        return [_row_to_operator(r) for r in result.scalars().all()]

    async def update_statistics(
        self, guild_id: str, user_id: str, delta: StatisticsDelta
    ) -> OperatorProfile | None:
        """Apply salary increments in SQL and optionally replace the watermark.

        Returns the updated profile, or None if the operator has no profile.
        """
        values: dict[str, object] = {
            "weekly_salary": EventsmodeRow.weekly_salary + delta.weekly_salary,
            "total_salary": EventsmodeRow.total_salary + delta.total_salary,
        }
        if delta.longest_event is not None:
            values["longest_event"] = delta.longest_event
        result = await self.session.execute(
            update(EventsmodeRow)
            .where(EventsmodeRow.guild_id == guild_id, EventsmodeRow.user_id == user_id)
            .values(**values)
        )
        if result.rowcount == 0:  # type: ignore[union-attr]
            return None
        return await self.find_operator(guild_id, user_id)

    async def reset_weekly_salaries(self) -> int:
        result = await self.session.execute(
            update(EventsmodeRow).where(EventsmodeRow.weekly_salary != 0).values(weekly_salary=0)
        )
        return result.rowcount  # type: ignore[union-attr]

    # --- Event activities ---

    def _activity_query(self):  # noqa: ANN202
        return select(EventActivityRow).options(
            selectinload(EventActivityRow.event),
            selectinload(EventActivityRow.eventsmode),
        )

    async def insert_activity_if_absent(
        self,
        event: Event,
        operator: OperatorProfile,
        voice_channel_id: str,
        text_channel_id: str,
    ) -> ActivityRecord | None:
        """Atomically register an activity unless the operator already has one.

        Returns None when an activity for (guild, operator) already exists.
        """
        operator_row = await self._get_operator_row(operator.guild_id, operator.user_id)
        if operator_row is None:
            return None
        activity_id = _uuid()
        stmt = (
            sqlite_insert(EventActivityRow)
            .values(
                id=activity_id,
                guild_id=operator.guild_id,
                event_id=event.id,
                eventsmode_id=operator_row.id,
                voice_channel_id=voice_channel_id,
                text_channel_id=text_channel_id,
                started_at=datetime.now(UTC),
                event_time=0,
            )
            .on_conflict_do_nothing(index_elements=["guild_id", "eventsmode_id"])
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:  # type: ignore[union-attr]
            return None
        return await self.get_activity(activity_id)

    async def get_activity(self, activity_id: str) -> ActivityRecord | None:
        stmt = self._activity_query().where(EventActivityRow.id == activity_id)
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return _row_to_activity(row) if row else None

    async def find_activity_by_operator(self, guild_id: str, user_id: str) -> ActivityRecord | None:
        stmt = (
            self._activity_query()
            .join(EventsmodeRow, EventActivityRow.eventsmode_id == EventsmodeRow.id)
            .where(EventActivityRow.guild_id == guild_id, EventsmodeRow.user_id == user_id)
        )
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return _row_to_activity(row) if row else None

    async def list_activities(self, guild_id: str | None = None) -> list[ActivityRecord]:
        stmt = self._activity_query().order_by(EventActivityRow.started_at)
        if guild_id is not None:
            stmt = stmt.where(EventActivityRow.guild_id == guild_id)
        result = await self.session.execute(stmt)
        return [_row_to_activity(r) for r in result.scalars().all()]

    async def delete_activity(self, activity_id: str) -> ActivityRecord | None:
        """Delete an activity and return its last snapshot.

        Returns None when the activity was already deleted, including by a
        concurrent close that won the DELETE.
        """
        snapshot = await self.get_activity(activity_id)
        if snapshot is None:
            return None
        result = await self.session.execute(
            delete(EventActivityRow).where(EventActivityRow.id == activity_id)
        )
        if result.rowcount == 0:  # type: ignore[union-attr]
            return None
        return snapshot

    async def add_event_time(self, minutes: int) -> int:
        """Advance every running activity's clock. Returns rows touched."""
        result = await self.session.execute(
            update(EventActivityRow).values(event_time=EventActivityRow.event_time + minutes)
        )
        return result.rowcount  # type: ignore[union-attr]

    # --- History ---

    async def _append_history(self, row_cls: type[HistoryRow], entry: HistoryEntry) -> str:
        row = row_cls(
            guild_id=entry.guild_id,
            event_snapshot=entry.event.model_dump(mode="json"),
            operator_snapshot=entry.operator.model_dump(mode="json"),
            operator_user_id=entry.operator.user_id,
            started_at=entry.started_at,
            total_time=entry.total_time,
            total_salary=entry.total_salary,
        )
        self.session.add(row)
        await self.session.flush()
        return row.id

    async def append_weekly_history(self, entry: HistoryEntry) -> str:
        return await self._append_history(WeeklyEventHistoryRow, entry)

    async def append_global_history(self, entry: HistoryEntry) -> str:
        return await self._append_history(GlobalEventHistoryRow, entry)

    async def _list_history(
        self, row_cls: type[HistoryRow], guild_id: str, user_id: str | None
    ) -> list[HistoryEntry]:
        stmt = select(row_cls).where(row_cls.guild_id == guild_id)
        if user_id is not None:
            stmt = stmt.where(row_cls.operator_user_id == user_id)
        stmt = stmt.order_by(row_cls.recorded_at)
        result = await self.session.execute(stmt)
        return [_row_to_history(r) for r in result.scalars().all()]

    async def list_weekly_history(
        self, guild_id: str, user_id: str | None = None
    ) -> list[HistoryEntry]:
        return await self._list_history(WeeklyEventHistoryRow, guild_id, user_id)

    async def list_global_history(
        self, guild_id: str, user_id: str | None = None
    ) -> list[HistoryEntry]:
        return await self._list_history(GlobalEventHistoryRow, guild_id, user_id)

    async def truncate_weekly_history(self) -> int:
        result = await self.session.execute(delete(WeeklyEventHistoryRow))
        return result.rowcount  # type: ignore[union-attr]
