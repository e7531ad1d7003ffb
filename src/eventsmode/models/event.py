"""Event catalog and ban registry models.

Value objects handed across the core boundary. ORM rows never leave the
repository; they are converted to these frozen models first.
"""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

# Fields an operator may change through /event edit.
EDITABLE_EVENT_FIELDS = ("name", "category", "multiplier", "start_embed", "announce_embed")


class Event(BaseModel):
    """A configured event type. (guild_id, category, name) is unique."""

    model_config = ConfigDict(frozen=True)

    id: str
    guild_id: str
    category: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=1, max_length=20)
    multiplier: Decimal = Field(gt=0)
    start_embed: str = ""
    announce_embed: str | None = None

    @property
    def label(self) -> str:
        return f"{self.category} | {self.name}"


class BanEntry(BaseModel):
    """A deny-list entry. ``guild_id`` is None for global bans."""

    model_config = ConfigDict(frozen=True)

    guild_id: str | None = None
    executor_id: str
    target_id: str

    @property
    def is_global(self) -> bool:
        return self.guild_id is None
