"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable, Mapping
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine

from eventsmode.config import Settings
from eventsmode.core.ports import StoreScope
from eventsmode.db.engine import create_engine, create_tables
from eventsmode.discord.helpers import store_scope
from eventsmode.models.activity import OperatorProfile
from eventsmode.models.event import Event

GUILD_ID = "g-1"
OPERATOR_ID = "u-1"
CATEGORY_ID = "cat-1"


class FakeChannelBackend:
    """In-memory ChannelBackend that records every call.

    ``fail_on`` names operations that raise RuntimeError when called.
    """

    def __init__(
        self,
        *,
        categories: tuple[str, ...] = (CATEGORY_ID,),
        fail_on: set[str] | None = None,
    ) -> None:
        self.categories = set(categories)
        self.fail_on = fail_on or set()
        self.channels: dict[str, dict[str, object]] = {}
        self.overwrites: dict[str, dict[str, dict[str, bool]]] = {}
        self.synced: list[str] = []
        self.deleted: list[str] = []
        self.calls: list[tuple[str, ...]] = []
        self._next_id = 100

    def _check(self, op: str) -> None:
        if op in self.fail_on:
            msg = f"{op} failed"
            raise RuntimeError(msg)

    def _new_id(self) -> str:
        self._next_id += 1
        return f"ch-{self._next_id}"

    async def has_category(self, category_id: str) -> bool:
        return category_id in self.categories

    async def create_voice_channel(self, category_id: str, name: str, user_limit: int) -> str:
        self.calls.append(("create_voice_channel", category_id, name))
        self._check("create_voice_channel")
        channel_id = self._new_id()
        self.channels[channel_id] = {"kind": "voice", "name": name, "user_limit": user_limit}
        return channel_id

    async def create_text_channel(self, category_id: str, name: str) -> str:
        self.calls.append(("create_text_channel", category_id, name))
        self._check("create_text_channel")
        channel_id = self._new_id()
        self.channels[channel_id] = {"kind": "text", "name": name}
        return channel_id

    async def sync_permissions(self, channel_id: str) -> None:
        self.calls.append(("sync_permissions", channel_id))
        self._check("sync_permissions")
        self.synced.append(channel_id)

    async def apply_overwrite(
        self, channel_id: str, user_id: str, permissions: Mapping[str, bool]
    ) -> None:
        self.calls.append(("apply_overwrite", channel_id, user_id))
        self._check("apply_overwrite")
        self.overwrites.setdefault(channel_id, {})[user_id] = dict(permissions)

    async def delete_channel(self, channel_id: str) -> None:
        self.calls.append(("delete_channel", channel_id))
        self._check("delete_channel")
        self.channels.pop(channel_id, None)
        self.deleted.append(channel_id)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingAuditSink:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    async def emit(self, guild_id: str, message: str) -> None:
        self.messages.append((guild_id, message))


@pytest.fixture
def settings() -> Settings:
    """Test settings with defaults."""
    return Settings(eventsmode_env="development", database_url="sqlite+aiosqlite:///:memory:")


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create an in-memory SQLite engine with all tables."""
    eng = create_engine("sqlite+aiosqlite:///:memory:")
    await create_tables(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def stores(engine: AsyncEngine) -> StoreScope:
    return store_scope(engine)


@pytest.fixture
def backend() -> FakeChannelBackend:
    return FakeChannelBackend()


@pytest.fixture
def make_backend() -> type[FakeChannelBackend]:
    """The fake backend class, for tests that need failures or extra categories."""
    return FakeChannelBackend


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def audit() -> RecordingAuditSink:
    return RecordingAuditSink()


SeedGuild = Callable[..., Awaitable[tuple[OperatorProfile, list[Event]]]]


@pytest.fixture
def seed_guild(stores: StoreScope) -> SeedGuild:
    """Configure a guild, hire one operator and fill the catalog.

    ``events`` is a sequence of (category, name, multiplier) tuples.
    """

    async def _seed(
        *,
        guild_id: str = GUILD_ID,
        user_id: str = OPERATOR_ID,
        category_id: str | None = CATEGORY_ID,
        events: tuple[tuple[str, str, str], ...] = (("Games", "Mafia", "0.5"),),
    ) -> tuple[OperatorProfile, list[Event]]:
        async with stores() as repo:
            if category_id is not None:
                await repo.upsert_guild_settings(
                    guild_id,
                    is_channel_configured=True,
                    eventsmode_category_id=category_id,
                    log_channel_id="log-1",
                )
            operator = await repo.hire_operator(guild_id, user_id)
            created = [
                await repo.create_event(guild_id, category, name, Decimal(multiplier))
                for category, name, multiplier in events
            ]
        return operator, created

    return _seed
