"""Discord UI views: the start panel, selection menus, and the create-event modal.

StartEventView: persistent "Start event" button posted by ``/event start``.
CategorySelectView / EventSelectView: forward selections and timeouts to a
``SelectionFlow``; the flow decides what is accepted.
CreateEventModal: text inputs for ``/event add``.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

import discord

from eventsmode.core.errors import EventsmodeError

if TYPE_CHECKING:
    from eventsmode.core.selection import SelectionFlow, StartedActivity
    from eventsmode.discord.bot import EventsmodeBot

logger = logging.getLogger(__name__)

START_BUTTON_CUSTOM_ID = "eventsmode:start-event"
SELECTION_EXPIRED_TEXT = "This selection has expired. Press the start button again."

# Discord allows at most 25 options per select menu.
MAX_SELECT_OPTIONS = 25

OnStarted = Callable[[discord.Interaction, "StartedActivity"], Awaitable[None]]


def selection_prompt(text: str, total: int) -> str:
    """Menu prompt, noting when the menu cannot show every option."""
    if total <= MAX_SELECT_OPTIONS:
        return text
    return f"{text}\n(Only the first {MAX_SELECT_OPTIONS} of {total} are listed.)"


class StartEventView(discord.ui.View):
    """The start-event panel. Survives restarts via its fixed custom_id."""

    def __init__(self, bot: EventsmodeBot) -> None:
        super().__init__(timeout=None)
        self.bot = bot

    @discord.ui.button(
        label="Start event",
        style=discord.ButtonStyle.green,
        custom_id=START_BUTTON_CUSTOM_ID,
    )
    async def start(
        self,
        interaction: discord.Interaction,
        button: discord.ui.Button,  # noqa: ARG002
    ) -> None:
        await self.bot.route_command("panel.start", interaction)


class _SelectionStepView(discord.ui.View):
    """Shared plumbing for one selection step of a flow."""

    def __init__(self, flow: SelectionFlow, *, on_started: OnStarted) -> None:
        super().__init__(timeout=flow.timeout_seconds)
        self.flow = flow
        self.on_started = on_started

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if str(interaction.user.id) != self.flow.operator.user_id:
            await interaction.response.send_message(
                "Only the eventsmode who pressed start can choose.",
                ephemeral=True,
            )
            return False
        return True

    async def on_timeout(self) -> None:
        self.flow.expire()

    async def on_error(
        self,
        interaction: discord.Interaction,
        error: Exception,
        item: discord.ui.Item,  # noqa: ARG002
    ) -> None:
        logger.error(
            "selection_view_error guild_id=%s user_id=%s state=%s",
            self.flow.guild_id,
            self.flow.operator.user_id,
            self.flow.state,
            exc_info=error,
        )
        try:
            await interaction.edit_original_response(
                content="Something went wrong while creating the event.", view=None
            )
        except discord.HTTPException:
            logger.debug("selection_error_reply_failed", exc_info=True)


class CategorySelectView(_SelectionStepView):
    def __init__(self, flow: SelectionFlow, *, on_started: OnStarted) -> None:
        super().__init__(flow, on_started=on_started)
        self.select: discord.ui.Select = discord.ui.Select(
            placeholder="Event category",
            options=[
                discord.SelectOption(label=category, value=category)
                for category in flow.categories[:MAX_SELECT_OPTIONS]
            ],
        )
        self.select.callback = self._on_select
        self.add_item(self.select)

    async def _on_select(self, interaction: discord.Interaction) -> None:
        self.stop()
        try:
            accepted = self.flow.choose_category(self.select.values[0])
        except EventsmodeError as exc:
            await interaction.response.edit_message(content=str(exc), view=None)
            return
        if not accepted:
            await interaction.response.edit_message(content=SELECTION_EXPIRED_TEXT, view=None)
            return
        await interaction.response.edit_message(
            content=selection_prompt(
                f"Category **{self.flow.category}**: choose the event",
                len(self.flow.events_in_category),
            ),
            view=EventSelectView(self.flow, on_started=self.on_started),
        )


class EventSelectView(_SelectionStepView):
    def __init__(self, flow: SelectionFlow, *, on_started: OnStarted) -> None:
        super().__init__(flow, on_started=on_started)
        self.select: discord.ui.Select = discord.ui.Select(
            placeholder="Event",
            options=[
                discord.SelectOption(label=event.name, value=event.name)
                for event in flow.events_in_category[:MAX_SELECT_OPTIONS]
            ],
        )
        self.select.callback = self._on_select
        self.add_item(self.select)

    async def _on_select(self, interaction: discord.Interaction) -> None:
        self.stop()
        await interaction.response.edit_message(content="Creating event channels...", view=None)
        try:
            started = await self.flow.choose_event(self.select.values[0])
        except EventsmodeError as exc:
            await interaction.edit_original_response(content=str(exc))
            return
        if started is None:
            await interaction.edit_original_response(content=SELECTION_EXPIRED_TEXT)
            return
        await interaction.edit_original_response(content="Event created!")
        await self.on_started(interaction, started)


class CreateEventModal(discord.ui.Modal, title="Create event"):
    """Text input popup for adding an event to the catalog."""

    category = discord.ui.TextInput(label="Category", max_length=20)
    event_name = discord.ui.TextInput(label="Name", max_length=20)
    multiplier = discord.ui.TextInput(label="Salary multiplier", placeholder="0.5", max_length=10)
    start_embed = discord.ui.TextInput(
        label="Start message (JSON)",
        style=discord.TextStyle.paragraph,
        max_length=4000,
    )
    announce_embed = discord.ui.TextInput(
        label="Announcement message (JSON)",
        style=discord.TextStyle.paragraph,
        required=False,
        max_length=4000,
    )

    def __init__(self, *, bot: EventsmodeBot) -> None:
        super().__init__()
        self.bot = bot

    async def on_submit(self, interaction: discord.Interaction) -> None:
        await self.bot.route_command(
            "event.create",
            interaction,
            category=self.category.value.strip(),
            name=self.event_name.value.strip(),
            multiplier=self.multiplier.value.strip(),
            start_embed=self.start_embed.value,
            announce_embed=self.announce_embed.value,
        )
