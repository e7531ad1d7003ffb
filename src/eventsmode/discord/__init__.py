"""Discord integration for eventsmode.

The bot runs in-process with FastAPI, sharing the same event loop. It hosts
the start-event panel and slash commands, drives selection flows through
select-menu views, and forwards audit messages from the EventBus to each
guild's log channel.

Optional: if DISCORD_BOT_TOKEN is not set, the app runs without Discord.
"""
