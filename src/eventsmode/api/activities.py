"""Running event activities of a guild."""

from __future__ import annotations

from fastapi import APIRouter

from eventsmode.api.deps import RepoDep

router = APIRouter(prefix="/api/guilds", tags=["activities"])


@router.get("/{guild_id}/activities")
async def list_activities(guild_id: str, repo: RepoDep) -> dict:
    """Every activity currently running in the guild, oldest first."""
    activities = await repo.list_activities(guild_id)
    return {
        "data": [
            {
                "id": a.id,
                "event": {
                    "id": a.event.id,
                    "category": a.event.category,
                    "name": a.event.name,
                    "multiplier": str(a.event.multiplier),
                },
                "operator_id": a.operator.user_id,
                "voice_channel_id": a.voice_channel_id,
                "text_channel_id": a.text_channel_id,
                "started_at": a.started_at.isoformat(),
                "event_time": a.event_time,
            }
            for a in activities
        ],
    }
