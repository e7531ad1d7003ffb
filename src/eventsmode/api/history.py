"""Closed-activity history endpoint."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter

from eventsmode.api.deps import RepoDep

router = APIRouter(prefix="/api/guilds", tags=["history"])


@router.get("/{guild_id}/history")
async def list_history(
    guild_id: str,
    repo: RepoDep,
    scope: Literal["weekly", "global"] = "weekly",
    user_id: str | None = None,
) -> dict:
    """Weekly history is cleared by the weekly reset; global history is kept forever.

    Optionally filtered to one operator with ``user_id``.
    """
    if scope == "weekly":
        entries = await repo.list_weekly_history(guild_id, user_id)
    else:
        entries = await repo.list_global_history(guild_id, user_id)
    return {
        "scope": scope,
        "data": [
            {
                "event": f"{e.event.category} | {e.event.name}",
                "multiplier": str(e.event.multiplier),
                "operator_id": e.operator.user_id,
                "started_at": e.started_at.isoformat(),
                "total_time": e.total_time,
                "total_salary": e.total_salary,
            }
            for e in entries
        ],
    }
