"""Operator profile endpoint."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException

from eventsmode.api.deps import RepoDep

router = APIRouter(prefix="/api/guilds", tags=["operators"])


@router.get("/{guild_id}/operators/{user_id}")
async def get_operator(guild_id: str, user_id: str, repo: RepoDep) -> dict:
    operator = await repo.find_operator(guild_id, user_id)
    if operator is None:
        raise HTTPException(404, "Operator not found")
    activity = await repo.find_activity_by_operator(guild_id, user_id)
    return {
        "data": {
            **operator.model_dump(mode="json"),
            "active_activity_id": activity.id if activity else None,
        },
    }
