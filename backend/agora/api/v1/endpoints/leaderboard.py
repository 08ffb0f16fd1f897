"""
Leaderboard API Endpoints.
"""

from typing import Any

from fastapi import APIRouter, Depends, Query

from agora.api.deps import get_leaderboard_service, ok, require_admin
from agora.models.user import User
from agora.modules.leaderboard.service import LeaderboardPeriod, LeaderboardService

router = APIRouter()


@router.get("/hall-of-fame")
async def get_hall_of_fame(
    limit: int = Query(50, ge=1, le=100),
    leaderboard: LeaderboardService = Depends(get_leaderboard_service),
) -> dict[str, Any]:
    """Users who reached a monthly top 10."""
    return ok(await leaderboard.get_hall_of_fame(limit))


@router.get("/users/{user_id}")
async def get_user_rankings(
    user_id: int,
    leaderboard: LeaderboardService = Depends(get_leaderboard_service),
) -> dict[str, Any]:
    return ok(await leaderboard.get_user_rankings(user_id))


@router.post("/recalculate")
async def recalculate_rankings(
    period: LeaderboardPeriod | None = Query(None, description="Omit to rebuild every period"),
    admin: User = Depends(require_admin),
    leaderboard: LeaderboardService = Depends(get_leaderboard_service),
) -> dict[str, Any]:
    """Rebuild leaderboard snapshots."""
    if period is not None:
        return ok({period.value: await leaderboard.recalculate_rankings(period)})
    return ok(await leaderboard.recalculate_all_rankings())


@router.get("/{period}")
async def get_leaderboard(
    period: LeaderboardPeriod,
    leaderboard: LeaderboardService = Depends(get_leaderboard_service),
) -> dict[str, Any]:
    return ok(await leaderboard.get_leaderboard(period))
