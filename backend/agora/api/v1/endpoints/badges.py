"""
Badge API Endpoints.
"""

from typing import Any

from fastapi import APIRouter, Depends, Query

from agora.api.deps import get_badge_service, get_current_user, ok
from agora.core.exceptions import ForbiddenError
from agora.models.badge import BadgeCategory
from agora.models.user import User
from agora.modules.badges.service import BadgeService

router = APIRouter()


@router.get("")
async def get_badges(
    category: BadgeCategory | None = Query(None),
    badges: BadgeService = Depends(get_badge_service),
) -> dict[str, Any]:
    """Get all active badges."""
    return ok([badges.to_dict(b) for b in await badges.list_badges(category)])


@router.get("/users/{user_id}")
async def get_user_badges(
    user_id: int,
    badges: BadgeService = Depends(get_badge_service),
) -> dict[str, Any]:
    return ok(await badges.get_user_badges(user_id))


@router.get("/users/{user_id}/progress")
async def get_badge_progress(
    user_id: int,
    badges: BadgeService = Depends(get_badge_service),
) -> dict[str, Any]:
    return ok(await badges.get_badge_progress(user_id))


@router.post("/users/{user_id}/check")
async def check_badges(
    user_id: int,
    user: User = Depends(get_current_user),
    badges: BadgeService = Depends(get_badge_service),
) -> dict[str, Any]:
    """Evaluate and award badges for yourself (staff may check anyone)."""
    if user.id != user_id and not user.is_staff:
        raise ForbiddenError("You can only check your own badges")
    return ok({"awarded": await badges.check_and_award_badges(user_id)})


@router.get("/{badge_id}")
async def get_badge(
    badge_id: int,
    badges: BadgeService = Depends(get_badge_service),
) -> dict[str, Any]:
    return ok(badges.to_dict(await badges.get_badge(badge_id)))


@router.get("/{badge_id}/holders")
async def get_badge_holders(
    badge_id: int,
    limit: int = Query(50, ge=1, le=100),
    badges: BadgeService = Depends(get_badge_service),
) -> dict[str, Any]:
    return ok(await badges.get_badge_holders(badge_id, limit))


@router.get("/{badge_id}/evaluate")
async def evaluate_badge(
    badge_id: int,
    user: User = Depends(get_current_user),
    badges: BadgeService = Depends(get_badge_service),
) -> dict[str, Any]:
    """The caller's progress toward one badge."""
    return ok(await badges.evaluate_badge_criteria(user.id, badge_id))
