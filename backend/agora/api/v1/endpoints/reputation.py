"""
Reputation API Endpoints.
"""

from typing import Any

from fastapi import APIRouter, Depends, Query

from agora.api.deps import get_reputation_service, ok
from agora.modules.reputation.service import ReputationService

router = APIRouter()


@router.get("/users/{user_id}/reputation")
async def get_user_reputation(
    user_id: int,
    reputation: ReputationService = Depends(get_reputation_service),
) -> dict[str, Any]:
    """Total, level, permissions and breakdown."""
    return ok(await reputation.get_user_reputation(user_id))


@router.get("/users/{user_id}/reputation/history")
async def get_reputation_history(
    user_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    reputation: ReputationService = Depends(get_reputation_service),
) -> dict[str, Any]:
    return ok(await reputation.get_history(user_id, page, limit))
