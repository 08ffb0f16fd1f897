"""
Vote API Endpoints.
"""

from typing import Any

from fastapi import APIRouter, Depends, Query

from agora.api.deps import RequestSchema, get_current_user, get_vote_service, ok
from agora.models.user import User
from agora.modules.votes.service import VoteService

router = APIRouter()


# ==================== Schemas ====================


class VoteRequest(RequestSchema):
    """Cast (1 / -1) or remove (0) a vote."""

    vote: int


# ==================== Votes ====================


@router.post("/topics/{topic_id}/vote")
async def vote_topic(
    topic_id: int,
    request: VoteRequest,
    user: User = Depends(get_current_user),
    votes: VoteService = Depends(get_vote_service),
) -> dict[str, Any]:
    return ok(await votes.vote_topic(topic_id, user, request.vote))


@router.post("/replies/{reply_id}/vote")
async def vote_reply(
    reply_id: int,
    request: VoteRequest,
    user: User = Depends(get_current_user),
    votes: VoteService = Depends(get_vote_service),
) -> dict[str, Any]:
    return ok(await votes.vote_reply(reply_id, user, request.vote))


@router.get("/votes/me")
async def get_my_votes(
    type: str | None = Query(None, description="topic or reply"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    votes: VoteService = Depends(get_vote_service),
) -> dict[str, Any]:
    """Get the caller's vote history."""
    return ok(await votes.get_user_votes(user.id, type, page, limit))
