"""
Poll API Endpoints.
"""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends

from agora.api.deps import (
    RequestSchema,
    get_current_user,
    get_optional_user,
    get_poll_service,
    ok,
    require_staff,
)
from agora.models.poll import PollType
from agora.models.user import User
from agora.modules.polls.service import PollService

router = APIRouter()


# ==================== Schemas ====================


class CreatePollRequest(RequestSchema):
    """Attach a poll to a topic."""

    topic_id: int
    question: str
    options: list[str]
    poll_type: PollType = PollType.SINGLE
    is_anonymous: bool = True
    deadline: datetime | None = None


class PollVoteRequest(RequestSchema):
    option_ids: list[int]


# ==================== Polls ====================


@router.post("", status_code=201)
async def create_poll(
    request: CreatePollRequest,
    user: User = Depends(get_current_user),
    polls: PollService = Depends(get_poll_service),
) -> dict[str, Any]:
    poll = await polls.create_poll(
        request.topic_id,
        user,
        request.question,
        request.options,
        poll_type=request.poll_type,
        is_anonymous=request.is_anonymous,
        deadline=request.deadline,
    )
    return ok(await polls.get_poll(poll.id, user))


@router.get("/{poll_id}")
async def get_poll(
    poll_id: int,
    viewer: User | None = Depends(get_optional_user),
    polls: PollService = Depends(get_poll_service),
) -> dict[str, Any]:
    """Poll with results."""
    return ok(await polls.get_poll(poll_id, viewer))


@router.post("/{poll_id}/vote")
async def vote_poll(
    poll_id: int,
    request: PollVoteRequest,
    user: User = Depends(get_current_user),
    polls: PollService = Depends(get_poll_service),
) -> dict[str, Any]:
    return ok(await polls.cast_vote(poll_id, user, request.option_ids))


@router.delete("/{poll_id}")
async def delete_poll(
    poll_id: int,
    moderator: User = Depends(require_staff),
    polls: PollService = Depends(get_poll_service),
) -> dict[str, Any]:
    await polls.delete_poll(poll_id)
    return ok({"message": "Poll deleted"})
