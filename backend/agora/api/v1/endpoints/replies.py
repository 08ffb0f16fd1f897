"""
Reply API Endpoints.

Threaded replies, edits and accepted answers.
"""

from typing import Any

from fastapi import APIRouter, Depends, Query

from agora.api.deps import (
    RequestSchema,
    get_current_user,
    get_optional_user,
    get_reply_service,
    ok,
)
from agora.models.user import User
from agora.modules.replies.service import ReplyService

router = APIRouter()


# ==================== Schemas ====================


class CreateReplyRequest(RequestSchema):
    """Create new reply."""

    content: str
    parent_reply_id: int | None = None
    quoted_reply_id: int | None = None


class UpdateReplyRequest(RequestSchema):
    """Edit reply content."""

    content: str
    edit_reason: str | None = None


# ==================== Replies ====================


@router.get("/topics/{topic_id}/replies")
async def get_replies(
    topic_id: int,
    sort: str = Query("oldest", description="oldest, newest or most_voted"),
    viewer: User | None = Depends(get_optional_user),
    replies: ReplyService = Depends(get_reply_service),
) -> dict[str, Any]:
    """Get the reply tree of a topic."""
    return ok(await replies.list_replies(topic_id, viewer, sort))


@router.post("/topics/{topic_id}/replies", status_code=201)
async def create_reply(
    topic_id: int,
    request: CreateReplyRequest,
    user: User = Depends(get_current_user),
    replies: ReplyService = Depends(get_reply_service),
) -> dict[str, Any]:
    """Reply to a topic or to another reply."""
    reply = await replies.create_reply(
        topic_id,
        user,
        request.content,
        parent_reply_id=request.parent_reply_id,
        quoted_reply_id=request.quoted_reply_id,
    )
    return ok(replies.to_dict(reply))


@router.get("/replies/{reply_id}")
async def get_reply(
    reply_id: int,
    viewer: User | None = Depends(get_optional_user),
    replies: ReplyService = Depends(get_reply_service),
) -> dict[str, Any]:
    return ok(replies.to_dict(await replies.get_reply(reply_id, viewer)))


@router.put("/replies/{reply_id}")
async def update_reply(
    reply_id: int,
    request: UpdateReplyRequest,
    user: User = Depends(get_current_user),
    replies: ReplyService = Depends(get_reply_service),
) -> dict[str, Any]:
    """Edit reply (author within 15 minutes, staff any time)."""
    reply = await replies.update_reply(reply_id, user, request.content, request.edit_reason)
    return ok(replies.to_dict(reply))


@router.delete("/replies/{reply_id}")
async def delete_reply(
    reply_id: int,
    user: User = Depends(get_current_user),
    replies: ReplyService = Depends(get_reply_service),
) -> dict[str, Any]:
    await replies.delete_reply(reply_id, user)
    return ok({"message": "Reply deleted"})


@router.get("/replies/{reply_id}/history")
async def get_edit_history(
    reply_id: int,
    user: User = Depends(get_current_user),
    replies: ReplyService = Depends(get_reply_service),
) -> dict[str, Any]:
    return ok(await replies.get_edit_history(reply_id, user))


# ==================== Accepted answer ====================


@router.post("/replies/{reply_id}/accept")
async def accept_reply(
    reply_id: int,
    user: User = Depends(get_current_user),
    replies: ReplyService = Depends(get_reply_service),
) -> dict[str, Any]:
    """Mark reply as the accepted answer."""
    reply = await replies.mark_accepted_answer(reply_id, user)
    return ok(replies.to_dict(reply))


@router.delete("/replies/{reply_id}/accept")
async def unaccept_reply(
    reply_id: int,
    user: User = Depends(get_current_user),
    replies: ReplyService = Depends(get_reply_service),
) -> dict[str, Any]:
    reply = await replies.remove_accepted_answer(reply_id, user)
    return ok(replies.to_dict(reply))
