"""
Moderation API Endpoints.

Topic moderation, user sanctions and the audit log.
"""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Body, Depends, Query

from agora.api.deps import (
    RequestSchema,
    get_current_user,
    get_moderation_service,
    ok,
    require_admin,
    require_staff,
)
from agora.core.utils import naive_utc
from agora.models.user import User
from agora.modules.moderation.service import ModerationService
from agora.modules.topics.service import TopicService

router = APIRouter()


# ==================== Schemas ====================


class PinRequest(RequestSchema):
    is_pinned: bool
    reason: str | None = None


class LockRequest(RequestSchema):
    is_locked: bool
    reason: str | None = None


class MoveRequest(RequestSchema):
    category_id: int
    reason: str | None = None


class MergeRequest(RequestSchema):
    target_topic_id: int
    reason: str | None = None


class DeleteTopicRequest(RequestSchema):
    reason: str


class SanctionRequest(RequestSchema):
    """Warn, suspend or ban. Duration only applies to suspensions."""

    reason: str
    duration_days: int | None = None


# ==================== Topics ====================


@router.post("/topics/{topic_id}/pin")
async def pin_topic(
    topic_id: int,
    request: PinRequest,
    moderator: User = Depends(get_current_user),
    moderation: ModerationService = Depends(get_moderation_service),
) -> dict[str, Any]:
    topic = await moderation.pin_topic(topic_id, moderator, request.is_pinned, request.reason)
    return ok(TopicService.to_dict(topic, include_content=False))


@router.post("/topics/{topic_id}/lock")
async def lock_topic(
    topic_id: int,
    request: LockRequest,
    moderator: User = Depends(get_current_user),
    moderation: ModerationService = Depends(get_moderation_service),
) -> dict[str, Any]:
    topic = await moderation.lock_topic(topic_id, moderator, request.is_locked, request.reason)
    return ok(TopicService.to_dict(topic, include_content=False))


@router.put("/topics/{topic_id}/move")
async def move_topic(
    topic_id: int,
    request: MoveRequest,
    moderator: User = Depends(get_current_user),
    moderation: ModerationService = Depends(get_moderation_service),
) -> dict[str, Any]:
    """Move topic to another category."""
    topic = await moderation.move_topic(topic_id, moderator, request.category_id, request.reason)
    return ok(TopicService.to_dict(topic, include_content=False))


@router.post("/topics/{topic_id}/merge")
async def merge_topic(
    topic_id: int,
    request: MergeRequest,
    moderator: User = Depends(get_current_user),
    moderation: ModerationService = Depends(get_moderation_service),
) -> dict[str, Any]:
    """Merge this topic into the target topic."""
    target = await moderation.merge_topics(
        topic_id, request.target_topic_id, moderator, request.reason
    )
    return ok(TopicService.to_dict(target, include_content=False))


@router.delete("/topics/{topic_id}")
async def delete_topic(
    topic_id: int,
    request: DeleteTopicRequest = Body(...),
    admin: User = Depends(require_admin),
    moderation: ModerationService = Depends(get_moderation_service),
) -> dict[str, Any]:
    """Permanently delete a topic."""
    await moderation.hard_delete_topic(topic_id, admin, request.reason)
    return ok({"message": "Topic permanently deleted"})


# ==================== Users ====================


@router.post("/users/{user_id}/warn")
async def warn_user(
    user_id: int,
    request: SanctionRequest,
    moderator: User = Depends(require_staff),
    moderation: ModerationService = Depends(get_moderation_service),
) -> dict[str, Any]:
    user = await moderation.warn_user(user_id, moderator, request.reason)
    return ok(moderation.user_to_dict(user))


@router.post("/users/{user_id}/suspend")
async def suspend_user(
    user_id: int,
    request: SanctionRequest,
    moderator: User = Depends(require_staff),
    moderation: ModerationService = Depends(get_moderation_service),
) -> dict[str, Any]:
    user = await moderation.suspend_user(
        user_id, moderator, request.reason, request.duration_days
    )
    return ok(moderation.user_to_dict(user))


@router.post("/users/{user_id}/ban")
async def ban_user(
    user_id: int,
    request: SanctionRequest,
    admin: User = Depends(require_staff),
    moderation: ModerationService = Depends(get_moderation_service),
) -> dict[str, Any]:
    """Ban user (admin only)."""
    user = await moderation.ban_user(user_id, admin, request.reason)
    return ok(moderation.user_to_dict(user))


# ==================== Audit log ====================


@router.get("/moderation/logs")
async def get_moderation_logs(
    moderator_id: int | None = Query(None),
    action: str | None = Query(None),
    target_type: str | None = Query(None),
    target_id: int | None = Query(None),
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    user: User = Depends(require_staff),
    moderation: ModerationService = Depends(get_moderation_service),
) -> dict[str, Any]:
    return ok(
        await moderation.get_moderation_logs(
            user,
            moderator_id=moderator_id,
            action=action,
            target_type=target_type,
            target_id=target_id,
            start_date=naive_utc(start_date),
            end_date=naive_utc(end_date),
            page=page,
            limit=limit,
        )
    )
