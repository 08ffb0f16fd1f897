"""
Topic API Endpoints.

Topics, drafts, tags and the topic's poll.
"""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query

from agora.api.deps import (
    RequestSchema,
    get_current_user,
    get_optional_user,
    get_poll_service,
    get_topic_service,
    ok,
)
from agora.models.forum import TopicStatus, TopicType
from agora.models.poll import PollType
from agora.models.user import User
from agora.modules.polls.service import PollService
from agora.modules.topics.service import TopicService

router = APIRouter()


# ==================== Schemas ====================


class AttachmentInput(RequestSchema):
    file_name: str
    file_url: str
    mime_type: str | None = None
    file_size: int | None = None


class PollInput(RequestSchema):
    question: str
    options: list[str]
    poll_type: PollType = PollType.SINGLE
    is_anonymous: bool = True
    deadline: datetime | None = None


class CreateTopicRequest(RequestSchema):
    """Create new topic."""

    category_id: int
    title: str
    content: str
    type: TopicType = TopicType.DISCUSSION
    is_draft: bool = False
    tags: list[str] = []
    attachments: list[AttachmentInput] = []
    poll: PollInput | None = None


class UpdateTopicRequest(RequestSchema):
    """Update topic. Omitted fields are left unchanged."""

    title: str | None = None
    content: str | None = None
    type: TopicType | None = None
    tags: list[str] | None = None
    is_draft: bool | None = None


# ==================== Topics ====================


@router.get("")
async def get_topics(
    category_id: int | None = Query(None),
    type: TopicType | None = Query(None),
    status: TopicStatus | None = Query(None),
    author_id: int | None = Query(None),
    tag: str | None = Query(None, description="Tag slug"),
    is_draft: bool = Query(False),
    include_hidden: bool = Query(False),
    sort: str = Query("latest", description="latest, popular, most_voted or most_replies"),
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1, le=100),
    viewer: User | None = Depends(get_optional_user),
    topics: TopicService = Depends(get_topic_service),
) -> dict[str, Any]:
    """Get topics with pagination."""
    return ok(
        await topics.list_topics(
            viewer=viewer,
            category_id=category_id,
            topic_type=type,
            status=status,
            author_id=author_id,
            tag=tag,
            is_draft=is_draft,
            include_hidden=include_hidden,
            sort=sort,
            page=page,
            limit=limit,
        )
    )


@router.get("/tags/popular")
async def get_popular_tags(
    limit: int = Query(20, ge=1, le=100),
    topics: TopicService = Depends(get_topic_service),
) -> dict[str, Any]:
    return ok(await topics.popular_tags(limit))


@router.get("/slug/{slug}")
async def get_topic_by_slug(
    slug: str,
    viewer: User | None = Depends(get_optional_user),
    topics: TopicService = Depends(get_topic_service),
) -> dict[str, Any]:
    topic = await topics.get_topic_by_slug(slug, viewer)
    return ok(topics.to_dict(topic))


@router.get("/{topic_id}")
async def get_topic(
    topic_id: int,
    viewer: User | None = Depends(get_optional_user),
    topics: TopicService = Depends(get_topic_service),
) -> dict[str, Any]:
    """Get topic details and count the view."""
    topic = await topics.get_topic(topic_id, viewer)
    return ok(topics.to_dict(topic))


@router.post("", status_code=201)
async def create_topic(
    request: CreateTopicRequest,
    user: User = Depends(get_current_user),
    topics: TopicService = Depends(get_topic_service),
) -> dict[str, Any]:
    """Create new topic."""
    topic = await topics.create_topic(
        user,
        category_id=request.category_id,
        title=request.title,
        content=request.content,
        topic_type=request.type,
        is_draft=request.is_draft,
        tags=request.tags,
        attachments=[a.model_dump() for a in request.attachments],
        poll=request.poll.model_dump() if request.poll else None,
    )
    return ok(topics.to_dict(topic))


@router.put("/{topic_id}")
async def update_topic(
    topic_id: int,
    request: UpdateTopicRequest,
    user: User = Depends(get_current_user),
    topics: TopicService = Depends(get_topic_service),
) -> dict[str, Any]:
    """Edit topic (author or staff)."""
    topic = await topics.update_topic(
        topic_id,
        user,
        title=request.title,
        content=request.content,
        topic_type=request.type,
        tags=request.tags,
        is_draft=request.is_draft,
    )
    return ok(topics.to_dict(topic))


@router.post("/{topic_id}/archive")
async def archive_topic(
    topic_id: int,
    user: User = Depends(get_current_user),
    topics: TopicService = Depends(get_topic_service),
) -> dict[str, Any]:
    """Soft delete a topic (author or staff)."""
    await topics.delete_topic(topic_id, user)
    return ok({"message": "Topic archived"})


@router.get("/{topic_id}/poll")
async def get_topic_poll(
    topic_id: int,
    viewer: User | None = Depends(get_optional_user),
    polls: PollService = Depends(get_poll_service),
) -> dict[str, Any]:
    return ok(await polls.get_poll_by_topic(topic_id, viewer))
