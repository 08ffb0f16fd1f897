"""
Topic Service - Topic creation, listing, editing and soft deletion.
"""

import re
from typing import Any

from loguru import logger
from slugify import slugify
from sqlalchemy.ext.asyncio import AsyncSession

from agora.core.background import fire_and_forget
from agora.core.config import settings
from agora.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from agora.core.utils import isoformat, offset_for, pagination_meta, utcnow
from agora.models.forum import (
    AUTO_HIDE_THRESHOLD,
    SpamKeyword,
    Topic,
    TopicAttachment,
    TopicStatus,
    TopicType,
)
from agora.models.poll import PollType
from agora.models.user import User
from agora.modules.categories.repository import CategoryRepository
from agora.modules.polls.service import PollService, validate_poll_options
from agora.modules.reputation.service import ReputationRewards
from agora.modules.topics.repository import TopicRepository

SPAM_THRESHOLD = 5
MAX_LINK_PREVIEWS = 3
URL_PATTERN = re.compile(r"https?://[^\s)]+")

TOPIC_SORTS = {
    "latest": Topic.created_at.desc(),
    "popular": Topic.view_count.desc(),
    "most_voted": Topic.vote_score.desc(),
    "most_replies": Topic.reply_count.desc(),
}


def spam_score(text: str, keywords: list[SpamKeyword]) -> int:
    """Sum of severities of the keywords contained in `text`."""
    lowered = text.lower()
    return sum(k.severity for k in keywords if k.keyword.lower() in lowered)


def extract_links(content: str, limit: int = MAX_LINK_PREVIEWS) -> list[str]:
    """First `limit` distinct URLs in order of appearance."""
    links: list[str] = []
    for url in URL_PATTERN.findall(content or ""):
        if url not in links:
            links.append(url)
        if len(links) == limit:
            break
    return links


async def generate_link_previews(topic_id: int, urls: list[str]) -> None:
    for url in urls:
        logger.info(f"Generating link preview for topic {topic_id}: {url}")


class TopicService:
    """
    Service for managing forum topics.

    Usage:
        topics = TopicService(db, TopicRepository(db), CategoryRepository(db), polls, rewards)
        topic = await topics.create_topic(user, category_id=1, title="Hello", content="...")
    """

    def __init__(
        self,
        db: AsyncSession,
        topics: TopicRepository,
        categories: CategoryRepository,
        polls: PollService,
        rewards: ReputationRewards,
    ) -> None:
        self.db = db
        self.topics = topics
        self.categories = categories
        self.polls = polls
        self.rewards = rewards

    # ==================== Create ====================

    async def create_topic(
        self,
        user: User,
        category_id: int,
        title: str,
        content: str,
        topic_type: TopicType = TopicType.DISCUSSION,
        is_draft: bool = False,
        tags: list[str] | None = None,
        attachments: list[dict[str, Any]] | None = None,
        poll: dict[str, Any] | None = None,
    ) -> Topic:
        """
        Create new forum topic.

        Args:
            user: Author
            category_id: Target category
            title: Topic title
            content: Topic body (markdown)
            topic_type: Kind of topic
            is_draft: Keep the topic private to its author
            tags: Tag names, created on first use
            attachments: [{"file_name", "file_url", "mime_type", "file_size"}, ...]
            poll: {"question", "options", "poll_type", "is_anonymous", "deadline"}

        Returns:
            Created topic
        """
        title = (title or "").strip()
        if not title:
            raise BadRequestError("Title is required")
        if not content or not content.strip():
            raise BadRequestError("Content is required")

        category = await self.categories.get(category_id)
        if not category or not category.is_active:
            raise NotFoundError("Category not found")
        if poll:
            validate_poll_options(poll.get("options", []))

        topic = Topic(
            category_id=category_id,
            author_id=user.id,
            title=title,
            slug=await self._unique_slug(title),
            content=content,
            type=topic_type,
            is_draft=is_draft,
            is_flagged=await self._is_spam(f"{title}\n{content}", user),
            last_activity_at=utcnow(),
        )
        topic.tags = await self._resolve_tags(tags or [])
        topic.attachments = [
            TopicAttachment(
                file_name=item["file_name"],
                file_url=item["file_url"],
                mime_type=item.get("mime_type"),
                file_size=item.get("file_size"),
                display_order=index,
            )
            for index, item in enumerate(attachments or [])
        ]
        await self.topics.add(topic)

        if poll:
            await self.polls.create_poll(
                topic.id,
                user,
                poll.get("question", ""),
                poll.get("options", []),
                poll_type=PollType(poll.get("poll_type", PollType.SINGLE)),
                is_anonymous=poll.get("is_anonymous", True),
                deadline=poll.get("deadline"),
            )

        if not is_draft:
            await self._publish(topic)

        logger.info(f"Topic {topic.id} created by user {user.id}: {topic.slug}")
        return await self.topics.get(topic.id)

    async def _publish(self, topic: Topic) -> None:
        """Side effects of a topic becoming public."""
        await self.topics.update_category_stats(topic.category_id, topics=1, activity_at=utcnow())
        self.rewards.topic_created(topic.author_id, topic.id)

        links = extract_links(topic.content)
        if links:
            fire_and_forget(
                generate_link_previews(topic.id, links),
                name=f"link-previews:{topic.id}",
            )

    async def _unique_slug(self, title: str, exclude_id: int | None = None) -> str:
        base_slug = slugify(title)[:200] or "topic"
        slug = base_slug

        counter = 1
        while await self.topics.slug_exists(slug, exclude_id=exclude_id):
            slug = f"{base_slug}-{counter}"
            counter += 1
        return slug

    async def _is_spam(self, text: str, user: User) -> bool:
        score = spam_score(text, await self.topics.active_spam_keywords())
        if score >= SPAM_THRESHOLD:
            logger.warning(f"Potential spam from user {user.id}: score {score}")
            return True
        return False

    async def _resolve_tags(self, names: list[str]) -> list:
        tags = []
        seen = set()
        for name in names:
            name = name.strip()
            slug = slugify(name)[:60]
            if not slug or slug in seen:
                continue
            seen.add(slug)
            tags.append(await self.topics.get_or_create_tag(name[:50], slug))
        return tags

    # ==================== Read ====================

    async def get_topic(self, topic_id: int, viewer: User | None = None) -> Topic:
        """
        Get a topic and count the view.

        Raises:
            NotFoundError: Missing, or a draft seen by anyone but its author
        """
        topic = await self.topics.get(topic_id)
        return await self._view(topic, viewer)

    async def get_topic_by_slug(self, slug: str, viewer: User | None = None) -> Topic:
        topic = await self.topics.get_by_slug(slug)
        return await self._view(topic, viewer)

    async def _view(self, topic: Topic | None, viewer: User | None) -> Topic:
        if not topic:
            raise NotFoundError("Topic not found")
        if topic.is_draft and (viewer is None or viewer.id != topic.author_id):
            raise NotFoundError("Topic not found")

        # The bulk update also refreshes the loaded instance
        await self.topics.increment_view_count(topic.id)
        return topic

    async def list_topics(
        self,
        viewer: User | None = None,
        category_id: int | None = None,
        topic_type: TopicType | None = None,
        status: TopicStatus | None = None,
        author_id: int | None = None,
        tag: str | None = None,
        is_draft: bool = False,
        include_hidden: bool = False,
        sort: str = "latest",
        page: int = 1,
        limit: int | None = None,
    ) -> dict[str, Any]:
        """
        List topics, pinned first.

        Args:
            is_draft: List drafts instead of published topics; only the
                author's own drafts unless the viewer is staff
            include_hidden: Also list topics voted below the hide threshold
                (staff only)
            sort: latest, popular, most_voted or most_replies

        Returns:
            {"items": [...], "pagination": {...}}
        """
        if sort not in TOPIC_SORTS:
            raise BadRequestError(f"Invalid sort: {sort}")
        limit = min(limit or settings.forum_topics_per_page, settings.forum_max_page_size)

        conditions = []
        if is_draft:
            if viewer is None:
                raise ForbiddenError("Sign in to see drafts")
            conditions.append(Topic.is_draft == True)
            if not viewer.is_staff:
                conditions.append(Topic.author_id == viewer.id)
        else:
            conditions.append(Topic.is_draft == False)

        if category_id is not None:
            conditions.append(Topic.category_id == category_id)
        if topic_type is not None:
            conditions.append(Topic.type == topic_type)
        if author_id is not None:
            conditions.append(Topic.author_id == author_id)
        if status is not None:
            conditions.append(Topic.status == status)
        else:
            conditions.append(Topic.status != TopicStatus.ARCHIVED)
        if not (include_hidden and viewer is not None and viewer.is_staff):
            conditions.append(Topic.vote_score > AUTO_HIDE_THRESHOLD)

        topics, total = await self.topics.list_topics(
            conditions,
            [Topic.is_pinned.desc(), TOPIC_SORTS[sort], Topic.id.desc()],
            tag_slug=tag,
            limit=limit,
            offset=offset_for(page, limit),
        )
        return {
            "items": [self.to_dict(topic, include_content=False) for topic in topics],
            "pagination": pagination_meta(page, limit, total),
        }

    async def popular_tags(self, limit: int = 20) -> list[dict[str, Any]]:
        return [
            {"name": tag.name, "slug": tag.slug, "usage_count": tag.usage_count}
            for tag in await self.topics.popular_tags(limit)
        ]

    # ==================== Update / Delete ====================

    async def update_topic(
        self,
        topic_id: int,
        user: User,
        title: str | None = None,
        content: str | None = None,
        topic_type: TopicType | None = None,
        tags: list[str] | None = None,
        is_draft: bool | None = None,
    ) -> Topic:
        """
        Edit a topic. Author or staff only.

        A new title regenerates the slug, new content is re-checked for
        spam, and publishing a draft runs the publication side effects.
        """
        topic = await self._editable(topic_id, user)

        if title is not None and title.strip() and title.strip() != topic.title:
            topic.title = title.strip()
            topic.slug = await self._unique_slug(topic.title, exclude_id=topic.id)
        if content is not None:
            if not content.strip():
                raise BadRequestError("Content is required")
            topic.content = content
            if await self._is_spam(f"{topic.title}\n{content}", user):
                topic.is_flagged = True
        if topic_type is not None:
            topic.type = topic_type
        if tags is not None:
            for tag in topic.tags:
                tag.usage_count = max(tag.usage_count - 1, 0)
            topic.tags = await self._resolve_tags(tags)

        publishing = is_draft is False and topic.is_draft
        if is_draft is not None:
            topic.is_draft = is_draft

        topic.updated_at = utcnow()
        await self.db.flush()

        if publishing:
            await self._publish(topic)
            logger.info(f"Draft topic {topic.id} published")

        return await self.topics.get(topic.id)

    async def delete_topic(self, topic_id: int, user: User) -> None:
        """
        Soft delete: the topic is archived, nothing is removed. It stops
        counting towards its category's topic and reply totals.
        """
        topic = await self._editable(topic_id, user)
        if topic.in_category_stats:
            await self.topics.update_category_stats(
                topic.category_id, topics=-1, replies=-topic.reply_count
            )
        topic.status = TopicStatus.ARCHIVED
        await self.db.flush()
        logger.info(f"Topic {topic_id} archived by user {user.id}")

    async def _editable(self, topic_id: int, user: User) -> Topic:
        topic = await self.topics.get(topic_id)
        if not topic:
            raise NotFoundError("Topic not found")
        if topic.author_id != user.id and not user.is_staff:
            raise ForbiddenError("You can only edit your own topics")
        return topic

    # ==================== Serialization ====================

    @staticmethod
    def to_dict(topic: Topic, include_content: bool = True) -> dict[str, Any]:
        data = {
            "id": topic.id,
            "title": topic.title,
            "slug": topic.slug,
            "type": topic.type.value,
            "status": topic.status.value,
            "category": {
                "id": topic.category.id,
                "name": topic.category.name,
                "slug": topic.category.slug,
            },
            "author": {
                "id": topic.author.id,
                "username": topic.author.username,
                "avatar_url": topic.author.avatar_url,
            },
            "tags": [tag.name for tag in topic.tags],
            "is_draft": topic.is_draft,
            "is_pinned": topic.is_pinned,
            "is_locked": topic.is_locked,
            "is_flagged": topic.is_flagged,
            "view_count": topic.view_count,
            "reply_count": topic.reply_count,
            "vote_score": topic.vote_score,
            "upvote_count": topic.upvote_count,
            "downvote_count": topic.downvote_count,
            "accepted_reply_id": topic.accepted_reply_id,
            "hidden": topic.is_hidden,
            "created_at": isoformat(topic.created_at),
            "updated_at": isoformat(topic.updated_at),
            "last_activity_at": isoformat(topic.last_activity_at),
        }
        if include_content:
            data["content"] = topic.content
            data["attachments"] = [
                {
                    "id": a.id,
                    "file_name": a.file_name,
                    "file_url": a.file_url,
                    "mime_type": a.mime_type,
                    "file_size": a.file_size,
                }
                for a in topic.attachments
            ]
        return data
