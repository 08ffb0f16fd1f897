"""
Topic Repository - Topics, tags, attachments and spam keywords.
"""

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from agora.models.forum import ForumCategory, SpamKeyword, Tag, Topic, topic_tags


class TopicRepository:
    """Queries over `topics` and the tables hanging off it."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ==================== Topics ====================

    async def get(self, topic_id: int) -> Topic | None:
        """Topic with author, category, tags and attachments loaded."""
        result = await self.db.execute(
            select(Topic)
            .options(
                selectinload(Topic.author),
                selectinload(Topic.category),
                selectinload(Topic.tags),
                selectinload(Topic.attachments),
            )
            .where(Topic.id == topic_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_slug(self, slug: str) -> Topic | None:
        result = await self.db.execute(select(Topic.id).where(Topic.slug == slug))
        topic_id = result.scalar_one_or_none()
        return await self.get(topic_id) if topic_id is not None else None

    async def slug_exists(self, slug: str, exclude_id: int | None = None) -> bool:
        query = select(Topic.id).where(Topic.slug == slug)
        if exclude_id is not None:
            query = query.where(Topic.id != exclude_id)
        result = await self.db.execute(query)
        return result.first() is not None

    async def add(self, topic: Topic) -> Topic:
        self.db.add(topic)
        await self.db.flush()
        return topic

    async def list_topics(
        self,
        conditions: list,
        order_by: list,
        tag_slug: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Topic], int]:
        """
        Filtered, ordered page of topics.

        Args:
            conditions: SQLAlchemy where clauses
            order_by: SQLAlchemy order clauses
            tag_slug: Only topics carrying this tag

        Returns:
            (topics, total matching)
        """
        query = select(Topic).where(*conditions)
        count_query = select(func.count(Topic.id)).where(*conditions)
        if tag_slug:
            tagged = (
                select(topic_tags.c.topic_id)
                .join(Tag, Tag.id == topic_tags.c.tag_id)
                .where(Tag.slug == tag_slug)
            )
            query = query.where(Topic.id.in_(tagged))
            count_query = count_query.where(Topic.id.in_(tagged))

        result = await self.db.execute(
            query.options(
                selectinload(Topic.author),
                selectinload(Topic.category),
                selectinload(Topic.tags),
            )
            .order_by(*order_by)
            .limit(limit)
            .offset(offset)
        )
        total = await self.db.execute(count_query)
        return list(result.scalars().all()), int(total.scalar_one())

    async def increment_view_count(self, topic_id: int) -> None:
        await self.db.execute(
            update(Topic)
            .where(Topic.id == topic_id)
            .values(view_count=Topic.view_count + 1)
        )

    async def update_category_stats(
        self,
        category_id: int,
        topics: int = 0,
        replies: int = 0,
        activity_at: datetime | None = None,
    ) -> None:
        """Adjust a category's denormalized counters (and activity time)."""
        values = {
            "topic_count": ForumCategory.topic_count + topics,
            "reply_count": ForumCategory.reply_count + replies,
        }
        if activity_at is not None:
            values["last_activity_at"] = activity_at
        await self.db.execute(
            update(ForumCategory).where(ForumCategory.id == category_id).values(**values)
        )

    # ==================== Tags ====================

    async def get_or_create_tag(self, name: str, slug: str) -> Tag:
        """Find a tag by slug, creating it when missing, and count one use."""
        result = await self.db.execute(select(Tag).where(Tag.slug == slug))
        tag = result.scalar_one_or_none()
        if tag is None:
            tag = Tag(name=name, slug=slug, usage_count=0)
            self.db.add(tag)
        tag.usage_count += 1
        await self.db.flush()
        return tag

    async def popular_tags(self, limit: int = 20) -> list[Tag]:
        result = await self.db.execute(
            select(Tag)
            .where(Tag.usage_count > 0)
            .order_by(Tag.usage_count.desc(), Tag.name)
            .limit(limit)
        )
        return list(result.scalars().all())

    # ==================== Spam ====================

    async def active_spam_keywords(self) -> list[SpamKeyword]:
        result = await self.db.execute(
            select(SpamKeyword).where(SpamKeyword.is_active == True)
        )
        return list(result.scalars().all())
