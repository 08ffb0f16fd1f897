"""
Badge Repository - Badges, earned badges, progress and the activity counts criteria use.
"""

from datetime import date, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from agora.models.badge import Badge, BadgeCategory, BadgeProgress, UserBadge
from agora.models.forum import Reply, Topic
from agora.models.user import User
from agora.models.vote import ReplyVote, ReputationHistory, TopicVote


class BadgeRepository:
    """Queries over badge tables and user activity."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ==================== Badges ====================

    async def list_badges(self, category: BadgeCategory | None = None) -> list[Badge]:
        query = select(Badge).where(Badge.is_active == True)
        if category:
            query = query.where(Badge.category == category)
        result = await self.db.execute(query.order_by(Badge.display_order, Badge.id))
        return list(result.scalars().all())

    async def get(self, badge_id: int) -> Badge | None:
        return await self.db.get(Badge, badge_id)

    async def user_badges(self, user_id: int) -> list[UserBadge]:
        result = await self.db.execute(
            select(UserBadge)
            .options(selectinload(UserBadge.badge))
            .where(UserBadge.user_id == user_id)
            .order_by(UserBadge.earned_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def earned_badge_ids(self, user_id: int) -> set[int]:
        result = await self.db.execute(
            select(UserBadge.badge_id).where(UserBadge.user_id == user_id)
        )
        return set(result.scalars().all())

    async def award(self, user_id: int, badge_id: int, progress: int) -> UserBadge:
        user_badge = UserBadge(user_id=user_id, badge_id=badge_id, progress=progress)
        self.db.add(user_badge)
        await self.db.flush()
        return user_badge

    async def progress_by_badge(self, user_id: int) -> dict[int, int]:
        result = await self.db.execute(
            select(BadgeProgress.badge_id, BadgeProgress.current_value).where(
                BadgeProgress.user_id == user_id
            )
        )
        return {row[0]: row[1] for row in result.all()}

    async def save_progress(self, user_id: int, badge_id: int, value: int) -> None:
        result = await self.db.execute(
            select(BadgeProgress).where(
                BadgeProgress.user_id == user_id,
                BadgeProgress.badge_id == badge_id,
            )
        )
        progress = result.scalar_one_or_none()
        if progress is None:
            self.db.add(BadgeProgress(user_id=user_id, badge_id=badge_id, current_value=value))
        else:
            progress.current_value = value
        await self.db.flush()

    async def holders(self, badge_id: int, limit: int = 50) -> list[tuple[UserBadge, User]]:
        result = await self.db.execute(
            select(UserBadge, User)
            .join(User, User.id == UserBadge.user_id)
            .where(UserBadge.badge_id == badge_id)
            .order_by(UserBadge.earned_at, UserBadge.id)
            .limit(limit)
        )
        return [(row[0], row[1]) for row in result.all()]

    async def holder_count(self, badge_id: int) -> int:
        result = await self.db.execute(
            select(func.count(UserBadge.id)).where(UserBadge.badge_id == badge_id)
        )
        return int(result.scalar_one())

    # ==================== Activity ====================

    async def _count(self, query) -> int:
        result = await self.db.execute(query)
        return int(result.scalar_one() or 0)

    async def count_replies(self, user_id: int, since: datetime | None = None) -> int:
        query = select(func.count(Reply.id)).where(
            Reply.author_id == user_id, Reply.is_deleted == False
        )
        if since:
            query = query.where(Reply.created_at >= since)
        return await self._count(query)

    async def count_topics(self, user_id: int, since: datetime | None = None) -> int:
        query = select(func.count(Topic.id)).where(
            Topic.author_id == user_id, Topic.is_draft == False
        )
        if since:
            query = query.where(Topic.created_at >= since)
        return await self._count(query)

    async def count_accepted_answers(self, user_id: int, since: datetime | None = None) -> int:
        query = select(func.count(Reply.id)).where(
            Reply.author_id == user_id, Reply.is_accepted == True
        )
        if since:
            query = query.where(Reply.created_at >= since)
        return await self._count(query)

    async def count_upvotes_received(self, user_id: int, since: datetime | None = None) -> int:
        topic_votes = (
            select(func.count())
            .select_from(TopicVote)
            .join(Topic, Topic.id == TopicVote.topic_id)
            .where(Topic.author_id == user_id, TopicVote.value == 1)
        )
        reply_votes = (
            select(func.count())
            .select_from(ReplyVote)
            .join(Reply, Reply.id == ReplyVote.reply_id)
            .where(Reply.author_id == user_id, ReplyVote.value == 1)
        )
        if since:
            topic_votes = topic_votes.where(TopicVote.created_at >= since)
            reply_votes = reply_votes.where(ReplyVote.created_at >= since)
        return await self._count(topic_votes) + await self._count(reply_votes)

    async def count_votes_cast(self, user_id: int, since: datetime | None = None) -> int:
        topic_votes = select(func.count()).select_from(TopicVote).where(TopicVote.user_id == user_id)
        reply_votes = select(func.count()).select_from(ReplyVote).where(ReplyVote.user_id == user_id)
        if since:
            topic_votes = topic_votes.where(TopicVote.created_at >= since)
            reply_votes = reply_votes.where(ReplyVote.created_at >= since)
        return await self._count(topic_votes) + await self._count(reply_votes)

    async def reputation_total(self, user_id: int) -> int:
        return await self._count(
            select(func.coalesce(func.sum(ReputationHistory.points), 0)).where(
                ReputationHistory.user_id == user_id
            )
        )

    async def activity_dates(self, user_id: int) -> set[date]:
        """Calendar days (UTC) on which the user posted a topic or reply."""
        topics = await self.db.execute(
            select(Topic.created_at).where(Topic.author_id == user_id)
        )
        replies = await self.db.execute(
            select(Reply.created_at).where(
                Reply.author_id == user_id, Reply.is_deleted == False
            )
        )
        return {
            moment.date()
            for moment in [*topics.scalars().all(), *replies.scalars().all()]
        }
