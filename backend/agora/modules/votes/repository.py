"""
Vote Repository - Vote rows and tallies for topics and replies.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import case, delete, func, literal, select, union_all
from sqlalchemy.ext.asyncio import AsyncSession

from agora.models.forum import Reply, Topic
from agora.models.vote import ReplyVote, TopicVote


class VoteRepository:
    """Queries over `topic_votes` and `reply_votes`."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ==================== Targets ====================

    async def get_topic(self, topic_id: int) -> Topic | None:
        return await self.db.get(Topic, topic_id)

    async def get_reply(self, reply_id: int) -> Reply | None:
        return await self.db.get(Reply, reply_id)

    # ==================== Votes ====================

    async def get_topic_vote(self, topic_id: int, user_id: int) -> TopicVote | None:
        return await self.db.get(TopicVote, (topic_id, user_id))

    async def get_reply_vote(self, reply_id: int, user_id: int) -> ReplyVote | None:
        return await self.db.get(ReplyVote, (reply_id, user_id))

    async def save_topic_vote(self, topic_id: int, user_id: int, value: int) -> None:
        """Insert or update the row; value 0 deletes it."""
        existing = await self.get_topic_vote(topic_id, user_id)
        if value == 0:
            if existing:
                await self.db.delete(existing)
        elif existing:
            existing.value = value
        else:
            self.db.add(TopicVote(topic_id=topic_id, user_id=user_id, value=value))
        await self.db.flush()

    async def save_reply_vote(self, reply_id: int, user_id: int, value: int) -> None:
        """Insert or update the row; value 0 deletes it."""
        existing = await self.get_reply_vote(reply_id, user_id)
        if value == 0:
            if existing:
                await self.db.delete(existing)
        elif existing:
            existing.value = value
        else:
            self.db.add(ReplyVote(reply_id=reply_id, user_id=user_id, value=value))
        await self.db.flush()

    async def tally_topic(self, topic_id: int) -> tuple[int, int]:
        """(upvotes, downvotes) counted from the vote table."""
        return await self._tally(TopicVote, TopicVote.topic_id == topic_id)

    async def tally_reply(self, reply_id: int) -> tuple[int, int]:
        """(upvotes, downvotes) counted from the vote table."""
        return await self._tally(ReplyVote, ReplyVote.reply_id == reply_id)

    async def _tally(self, model, condition) -> tuple[int, int]:
        result = await self.db.execute(
            select(
                func.coalesce(func.sum(case((model.value == 1, 1), else_=0)), 0),
                func.coalesce(func.sum(case((model.value == -1, 1), else_=0)), 0),
            ).where(condition)
        )
        up, down = result.one()
        return int(up), int(down)

    async def count_votes_since(self, user_id: int, since: datetime) -> int:
        """Standing vote rows the user created at or after `since`, across both tables."""
        topic_count = await self.db.execute(
            select(func.count()).select_from(TopicVote).where(
                TopicVote.user_id == user_id, TopicVote.created_at >= since
            )
        )
        reply_count = await self.db.execute(
            select(func.count()).select_from(ReplyVote).where(
                ReplyVote.user_id == user_id, ReplyVote.created_at >= since
            )
        )
        return int(topic_count.scalar_one()) + int(reply_count.scalar_one())

    # ==================== History ====================

    async def list_user_votes(
        self,
        user_id: int,
        vote_type: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[dict[str, Any]], int]:
        """
        A user's votes, newest first, with the title of what was voted on.

        Args:
            user_id: Voter
            vote_type: "topic", "reply" or None for both
            limit: Max results
            offset: Pagination offset

        Returns:
            (rows, total)
        """
        topic_votes = (
            select(
                literal("topic").label("target_type"),
                TopicVote.topic_id.label("target_id"),
                TopicVote.value.label("value"),
                TopicVote.created_at.label("created_at"),
                Topic.id.label("topic_id"),
                Topic.title.label("title"),
                Topic.slug.label("slug"),
            )
            .join(Topic, Topic.id == TopicVote.topic_id)
            .where(TopicVote.user_id == user_id)
        )
        reply_votes = (
            select(
                literal("reply").label("target_type"),
                ReplyVote.reply_id.label("target_id"),
                ReplyVote.value.label("value"),
                ReplyVote.created_at.label("created_at"),
                Topic.id.label("topic_id"),
                Topic.title.label("title"),
                Topic.slug.label("slug"),
            )
            .join(Reply, Reply.id == ReplyVote.reply_id)
            .join(Topic, Topic.id == Reply.topic_id)
            .where(ReplyVote.user_id == user_id)
        )

        if vote_type == "topic":
            combined = topic_votes.subquery()
        elif vote_type == "reply":
            combined = reply_votes.subquery()
        else:
            combined = union_all(topic_votes, reply_votes).subquery()

        total = await self.db.execute(select(func.count()).select_from(combined))
        rows = await self.db.execute(
            select(combined)
            .order_by(combined.c.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return [dict(row._mapping) for row in rows.all()], int(total.scalar_one())
