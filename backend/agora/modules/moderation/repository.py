"""
Moderation Repository - Audit log and the bulk statements behind moderation actions.
"""

from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from agora.models.forum import Reply, ReplyEditHistory, Topic
from agora.models.moderation import ModerationLog
from agora.models.poll import Poll, PollOption, PollVote
from agora.models.vote import ReplyVote, TopicVote


class ModerationRepository:
    """Queries over `moderation_logs` plus topic-wide writes."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ==================== Audit log ====================

    async def add_log(self, entry: ModerationLog) -> ModerationLog:
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def list_logs(
        self,
        moderator_id: int | None = None,
        action: str | None = None,
        target_type: str | None = None,
        target_id: int | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[ModerationLog], int]:
        conditions = []
        if moderator_id is not None:
            conditions.append(ModerationLog.moderator_id == moderator_id)
        if action:
            conditions.append(ModerationLog.action == action)
        if target_type:
            conditions.append(ModerationLog.target_type == target_type)
        if target_id is not None:
            conditions.append(ModerationLog.target_id == target_id)
        if start_date:
            conditions.append(ModerationLog.created_at >= start_date)
        if end_date:
            conditions.append(ModerationLog.created_at <= end_date)

        result = await self.db.execute(
            select(ModerationLog)
            .where(*conditions)
            .order_by(ModerationLog.created_at.desc(), ModerationLog.id.desc())
            .limit(limit)
            .offset(offset)
        )
        total = await self.db.execute(select(func.count(ModerationLog.id)).where(*conditions))
        return list(result.scalars().all()), int(total.scalar_one())

    # ==================== Topics ====================

    async def move_replies(self, source_id: int, target_id: int) -> None:
        """Re-home every reply of `source_id`; accepted flags do not travel."""
        await self.db.execute(
            update(Reply)
            .where(Reply.topic_id == source_id, Reply.is_accepted == True)
            .values(is_accepted=False)
        )
        await self.db.execute(
            update(Reply).where(Reply.topic_id == source_id).values(topic_id=target_id)
        )

    async def count_replies(self, topic_id: int) -> int:
        result = await self.db.execute(
            select(func.count(Reply.id)).where(
                Reply.topic_id == topic_id,
                Reply.is_deleted == False,
            )
        )
        return int(result.scalar_one())

    async def hard_delete_topic(self, topic: Topic) -> None:
        """
        Remove a topic and everything that belongs to it. Tag links and
        attachments go with the topic row through its relationships.
        """
        reply_ids = select(Reply.id).where(Reply.topic_id == topic.id)
        poll_ids = select(Poll.id).where(Poll.topic_id == topic.id)

        await self.db.execute(delete(ReplyVote).where(ReplyVote.reply_id.in_(reply_ids)))
        await self.db.execute(
            delete(ReplyEditHistory).where(ReplyEditHistory.reply_id.in_(reply_ids))
        )
        await self.db.execute(
            update(Reply)
            .where(Reply.topic_id == topic.id)
            .values(parent_reply_id=None, quoted_reply_id=None)
        )
        await self.db.execute(delete(Reply).where(Reply.topic_id == topic.id))
        await self.db.execute(delete(TopicVote).where(TopicVote.topic_id == topic.id))
        await self.db.execute(delete(PollVote).where(PollVote.poll_id.in_(poll_ids)))
        await self.db.execute(delete(PollOption).where(PollOption.poll_id.in_(poll_ids)))
        await self.db.execute(delete(Poll).where(Poll.topic_id == topic.id))
        await self.db.delete(topic)
        await self.db.flush()
