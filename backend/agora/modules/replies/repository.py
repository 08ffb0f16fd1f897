"""
Reply Repository - Replies, edit history and mention lookups.
"""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from agora.models.forum import Reply, ReplyEditHistory
from agora.models.user import User


class ReplyRepository:
    """Queries over `replies` and `reply_edit_history`."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, reply_id: int) -> Reply | None:
        result = await self.db.execute(
            select(Reply)
            .options(selectinload(Reply.author))
            .where(Reply.id == reply_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def add(self, reply: Reply) -> Reply:
        self.db.add(reply)
        await self.db.flush()
        return reply

    async def list_for_topic(self, topic_id: int, include_deleted: bool = False) -> list[Reply]:
        query = (
            select(Reply)
            .options(selectinload(Reply.author))
            .where(Reply.topic_id == topic_id)
            .order_by(Reply.created_at, Reply.id)
            .execution_options(populate_existing=True)
        )
        if not include_deleted:
            query = query.where(Reply.is_deleted == False)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def clear_accepted(self, topic_id: int) -> None:
        await self.db.execute(
            update(Reply)
            .where(Reply.topic_id == topic_id, Reply.is_accepted == True)
            .values(is_accepted=False)
        )

    async def users_by_usernames(self, usernames: list[str]) -> list[User]:
        if not usernames:
            return []
        result = await self.db.execute(select(User).where(User.username.in_(usernames)))
        return list(result.scalars().all())

    # ==================== Edit history ====================

    async def add_edit_history(
        self,
        reply_id: int,
        previous_content: str,
        edited_by: int,
        edit_reason: str | None = None,
    ) -> ReplyEditHistory:
        entry = ReplyEditHistory(
            reply_id=reply_id,
            previous_content=previous_content,
            edited_by=edited_by,
            edit_reason=edit_reason,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def list_edit_history(self, reply_id: int) -> list[ReplyEditHistory]:
        result = await self.db.execute(
            select(ReplyEditHistory)
            .where(ReplyEditHistory.reply_id == reply_id)
            .order_by(ReplyEditHistory.created_at.desc(), ReplyEditHistory.id.desc())
        )
        return list(result.scalars().all())
