"""
Poll Repository - Polls, options and votes.
"""

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from agora.models.poll import Poll, PollOption, PollVote


class PollRepository:
    """Queries over `polls`, `poll_options` and `poll_votes`."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, poll_id: int) -> Poll | None:
        result = await self.db.execute(
            select(Poll)
            .options(selectinload(Poll.options))
            .where(Poll.id == poll_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_topic(self, topic_id: int) -> Poll | None:
        result = await self.db.execute(
            select(Poll)
            .options(selectinload(Poll.options))
            .where(Poll.topic_id == topic_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create(self, poll: Poll, options: list[str]) -> Poll:
        poll.options = [
            PollOption(option_text=text.strip(), display_order=index)
            for index, text in enumerate(options)
        ]
        self.db.add(poll)
        await self.db.flush()
        return poll

    async def delete(self, poll: Poll) -> None:
        await self.db.execute(delete(PollVote).where(PollVote.poll_id == poll.id))
        await self.db.delete(poll)
        await self.db.flush()

    # ==================== Votes ====================

    async def user_option_ids(self, poll_id: int, user_id: int) -> list[int]:
        result = await self.db.execute(
            select(PollVote.option_id)
            .where(PollVote.poll_id == poll_id, PollVote.user_id == user_id)
            .order_by(PollVote.option_id)
        )
        return list(result.scalars().all())

    async def replace_votes(self, poll_id: int, user_id: int, option_ids: list[int]) -> None:
        """Store the user's selection, dropping any previous one."""
        await self.db.execute(
            delete(PollVote).where(PollVote.poll_id == poll_id, PollVote.user_id == user_id)
        )
        for option_id in option_ids:
            self.db.add(PollVote(poll_id=poll_id, user_id=user_id, option_id=option_id))
        await self.db.flush()

    async def option_counts(self, poll_id: int) -> dict[int, int]:
        result = await self.db.execute(
            select(PollVote.option_id, func.count(PollVote.id))
            .where(PollVote.poll_id == poll_id)
            .group_by(PollVote.option_id)
        )
        return {row[0]: int(row[1]) for row in result.all()}

    async def voter_count(self, poll_id: int) -> int:
        result = await self.db.execute(
            select(func.count(func.distinct(PollVote.user_id))).where(
                PollVote.poll_id == poll_id
            )
        )
        return int(result.scalar_one())
