"""
Leaderboard Repository - Ranking snapshots and the aggregates behind them.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from agora.models.forum import Reply, Topic
from agora.models.leaderboard import LeaderboardEntry
from agora.models.user import User
from agora.models.vote import ReputationHistory


class LeaderboardRepository:
    """Queries over `leaderboards` and the activity tables it summarises."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ==================== Snapshots ====================

    async def list_entries(self, period: str, limit: int = 50) -> list[LeaderboardEntry]:
        result = await self.db.execute(
            select(LeaderboardEntry)
            .options(selectinload(LeaderboardEntry.user))
            .where(LeaderboardEntry.period == period, LeaderboardEntry.is_archived == False)
            .order_by(LeaderboardEntry.rank)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def stats(self, period: str) -> tuple[int, int, datetime | None]:
        """(ranked users, top gain, last update) of the live snapshot."""
        result = await self.db.execute(
            select(
                func.count(LeaderboardEntry.id),
                func.max(LeaderboardEntry.reputation_gain),
                func.max(LeaderboardEntry.updated_at),
            ).where(LeaderboardEntry.period == period, LeaderboardEntry.is_archived == False)
        )
        count, top_gain, updated_at = result.one()
        return int(count), int(top_gain or 0), updated_at

    async def get_user_entry(self, user_id: int, period: str) -> LeaderboardEntry | None:
        result = await self.db.execute(
            select(LeaderboardEntry).where(
                LeaderboardEntry.user_id == user_id,
                LeaderboardEntry.period == period,
                LeaderboardEntry.is_archived == False,
            )
        )
        return result.scalar_one_or_none()

    async def replace_snapshot(self, period: str, entries: list[LeaderboardEntry]) -> None:
        await self.db.execute(
            delete(LeaderboardEntry).where(
                LeaderboardEntry.period == period,
                LeaderboardEntry.is_archived == False,
            )
        )
        self.db.add_all(entries)
        await self.db.flush()

    async def archive_top(self, period: str, limit: int = 10) -> int:
        """Copy the live top `limit` rows of a period as archived rows."""
        result = await self.db.execute(
            select(LeaderboardEntry)
            .where(
                LeaderboardEntry.period == period,
                LeaderboardEntry.is_archived == False,
                LeaderboardEntry.rank <= limit,
            )
            .order_by(LeaderboardEntry.rank)
        )
        live = list(result.scalars().all())
        self.db.add_all(
            LeaderboardEntry(
                period=entry.period,
                user_id=entry.user_id,
                rank=entry.rank,
                reputation_gain=entry.reputation_gain,
                post_count=entry.post_count,
                reply_count=entry.reply_count,
                accepted_answers=entry.accepted_answers,
                period_start=entry.period_start,
                period_end=entry.period_end,
                is_archived=True,
            )
            for entry in live
        )
        await self.db.flush()
        return len(live)

    async def hall_of_fame(self, limit: int = 50) -> list[dict[str, Any]]:
        """Users ranked by archived monthly top 10 appearances, then best gain."""
        appearances = func.count(LeaderboardEntry.id)
        best_gain = func.max(LeaderboardEntry.reputation_gain)
        result = await self.db.execute(
            select(
                LeaderboardEntry.user_id,
                User.username,
                User.avatar_url,
                appearances.label("appearances"),
                best_gain.label("best_gain"),
                func.min(LeaderboardEntry.rank).label("best_rank"),
            )
            .join(User, User.id == LeaderboardEntry.user_id)
            .where(
                LeaderboardEntry.period == "monthly",
                LeaderboardEntry.is_archived == True,
                LeaderboardEntry.rank <= 10,
            )
            .group_by(LeaderboardEntry.user_id, User.username, User.avatar_url)
            .order_by(appearances.desc(), best_gain.desc())
            .limit(limit)
        )
        return [dict(row._mapping) for row in result.all()]

    # ==================== Aggregates ====================

    async def reputation_gains(self, start: datetime, end: datetime) -> dict[int, int]:
        """Points earned per user in the window, positive totals only."""
        gain = func.sum(ReputationHistory.points)
        result = await self.db.execute(
            select(ReputationHistory.user_id, gain)
            .where(ReputationHistory.created_at.between(start, end))
            .group_by(ReputationHistory.user_id)
            .having(gain > 0)
        )
        return {row[0]: int(row[1]) for row in result.all()}

    async def _count_by_author(self, model, start: datetime, end: datetime, *conditions) -> dict[int, int]:
        result = await self.db.execute(
            select(model.author_id, func.count(model.id))
            .where(model.created_at.between(start, end), *conditions)
            .group_by(model.author_id)
        )
        return {row[0]: int(row[1]) for row in result.all()}

    async def topic_counts(self, start: datetime, end: datetime) -> dict[int, int]:
        return await self._count_by_author(Topic, start, end, Topic.is_draft == False)

    async def reply_counts(self, start: datetime, end: datetime) -> dict[int, int]:
        return await self._count_by_author(Reply, start, end, Reply.is_deleted == False)

    async def accepted_counts(self, start: datetime, end: datetime) -> dict[int, int]:
        return await self._count_by_author(Reply, start, end, Reply.is_accepted == True)

    async def total_reputation(self, user_ids: list[int]) -> dict[int, int]:
        if not user_ids:
            return {}
        result = await self.db.execute(
            select(ReputationHistory.user_id, func.sum(ReputationHistory.points))
            .where(ReputationHistory.user_id.in_(user_ids))
            .group_by(ReputationHistory.user_id)
        )
        return {row[0]: int(row[1] or 0) for row in result.all()}
