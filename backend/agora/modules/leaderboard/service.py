"""
Leaderboard Service - Cached rankings, user rank lookup and Hall of Fame.
"""

from datetime import datetime, timedelta
from enum import Enum as PyEnum
from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from agora.core.exceptions import NotFoundError
from agora.core.utils import isoformat, utcnow
from agora.models.leaderboard import LeaderboardEntry
from agora.models.user import User
from agora.modules.leaderboard.cache import LeaderboardCache
from agora.modules.leaderboard.repository import LeaderboardRepository

ALL_TIME_START = datetime(2020, 1, 1)
HALL_OF_FAME_SIZE = 10


class LeaderboardPeriod(str, PyEnum):
    """Ranking window."""

    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ALL_TIME = "all-time"


def period_boundaries(period: LeaderboardPeriod, now: datetime | None = None) -> tuple[datetime, datetime]:
    """Start and end of the window a period ranks over."""
    end = now or utcnow()
    if period == LeaderboardPeriod.WEEKLY:
        return end - timedelta(days=7), end
    if period == LeaderboardPeriod.MONTHLY:
        return end - timedelta(days=30), end
    return ALL_TIME_START, end


class LeaderboardService:
    """
    Service for leaderboards.

    Usage:
        leaderboard = LeaderboardService(db, LeaderboardRepository(db), LeaderboardCache())
        board = await leaderboard.get_leaderboard(LeaderboardPeriod.WEEKLY)
    """

    def __init__(
        self,
        db: AsyncSession,
        leaderboard: LeaderboardRepository,
        cache: LeaderboardCache,
    ) -> None:
        self.db = db
        self.leaderboard = leaderboard
        self.cache = cache

    # ==================== Read ====================

    async def get_leaderboard(self, period: LeaderboardPeriod) -> dict[str, Any]:
        """
        Rankings of a period: top 100 for all-time, top 50 otherwise.

        Served from cache when possible.
        """
        cached = await self.cache.get_json(period.value)
        if cached:
            logger.debug(f"Leaderboard cache hit: {period.value}")
            return cached

        limit = 100 if period == LeaderboardPeriod.ALL_TIME else 50
        entries = await self.leaderboard.list_entries(period.value, limit)
        totals = await self.leaderboard.total_reputation([e.user_id for e in entries])
        count, top_gain, updated_at = await self.leaderboard.stats(period.value)

        response = {
            "period": period.value,
            "entries": [self._entry_to_dict(e, totals.get(e.user_id, 0)) for e in entries],
            "stats": {
                "total_users": count,
                "top_reputation_gain": top_gain,
                "updated_at": isoformat(updated_at),
            } if count else None,
            "updated_at": isoformat(updated_at or utcnow()),
        }
        await self.cache.set_json(period.value, response)
        return response

    async def get_user_rankings(self, user_id: int) -> dict[str, Any]:
        """A user's rank, gain and percentile in every period."""
        cache_key = f"user:{user_id}"
        cached = await self.cache.get_json(cache_key)
        if cached:
            return cached

        if await self.db.get(User, user_id) is None:
            raise NotFoundError("User not found")

        rankings = {}
        for period in LeaderboardPeriod:
            entry = await self.leaderboard.get_user_entry(user_id, period.value)
            total_users, _, _ = await self.leaderboard.stats(period.value)
            rankings[period.value] = {
                "period": period.value,
                "rank": entry.rank if entry else None,
                "reputation_gain": entry.reputation_gain if entry else 0,
                "total_users": total_users,
                "percentile": (
                    round((1 - entry.rank / total_users) * 100, 2)
                    if entry and total_users
                    else None
                ),
            }

        await self.cache.set_json(cache_key, rankings)
        return rankings

    async def get_hall_of_fame(self, limit: int = 50) -> dict[str, Any]:
        cached = await self.cache.get_json("hall-of-fame")
        if cached:
            return cached

        rows = await self.leaderboard.hall_of_fame(limit)
        totals = await self.leaderboard.total_reputation([row["user_id"] for row in rows])
        response = {
            "period": LeaderboardPeriod.MONTHLY.value,
            "entries": [
                {
                    "rank": index,
                    "user_id": row["user_id"],
                    "username": row["username"],
                    "avatar_url": row["avatar_url"],
                    "months_featured": row["appearances"],
                    "best_rank": row["best_rank"],
                    "reputation_gain": row["best_gain"],
                    "total_reputation": totals.get(row["user_id"], 0),
                }
                for index, row in enumerate(rows, start=1)
            ],
            "updated_at": isoformat(utcnow()),
        }
        await self.cache.set_json("hall-of-fame", response)
        return response

    # ==================== Recalculate ====================

    async def recalculate_rankings(
        self,
        period: LeaderboardPeriod,
        now: datetime | None = None,
    ) -> int:
        """
        Rebuild a period's snapshot from the reputation ledger.

        Users are ranked by points gained in the window; only positive
        gains are ranked. When the calendar month has changed since the
        last monthly snapshot, its top 10 is archived for the Hall of Fame
        first.

        Returns:
            Number of ranked users
        """
        start, end = period_boundaries(period, now)

        if period == LeaderboardPeriod.MONTHLY:
            await self._archive_previous_month(end)

        gains = await self.leaderboard.reputation_gains(start, end)
        topics = await self.leaderboard.topic_counts(start, end)
        replies = await self.leaderboard.reply_counts(start, end)
        accepted = await self.leaderboard.accepted_counts(start, end)

        ranked = sorted(gains.items(), key=lambda item: (-item[1], item[0]))
        await self.leaderboard.replace_snapshot(
            period.value,
            [
                LeaderboardEntry(
                    period=period.value,
                    user_id=user_id,
                    rank=rank,
                    reputation_gain=gain,
                    post_count=topics.get(user_id, 0),
                    reply_count=replies.get(user_id, 0),
                    accepted_answers=accepted.get(user_id, 0),
                    period_start=start,
                    period_end=end,
                )
                for rank, (user_id, gain) in enumerate(ranked, start=1)
            ],
        )

        await self.cache.delete(period.value)
        logger.info(f"Leaderboard {period.value} recalculated: {len(ranked)} users")
        return len(ranked)

    async def _archive_previous_month(self, now: datetime) -> None:
        current = await self.leaderboard.list_entries(LeaderboardPeriod.MONTHLY.value, limit=1)
        if not current:
            return
        last_end = current[0].period_end
        if (last_end.year, last_end.month) != (now.year, now.month):
            archived = await self.leaderboard.archive_top(
                LeaderboardPeriod.MONTHLY.value, HALL_OF_FAME_SIZE
            )
            logger.info(f"Archived {archived} monthly leaders for {last_end:%Y-%m}")

    async def recalculate_all_rankings(self, now: datetime | None = None) -> dict[str, int]:
        counts = {
            period.value: await self.recalculate_rankings(period, now)
            for period in LeaderboardPeriod
        }
        cleared = await self.cache.clear()
        logger.info(f"All leaderboards recalculated, {cleared} cache keys cleared")
        return counts

    @staticmethod
    def _entry_to_dict(entry: LeaderboardEntry, total_reputation: int) -> dict[str, Any]:
        return {
            "rank": entry.rank,
            "user_id": entry.user_id,
            "username": entry.user.username,
            "avatar_url": entry.user.avatar_url,
            "reputation_gain": entry.reputation_gain,
            "post_count": entry.post_count,
            "reply_count": entry.reply_count,
            "accepted_answers": entry.accepted_answers,
            "total_reputation": total_reputation,
        }
