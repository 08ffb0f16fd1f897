"""
Reputation Repository - Ledger queries.
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from agora.models.vote import ReputationHistory


class ReputationRepository:
    """Append and aggregate reputation ledger rows."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def add_entry(
        self,
        user_id: int,
        event_type: str,
        points: int,
        reference_id: int | None = None,
        description: str | None = None,
    ) -> ReputationHistory:
        entry = ReputationHistory(
            user_id=user_id,
            event_type=event_type,
            points=points,
            reference_id=reference_id,
            description=description,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def total(self, user_id: int) -> int:
        """Sum of all points for a user."""
        result = await self.db.execute(
            select(func.coalesce(func.sum(ReputationHistory.points), 0)).where(
                ReputationHistory.user_id == user_id
            )
        )
        return int(result.scalar_one())

    async def totals_by_event(self, user_id: int) -> dict[str, tuple[int, int]]:
        """Map event type to (row count, point sum)."""
        result = await self.db.execute(
            select(
                ReputationHistory.event_type,
                func.count(ReputationHistory.id),
                func.coalesce(func.sum(ReputationHistory.points), 0),
            )
            .where(ReputationHistory.user_id == user_id)
            .group_by(ReputationHistory.event_type)
        )
        return {row[0]: (int(row[1]), int(row[2])) for row in result.all()}

    async def list_entries(
        self,
        user_id: int,
        limit: int = 10,
        offset: int = 0,
    ) -> tuple[list[ReputationHistory], int]:
        """Newest entries first, with the overall count."""
        query = (
            select(ReputationHistory)
            .where(ReputationHistory.user_id == user_id)
            .order_by(ReputationHistory.created_at.desc(), ReputationHistory.id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.db.execute(query)

        count = await self.db.execute(
            select(func.count(ReputationHistory.id)).where(
                ReputationHistory.user_id == user_id
            )
        )
        return list(result.scalars().all()), int(count.scalar_one())
