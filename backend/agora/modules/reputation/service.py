"""
Reputation Service - Point ledger, levels and permissions.

Total reputation is always the sum of the ledger; nothing stores it.
"""

from enum import Enum as PyEnum
from typing import Any, Callable

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from agora.core.background import fire_and_forget
from agora.core.database import session_scope
from agora.core.exceptions import NotFoundError
from agora.core.utils import isoformat, offset_for, pagination_meta, percentage
from agora.models.user import User
from agora.modules.reputation.repository import ReputationRepository


class ReputationEvent(str, PyEnum):
    """Ledger event types."""

    TOPIC_CREATED = "topic_created"
    REPLY_CREATED = "reply_created"
    UPVOTE_RECEIVED = "upvote_received"
    DOWNVOTE_RECEIVED = "downvote_received"
    BEST_ANSWER = "best_answer"
    PENALTY = "penalty"


# (level, minimum total) in ascending order
LEVELS: list[tuple[str, int]] = [
    ("newcomer", 0),
    ("contributor", 100),
    ("expert", 500),
    ("master", 1000),
    ("legend", 2500),
]

PERMISSION_THRESHOLDS: dict[str, int] = {
    "downvote": 50,
    "edit_others": 500,
    "moderate": 1000,
}


def calculate_level(total: int) -> str:
    """Level for a reputation total."""
    current = LEVELS[0][0]
    for name, threshold in LEVELS:
        if total >= threshold:
            current = name
    return current


def level_progress(total: int) -> dict[str, Any]:
    """
    Progress toward the next level.

    Returns:
        current, current_threshold, next_level, next_threshold and a
        percentage clamped to 0..100. Legend has no next level and
        reports 100.
    """
    index = 0
    for i, (_, threshold) in enumerate(LEVELS):
        if total >= threshold:
            index = i

    current_threshold = LEVELS[index][1]
    if index == len(LEVELS) - 1:
        return {
            "current": total,
            "current_threshold": current_threshold,
            "next_level": None,
            "next_threshold": None,
            "percentage": 100,
        }

    next_level, next_threshold = LEVELS[index + 1]
    return {
        "current": total,
        "current_threshold": current_threshold,
        "next_level": next_level,
        "next_threshold": next_threshold,
        "percentage": percentage(total - current_threshold, next_threshold - current_threshold),
    }


def permissions_for(total: int) -> dict[str, bool]:
    """Reputation-gated permissions."""
    return {name: total >= threshold for name, threshold in PERMISSION_THRESHOLDS.items()}


class ReputationService:
    """
    Service for reading and appending reputation.

    Usage:
        reputation = ReputationService(db, ReputationRepository(db))
        total = await reputation.get_total(user_id)
    """

    TOPIC_CREATED_POINTS = 5
    REPLY_CREATED_POINTS = 2
    BEST_ANSWER_POINTS = 25

    def __init__(self, db: AsyncSession, reputation: ReputationRepository) -> None:
        self.db = db
        self.reputation = reputation

    async def get_total(self, user_id: int) -> int:
        return await self.reputation.total(user_id)

    async def has_permission(self, user_id: int, permission: str) -> bool:
        """Check a reputation gate at the point of use."""
        total = await self.get_total(user_id)
        return total >= PERMISSION_THRESHOLDS[permission]

    async def record(
        self,
        user_id: int,
        event_type: ReputationEvent | str,
        points: int,
        reference_id: int | None = None,
        description: str | None = None,
    ) -> None:
        """Append one ledger row."""
        event = str(getattr(event_type, "value", event_type))
        await self.reputation.add_entry(
            user_id=user_id,
            event_type=event,
            points=points,
            reference_id=reference_id,
            description=description,
        )
        logger.debug(f"Reputation {points:+d} for user {user_id} ({event})")

    async def get_user_reputation(self, user_id: int) -> dict[str, Any]:
        """
        Full reputation summary for a user.

        Raises:
            NotFoundError: Unknown user
        """
        if await self.db.get(User, user_id) is None:
            raise NotFoundError("User not found")

        total = await self.get_total(user_id)
        by_event = await self.reputation.totals_by_event(user_id)
        recent, _ = await self.reputation.list_entries(user_id, limit=10)

        def count(event: ReputationEvent) -> int:
            return by_event.get(event.value, (0, 0))[0]

        def points(event: ReputationEvent) -> int:
            return by_event.get(event.value, (0, 0))[1]

        return {
            "user_id": user_id,
            "total_reputation": total,
            "level": calculate_level(total),
            "level_progress": level_progress(total),
            "permissions": permissions_for(total),
            "breakdown": {
                "topics_created": count(ReputationEvent.TOPIC_CREATED),
                "replies_created": count(ReputationEvent.REPLY_CREATED),
                "upvotes_received": points(ReputationEvent.UPVOTE_RECEIVED),
                "downvotes_received": points(ReputationEvent.DOWNVOTE_RECEIVED),
                "best_answers": count(ReputationEvent.BEST_ANSWER),
                "penalties": points(ReputationEvent.PENALTY),
            },
            "recent_history": [self._entry_to_dict(e) for e in recent],
        }

    async def get_history(
        self,
        user_id: int,
        page: int = 1,
        limit: int = 20,
    ) -> dict[str, Any]:
        """Paginated ledger, newest first."""
        entries, total = await self.reputation.list_entries(
            user_id, limit=limit, offset=offset_for(page, limit)
        )
        return {
            "items": [self._entry_to_dict(e) for e in entries],
            "pagination": pagination_meta(page, limit, total),
        }

    @staticmethod
    def _entry_to_dict(entry) -> dict[str, Any]:
        return {
            "id": entry.id,
            "event_type": entry.event_type,
            "points": entry.points,
            "description": entry.description,
            "reference_id": entry.reference_id,
            "created_at": isoformat(entry.created_at),
        }


class ReputationRewards:
    """
    Best-effort reputation awards.

    Each award runs as a background task in its own session, so a failed
    award is logged and never affects the action that earned it.

    Usage:
        rewards = ReputationRewards()
        rewards.topic_created(user_id, topic.id)
    """

    def __init__(self, scope: Callable[[], Any] = session_scope) -> None:
        self._scope = scope

    def topic_created(self, user_id: int, topic_id: int):
        return self._schedule(
            user_id,
            ReputationEvent.TOPIC_CREATED,
            ReputationService.TOPIC_CREATED_POINTS,
            topic_id,
            "Created a topic",
        )

    def reply_created(self, user_id: int, reply_id: int):
        return self._schedule(
            user_id,
            ReputationEvent.REPLY_CREATED,
            ReputationService.REPLY_CREATED_POINTS,
            reply_id,
            "Posted a reply",
        )

    def best_answer(self, user_id: int, reply_id: int):
        return self._schedule(
            user_id,
            ReputationEvent.BEST_ANSWER,
            ReputationService.BEST_ANSWER_POINTS,
            reply_id,
            "Reply accepted as best answer",
        )

    def _schedule(
        self,
        user_id: int,
        event: ReputationEvent,
        points: int,
        reference_id: int,
        description: str,
    ):
        return fire_and_forget(
            self._award(user_id, event, points, reference_id, description),
            name=f"reputation:{event.value}",
        )

    async def _award(
        self,
        user_id: int,
        event: ReputationEvent,
        points: int,
        reference_id: int,
        description: str,
    ) -> None:
        async with self._scope() as session:
            service = ReputationService(session, ReputationRepository(session))
            await service.record(user_id, event, points, reference_id, description)
        logger.info(f"Awarded {points} reputation to user {user_id} for {event.value}")

