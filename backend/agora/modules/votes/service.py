"""
Vote Service - Up/down votes on topics and replies.

Counters on the target are always recounted from the vote table. The
author's reputation adjustment is written in the same transaction as the
vote itself.
"""

from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from agora.core.database import unit_of_work
from agora.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from agora.core.utils import offset_for, pagination_meta, start_of_utc_day
from agora.models.forum import AUTO_HIDE_THRESHOLD
from agora.models.user import User
from agora.modules.reputation.service import (
    PERMISSION_THRESHOLDS,
    ReputationEvent,
    ReputationService,
)
from agora.modules.votes.repository import VoteRepository

# Reputation carried by a standing vote of each value
VOTE_POINTS = {1: 10, -1: -5, 0: 0}


def reputation_delta(previous: int, new: int) -> int:
    """
    Points the target's author gains (or loses) when a vote moves from
    `previous` to `new`.

        none -> up   +10      up -> none   -10      up -> down   -15
        none -> down  -5      down -> none  +5      down -> up   +15
    """
    return VOTE_POINTS[new] - VOTE_POINTS[previous]


class VoteService:
    """
    Service for casting votes.

    Usage:
        votes = VoteService(db, VoteRepository(db), reputation)
        result = await votes.vote_topic(topic_id, user, 1)
    """

    DAILY_VOTE_LIMIT = 50
    MIN_REPUTATION_TO_DOWNVOTE = PERMISSION_THRESHOLDS["downvote"]

    def __init__(
        self,
        db: AsyncSession,
        votes: VoteRepository,
        reputation: ReputationService,
    ) -> None:
        self.db = db
        self.votes = votes
        self.reputation = reputation

    # ==================== Topics ====================

    async def vote_topic(self, topic_id: int, user: User, value: int) -> dict[str, Any]:
        """
        Cast, change or remove a vote on a topic.

        Args:
            topic_id: Topic ID
            user: Voter
            value: 1 (up), -1 (down) or 0 (remove)

        Returns:
            Fresh counters, the caller's vote and the derived hidden flag
        """
        self._validate_value(value)

        topic = await self.votes.get_topic(topic_id)
        if not topic or topic.is_draft:
            raise NotFoundError("Topic not found")
        if topic.author_id == user.id:
            raise ForbiddenError("You cannot vote on your own topic")
        if topic.is_locked:
            raise ForbiddenError("Cannot vote on locked topic")

        existing = await self.votes.get_topic_vote(topic_id, user.id)
        previous = existing.value if existing else 0
        if previous == value:
            return self._result(topic, value)

        await self._check_vote_allowed(user.id, previous, value)

        async with unit_of_work(self.db):
            await self.votes.save_topic_vote(topic_id, user.id, value)
            up, down = await self.votes.tally_topic(topic_id)
            self._apply_counts(topic, up, down)
            await self._adjust_author_reputation(topic.author_id, previous, value, topic_id)

        logger.info(f"User {user.id} voted {value:+d} on topic {topic_id} (score {topic.vote_score})")
        return self._result(topic, value)

    # ==================== Replies ====================

    async def vote_reply(self, reply_id: int, user: User, value: int) -> dict[str, Any]:
        """
        Cast, change or remove a vote on a reply.

        Args:
            reply_id: Reply ID
            user: Voter
            value: 1 (up), -1 (down) or 0 (remove)

        Returns:
            Fresh counters, the caller's vote and the derived hidden flag
        """
        self._validate_value(value)

        reply = await self.votes.get_reply(reply_id)
        if not reply:
            raise NotFoundError("Reply not found")
        if reply.is_deleted:
            raise ForbiddenError("Cannot vote on deleted reply")
        if reply.author_id == user.id:
            raise ForbiddenError("You cannot vote on your own reply")

        topic = await self.votes.get_topic(reply.topic_id)
        if topic and topic.is_locked:
            raise ForbiddenError("Cannot vote on reply in locked topic")

        existing = await self.votes.get_reply_vote(reply_id, user.id)
        previous = existing.value if existing else 0
        if previous == value:
            return self._result(reply, value)

        await self._check_vote_allowed(user.id, previous, value)

        async with unit_of_work(self.db):
            await self.votes.save_reply_vote(reply_id, user.id, value)
            up, down = await self.votes.tally_reply(reply_id)
            self._apply_counts(reply, up, down)
            await self._adjust_author_reputation(reply.author_id, previous, value, reply_id)

        logger.info(f"User {user.id} voted {value:+d} on reply {reply_id} (score {reply.vote_score})")
        return self._result(reply, value)

    # ==================== History ====================

    async def get_user_votes(
        self,
        user_id: int,
        vote_type: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict[str, Any]:
        """The caller's votes, newest first."""
        if vote_type not in (None, "topic", "reply"):
            raise BadRequestError("type must be 'topic' or 'reply'")

        rows, total = await self.votes.list_user_votes(
            user_id, vote_type, limit=limit, offset=offset_for(page, limit)
        )
        items = [
            {
                "target_type": row["target_type"],
                "target_id": row["target_id"],
                "value": row["value"],
                "topic": {"id": row["topic_id"], "title": row["title"], "slug": row["slug"]},
                "created_at": row["created_at"].isoformat() if row["created_at"] else None,
            }
            for row in rows
        ]
        return {"items": items, "pagination": pagination_meta(page, limit, total)}

    # ==================== Helpers ====================

    @staticmethod
    def _validate_value(value: int) -> None:
        if value not in (1, -1, 0):
            raise BadRequestError("Vote value must be 1, -1 or 0")

    async def _check_vote_allowed(self, user_id: int, previous: int, value: int) -> None:
        """Reputation gate for downvotes and the daily quota for new votes."""
        if value == -1:
            total = await self.reputation.get_total(user_id)
            if total < self.MIN_REPUTATION_TO_DOWNVOTE:
                raise ForbiddenError(
                    f"You need at least {self.MIN_REPUTATION_TO_DOWNVOTE} reputation points "
                    f"to downvote. Your current reputation: {total}"
                )

        # Only standing votes cast today count, so removing one frees its slot
        if previous == 0 and value != 0:
            today = await self.votes.count_votes_since(user_id, start_of_utc_day())
            if today >= self.DAILY_VOTE_LIMIT:
                raise ForbiddenError(
                    f"You have reached your daily vote limit of {self.DAILY_VOTE_LIMIT} "
                    "votes. Try again tomorrow."
                )

    @staticmethod
    def _apply_counts(target, up: int, down: int) -> None:
        target.upvote_count = up
        target.downvote_count = down
        target.vote_score = up - down

    async def _adjust_author_reputation(
        self,
        author_id: int,
        previous: int,
        value: int,
        reference_id: int,
    ) -> None:
        points = reputation_delta(previous, value)
        if points == 0:
            return
        event = (
            ReputationEvent.UPVOTE_RECEIVED if points > 0 else ReputationEvent.DOWNVOTE_RECEIVED
        )
        await self.reputation.record(
            author_id,
            event,
            points,
            reference_id=reference_id,
            description=f"Vote changed from {previous:+d} to {value:+d}",
        )

    @staticmethod
    def _result(target, user_vote: int) -> dict[str, Any]:
        return {
            "vote_score": target.vote_score,
            "upvote_count": target.upvote_count,
            "downvote_count": target.downvote_count,
            "user_vote": user_vote,
            "hidden": target.vote_score <= AUTO_HIDE_THRESHOLD,
        }
