"""
Poll Service - Topic polls with single or multiple choice voting.
"""

from datetime import datetime
from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from agora.core.exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
)
from agora.core.utils import isoformat, naive_utc, percentage, utcnow
from agora.models.forum import Topic
from agora.models.poll import Poll, PollType
from agora.models.user import User
from agora.modules.polls.repository import PollRepository

MIN_OPTIONS = 2
MAX_OPTIONS = 10


def validate_poll_options(options: list[str]) -> None:
    """
    Check an option list before a poll is created.

    Raises:
        BadRequestError: Wrong count, empty or duplicate options
    """
    if len(options) < MIN_OPTIONS:
        raise BadRequestError("Poll must have at least 2 options")
    if len(options) > MAX_OPTIONS:
        raise BadRequestError("Poll cannot have more than 10 options")
    if any(not option or not option.strip() for option in options):
        raise BadRequestError("All poll options must be non-empty")
    if len({option.strip().lower() for option in options}) != len(options):
        raise BadRequestError("Poll options must be unique")


class PollService:
    """
    Service for polls.

    Usage:
        polls = PollService(db, PollRepository(db))
        poll = await polls.create_poll(topic_id, user, "Best ROV?", ["A", "B"])
    """

    def __init__(self, db: AsyncSession, polls: PollRepository) -> None:
        self.db = db
        self.polls = polls

    async def create_poll(
        self,
        topic_id: int,
        user: User,
        question: str,
        options: list[str],
        poll_type: PollType = PollType.SINGLE,
        is_anonymous: bool = True,
        deadline: datetime | None = None,
    ) -> Poll:
        """
        Create a poll on a topic. A topic holds at most one poll.

        Raises:
            NotFoundError: Topic does not exist
            ForbiddenError: Caller is neither the topic author nor staff
        """
        topic = await self.db.get(Topic, topic_id)
        if not topic:
            raise NotFoundError("Topic not found")
        if topic.author_id != user.id and not user.is_staff:
            raise ForbiddenError("Only the topic author can add a poll")

        validate_poll_options(options)
        if not question or not question.strip():
            raise BadRequestError("Poll question is required")
        if await self.polls.get_by_topic(topic_id):
            raise ConflictError("Topic already has a poll")

        poll = await self.polls.create(
            Poll(
                topic_id=topic_id,
                question=question.strip(),
                poll_type=poll_type,
                is_anonymous=is_anonymous,
                deadline=naive_utc(deadline),
                created_by=user.id,
            ),
            options,
        )
        logger.info(f"Poll {poll.id} created on topic {topic_id} with {len(options)} options")
        return poll

    async def get_poll(self, poll_id: int, viewer: User | None = None) -> dict[str, Any]:
        poll = await self.polls.get(poll_id)
        if not poll:
            raise NotFoundError("Poll not found")
        return await self._results(poll, viewer)

    async def get_poll_by_topic(self, topic_id: int, viewer: User | None = None) -> dict[str, Any]:
        poll = await self.polls.get_by_topic(topic_id)
        if not poll:
            raise NotFoundError("Poll not found")
        return await self._results(poll, viewer)

    async def cast_vote(self, poll_id: int, user: User, option_ids: list[int]) -> dict[str, Any]:
        """
        Vote in a poll.

        Single choice polls take exactly one option and one vote per user.
        Multiple choice polls take one or more options; voting again
        replaces the earlier selection.
        """
        poll = await self.polls.get(poll_id)
        if not poll:
            raise NotFoundError("Poll not found")
        if poll.has_expired(utcnow()):
            raise ForbiddenError("Poll has expired and is closed for voting")

        previous = await self.polls.user_option_ids(poll_id, user.id)
        if poll.poll_type == PollType.SINGLE:
            if previous:
                raise ConflictError("You have already voted in this poll")
            if len(option_ids) != 1:
                raise BadRequestError("Single choice polls allow only one option to be selected")
        elif not option_ids:
            raise BadRequestError("You must select at least one option")

        valid_ids = {option.id for option in poll.options}
        for option_id in option_ids:
            if option_id not in valid_ids:
                raise BadRequestError(f"Invalid option ID: {option_id}")

        await self.polls.replace_votes(poll_id, user.id, sorted(set(option_ids)))
        logger.info(f"User {user.id} voted in poll {poll_id}")
        return await self._results(poll, user)

    async def delete_poll(self, poll_id: int) -> None:
        poll = await self.polls.get(poll_id)
        if not poll:
            raise NotFoundError("Poll not found")
        await self.polls.delete(poll)
        logger.info(f"Poll {poll_id} deleted")

    async def _results(self, poll: Poll, viewer: User | None) -> dict[str, Any]:
        counts = await self.polls.option_counts(poll.id)
        total_votes = sum(counts.values())
        user_vote = await self.polls.user_option_ids(poll.id, viewer.id) if viewer else []

        return {
            "id": poll.id,
            "topic_id": poll.topic_id,
            "question": poll.question,
            "poll_type": poll.poll_type.value,
            "is_anonymous": poll.is_anonymous,
            "deadline": isoformat(poll.deadline),
            "total_votes": total_votes,
            "total_voters": await self.polls.voter_count(poll.id),
            "options": [
                {
                    "id": option.id,
                    "option_text": option.option_text,
                    "vote_count": counts.get(option.id, 0),
                    "percentage": percentage(counts.get(option.id, 0), total_votes),
                }
                for option in poll.options
            ],
            "user_vote": {"option_ids": user_vote} if user_vote else None,
            "has_expired": poll.has_expired(utcnow()),
            "created_at": isoformat(poll.created_at),
        }
