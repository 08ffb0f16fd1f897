"""
API dependencies.

Caller resolution, role guards and service construction. Every service
is built here from its repositories so the endpoints stay thin.
"""

from typing import Any

from fastapi import Depends, Header
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from agora.core.database import get_db
from agora.core.exceptions import ForbiddenError, UnauthorizedError
from agora.core.utils import utcnow
from agora.models.user import User, UserStatus
from agora.modules.badges.repository import BadgeRepository
from agora.modules.badges.service import BadgeService
from agora.modules.categories.repository import CategoryRepository
from agora.modules.categories.service import CategoryService
from agora.modules.leaderboard.cache import LeaderboardCache, get_leaderboard_cache
from agora.modules.leaderboard.repository import LeaderboardRepository
from agora.modules.leaderboard.service import LeaderboardService
from agora.modules.moderation.repository import ModerationRepository
from agora.modules.moderation.service import ModerationAudit, ModerationService
from agora.modules.notifications.repository import NotificationRepository
from agora.modules.notifications.service import NotificationDispatcher, NotificationService
from agora.modules.polls.repository import PollRepository
from agora.modules.polls.service import PollService
from agora.modules.replies.repository import ReplyRepository
from agora.modules.replies.service import ReplyService
from agora.modules.reports.repository import ReportRepository
from agora.modules.reports.service import ReportService
from agora.modules.reputation.repository import ReputationRepository
from agora.modules.reputation.service import ReputationRewards, ReputationService
from agora.modules.search.repository import SearchRepository
from agora.modules.search.service import SearchService
from agora.modules.topics.repository import TopicRepository
from agora.modules.topics.service import TopicService
from agora.modules.votes.repository import VoteRepository
from agora.modules.votes.service import VoteService


class RequestSchema(BaseModel):
    """Request body accepting both camelCase and snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def ok(data: Any = None) -> dict[str, Any]:
    """Standard success envelope."""
    return {"success": True, "data": data}


# ==================== Caller ====================


async def get_optional_user(
    x_user_id: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """The caller named by the X-User-Id header, if any."""
    if not x_user_id:
        return None
    try:
        user_id = int(x_user_id)
    except ValueError:
        raise UnauthorizedError("Invalid user identity")

    user = await db.get(User, user_id)
    if not user:
        raise UnauthorizedError("Unknown user")
    return user


async def get_current_user(
    user: User | None = Depends(get_optional_user),
) -> User:
    """
    Authenticated caller in good standing.

    Raises:
        UnauthorizedError: No identity
        ForbiddenError: Banned, or suspended and still within the suspension
    """
    if user is None:
        raise UnauthorizedError("Authentication required")
    if user.status == UserStatus.BANNED:
        raise ForbiddenError("Your account has been banned")
    if user.status == UserStatus.SUSPENDED and (
        user.suspended_until is None or user.suspended_until > utcnow()
    ):
        raise ForbiddenError("Your account is suspended")
    return user


async def require_staff(user: User = Depends(get_current_user)) -> User:
    if not user.is_staff:
        raise ForbiddenError("Moderator privileges required")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise ForbiddenError("Admin privileges required")
    return user


# ==================== Services ====================


def get_category_service(db: AsyncSession = Depends(get_db)) -> CategoryService:
    return CategoryService(db, CategoryRepository(db))


def get_poll_service(db: AsyncSession = Depends(get_db)) -> PollService:
    return PollService(db, PollRepository(db))


def get_topic_service(db: AsyncSession = Depends(get_db)) -> TopicService:
    return TopicService(
        db,
        TopicRepository(db),
        CategoryRepository(db),
        PollService(db, PollRepository(db)),
        ReputationRewards(),
    )


def get_reply_service(db: AsyncSession = Depends(get_db)) -> ReplyService:
    return ReplyService(
        db,
        ReplyRepository(db),
        TopicRepository(db),
        ReputationRewards(),
        NotificationDispatcher(),
    )


def get_reputation_service(db: AsyncSession = Depends(get_db)) -> ReputationService:
    return ReputationService(db, ReputationRepository(db))


def get_vote_service(db: AsyncSession = Depends(get_db)) -> VoteService:
    return VoteService(
        db,
        VoteRepository(db),
        ReputationService(db, ReputationRepository(db)),
    )


def get_moderation_service(db: AsyncSession = Depends(get_db)) -> ModerationService:
    return ModerationService(
        db,
        ModerationRepository(db),
        TopicRepository(db),
        CategoryRepository(db),
        ModerationAudit(),
        NotificationDispatcher(),
    )


def get_report_service(db: AsyncSession = Depends(get_db)) -> ReportService:
    return ReportService(db, ReportRepository(db), NotificationDispatcher())


def get_search_service(db: AsyncSession = Depends(get_db)) -> SearchService:
    return SearchService(db, SearchRepository(db))


def get_leaderboard_service(
    db: AsyncSession = Depends(get_db),
    cache: LeaderboardCache = Depends(get_leaderboard_cache),
) -> LeaderboardService:
    return LeaderboardService(db, LeaderboardRepository(db), cache)


def get_badge_service(db: AsyncSession = Depends(get_db)) -> BadgeService:
    return BadgeService(db, BadgeRepository(db), NotificationDispatcher())


def get_notification_service(db: AsyncSession = Depends(get_db)) -> NotificationService:
    return NotificationService(db, NotificationRepository(db))
