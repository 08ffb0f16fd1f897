"""
Badge Service - Badge criteria evaluation, awarding and progress.
"""

from datetime import date, datetime, timedelta
from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from agora.core.exceptions import NotFoundError
from agora.core.utils import isoformat, percentage, utcnow
from agora.models.badge import Badge, BadgeCategory
from agora.models.notification import NotificationType
from agora.models.user import User
from agora.modules.badges.repository import BadgeRepository
from agora.modules.notifications.service import NotificationDispatcher

TIMEFRAME_DAYS = {"30_days": 30, "7_days": 7}


def activity_streak(days: set[date], today: date) -> int:
    """
    Consecutive active days ending today or yesterday.

    A streak whose last active day is before yesterday is broken.
    """
    if not days:
        return 0
    latest = max(days)
    if (today - latest).days > 1:
        return 0

    streak = 0
    current = latest
    while current in days:
        streak += 1
        current -= timedelta(days=1)
    return streak


class BadgeService:
    """
    Service for badges.

    Usage:
        badges = BadgeService(db, BadgeRepository(db), NotificationDispatcher())
        awarded = await badges.check_and_award_badges(user_id)
    """

    def __init__(
        self,
        db: AsyncSession,
        badges: BadgeRepository,
        notifier: NotificationDispatcher,
    ) -> None:
        self.db = db
        self.badges = badges
        self.notifier = notifier

    # ==================== Read ====================

    async def list_badges(self, category: BadgeCategory | None = None) -> list[Badge]:
        return await self.badges.list_badges(category)

    async def get_badge(self, badge_id: int) -> Badge:
        badge = await self.badges.get(badge_id)
        if not badge:
            raise NotFoundError("Badge not found")
        return badge

    async def get_user_badges(self, user_id: int) -> list[dict[str, Any]]:
        await self._require_user(user_id)
        return [
            {
                **self.to_dict(user_badge.badge),
                "earned_at": isoformat(user_badge.earned_at),
                "progress": user_badge.progress,
            }
            for user_badge in await self.badges.user_badges(user_id)
        ]

    async def get_badge_progress(self, user_id: int) -> list[dict[str, Any]]:
        """Every active badge with the user's stored progress toward it."""
        await self._require_user(user_id)
        earned = {ub.badge_id: ub for ub in await self.badges.user_badges(user_id)}
        progress = await self.badges.progress_by_badge(user_id)

        items = []
        for badge in await self.badges.list_badges():
            threshold = int(badge.criteria.get("threshold", 0))
            user_badge = earned.get(badge.id)
            current = user_badge.progress if user_badge else progress.get(badge.id, 0)
            items.append({
                **self.to_dict(badge),
                "current_progress": current,
                "threshold": threshold,
                "percentage": 100 if user_badge else percentage(current, threshold),
                "is_earned": user_badge is not None,
                "earned_at": isoformat(user_badge.earned_at) if user_badge else None,
            })
        return items

    async def get_badge_holders(self, badge_id: int, limit: int = 50) -> dict[str, Any]:
        badge = await self.get_badge(badge_id)
        return {
            "badge": self.to_dict(badge),
            "total": await self.badges.holder_count(badge_id),
            "holders": [
                {
                    "user_id": user.id,
                    "username": user.username,
                    "avatar_url": user.avatar_url,
                    "earned_at": isoformat(user_badge.earned_at),
                }
                for user_badge, user in await self.badges.holders(badge_id, limit)
            ],
        }

    # ==================== Evaluation ====================

    async def evaluate_badge_criteria(self, user_id: int, badge_id: int) -> dict[str, Any]:
        """
        Measure a user against a badge's criteria.

        Returns:
            badge_id, current_progress, threshold, percentage (0..100)
            and is_earned
        """
        badge = await self.get_badge(badge_id)
        return await self._evaluate(user_id, badge)

    async def _evaluate(self, user_id: int, badge: Badge) -> dict[str, Any]:
        criteria = badge.criteria or {}
        threshold = int(criteria.get("threshold", 0))
        current = await self._measure(user_id, criteria)
        return {
            "badge_id": badge.id,
            "current_progress": current,
            "threshold": threshold,
            "percentage": percentage(current, threshold) if threshold else 100,
            "is_earned": current >= threshold,
        }

    async def _measure(self, user_id: int, criteria: dict[str, Any]) -> int:
        days = TIMEFRAME_DAYS.get(criteria.get("timeframe") or "all_time")
        since: datetime | None = utcnow() - timedelta(days=days) if days else None
        criteria_type = criteria.get("type")

        if criteria_type == "reply_count":
            return await self.badges.count_replies(user_id, since)
        if criteria_type == "topic_count":
            return await self.badges.count_topics(user_id, since)
        if criteria_type == "upvote_count":
            return await self.badges.count_upvotes_received(user_id, since)
        if criteria_type == "reputation":
            return await self.badges.reputation_total(user_id)
        if criteria_type in ("best_answer_count", "accepted_answer_count"):
            return await self.badges.count_accepted_answers(user_id, since)
        if criteria_type == "streak_days":
            return activity_streak(await self.badges.activity_dates(user_id), utcnow().date())
        if criteria_type == "vote_count":
            return await self.badges.count_votes_cast(user_id, since)

        logger.warning(f"Unknown badge criteria type: {criteria_type}")
        return 0

    async def check_and_award_badges(self, user_id: int) -> list[int]:
        """
        Evaluate every badge the user has not earned yet, store progress
        and award the ones whose criteria are met.

        Returns:
            IDs of newly awarded badges
        """
        await self._require_user(user_id)
        earned = await self.badges.earned_badge_ids(user_id)
        awarded = []

        for badge in await self.badges.list_badges():
            if badge.id in earned:
                continue

            evaluation = await self._evaluate(user_id, badge)
            await self.badges.save_progress(user_id, badge.id, evaluation["current_progress"])

            if evaluation["is_earned"]:
                await self.badges.award(user_id, badge.id, evaluation["current_progress"])
                awarded.append(badge.id)
                self.notifier.send(
                    user_id,
                    NotificationType.BADGE,
                    "Badge Earned!",
                    f"You earned the \"{badge.name}\" badge",
                    action_url=f"/badges/{badge.slug}",
                    reference_id=badge.id,
                )
                logger.info(f"Badge '{badge.slug}' awarded to user {user_id}")

        return awarded

    # ==================== Helpers ====================

    async def _require_user(self, user_id: int) -> None:
        if await self.db.get(User, user_id) is None:
            raise NotFoundError("User not found")

    @staticmethod
    def to_dict(badge: Badge) -> dict[str, Any]:
        return {
            "id": badge.id,
            "name": badge.name,
            "slug": badge.slug,
            "description": badge.description,
            "icon": badge.icon,
            "badge_type": badge.badge_type.value,
            "category": badge.category.value,
            "criteria": badge.criteria,
        }
