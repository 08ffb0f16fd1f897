"""
Moderation Service - Topic and user moderation with an audit trail.

Admins may act anywhere. Moderators act only in categories they are
assigned to. Regular users are always refused.
"""

from datetime import datetime, timedelta
from typing import Any, Callable

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from agora.core.background import fire_and_forget
from agora.core.database import session_scope, unit_of_work
from agora.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from agora.core.utils import isoformat, offset_for, pagination_meta, utcnow
from agora.models.forum import Topic, TopicStatus
from agora.models.moderation import ModerationLog
from agora.models.notification import NotificationType
from agora.models.user import User, UserStatus
from agora.modules.categories.repository import CategoryRepository
from agora.modules.moderation.repository import ModerationRepository
from agora.modules.notifications.service import NotificationDispatcher
from agora.modules.topics.repository import TopicRepository

MIN_DELETE_REASON_LENGTH = 10


class ModerationAudit:
    """
    Best-effort writer for the moderation log.

    Entries are written from their own session after the action; a failed
    write is logged and never undoes or fails the action.
    """

    def __init__(self, scope: Callable[[], Any] = session_scope) -> None:
        self._scope = scope

    def record(
        self,
        moderator_id: int,
        action: str,
        target_type: str,
        target_id: int,
        reason: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        entry = ModerationLog(
            moderator_id=moderator_id,
            action=action,
            target_type=target_type,
            target_id=target_id,
            reason=reason,
            details=details or {},
            # Time of the action, not of the delayed write
            created_at=utcnow(),
        )
        return fire_and_forget(self._write(entry), name=f"moderation-log:{action}")

    async def _write(self, entry: ModerationLog) -> None:
        async with self._scope() as session:
            await ModerationRepository(session).add_log(entry)
        logger.info(
            f"Moderation: {entry.action} on {entry.target_type} {entry.target_id} "
            f"by user {entry.moderator_id}"
        )


class ModerationService:
    """
    Service for moderation actions.

    Usage:
        moderation = ModerationService(
            db, ModerationRepository(db), TopicRepository(db), CategoryRepository(db),
            ModerationAudit(), NotificationDispatcher(),
        )
        await moderation.pin_topic(topic_id, moderator, True)
    """

    def __init__(
        self,
        db: AsyncSession,
        moderation: ModerationRepository,
        topics: TopicRepository,
        categories: CategoryRepository,
        audit: ModerationAudit,
        notifier: NotificationDispatcher,
    ) -> None:
        self.db = db
        self.moderation = moderation
        self.topics = topics
        self.categories = categories
        self.audit = audit
        self.notifier = notifier

    # ==================== Permissions ====================

    async def check_moderator_permission(self, user: User, *category_ids: int) -> None:
        """
        Require moderation rights over every given category.

        Raises:
            ForbiddenError: Regular user, or a moderator not assigned to
                one of the categories
        """
        if user.is_admin:
            return
        if not user.is_moderator:
            raise ForbiddenError("Moderator privileges required")
        for category_id in set(category_ids):
            if not await self.categories.get_moderator(category_id, user.id):
                raise ForbiddenError("You are not a moderator of this category")

    async def _topic(self, topic_id: int) -> Topic:
        topic = await self.topics.get(topic_id)
        if not topic:
            raise NotFoundError("Topic not found")
        return topic

    # ==================== Topics ====================

    async def pin_topic(
        self,
        topic_id: int,
        moderator: User,
        is_pinned: bool,
        reason: str | None = None,
    ) -> Topic:
        topic = await self._topic(topic_id)
        await self.check_moderator_permission(moderator, topic.category_id)

        topic.is_pinned = is_pinned
        await self.db.flush()

        self.audit.record(
            moderator.id, "pin" if is_pinned else "unpin", "topic", topic.id, reason
        )
        return topic

    async def lock_topic(
        self,
        topic_id: int,
        moderator: User,
        is_locked: bool,
        reason: str | None = None,
    ) -> Topic:
        topic = await self._topic(topic_id)
        await self.check_moderator_permission(moderator, topic.category_id)

        topic.is_locked = is_locked
        await self.db.flush()

        self.audit.record(
            moderator.id, "lock" if is_locked else "unlock", "topic", topic.id, reason
        )
        return topic

    async def move_topic(
        self,
        topic_id: int,
        moderator: User,
        category_id: int,
        reason: str | None = None,
    ) -> Topic:
        """Move a topic to another category. Needs rights in both."""
        topic = await self._topic(topic_id)
        category = await self.categories.get(category_id)
        if not category or not category.is_active:
            raise NotFoundError("Category not found")
        await self.check_moderator_permission(moderator, topic.category_id, category_id)

        previous_category_id = topic.category_id
        if previous_category_id == category_id:
            return topic

        async with unit_of_work(self.db):
            topic.category_id = category_id
            if topic.in_category_stats:
                await self.topics.update_category_stats(
                    previous_category_id, topics=-1, replies=-topic.reply_count
                )
                await self.topics.update_category_stats(
                    category_id, topics=1, replies=topic.reply_count
                )

        self.audit.record(
            moderator.id,
            "move",
            "topic",
            topic.id,
            reason,
            {"from_category_id": previous_category_id, "to_category_id": category_id},
        )
        return await self._topic(topic.id)

    async def merge_topics(
        self,
        source_id: int,
        target_id: int,
        moderator: User,
        reason: str | None = None,
    ) -> Topic:
        """
        Merge `source_id` into `target_id`.

        Replies move to the target, whose reply count is recounted, and
        the source is archived with no replies left. Category totals
        follow the moved replies and drop the archived source.
        """
        if source_id == target_id:
            raise BadRequestError("Cannot merge a topic into itself")

        source = await self._topic(source_id)
        target = await self._topic(target_id)
        await self.check_moderator_permission(moderator, source.category_id, target.category_id)

        async with unit_of_work(self.db):
            moved = await self.moderation.count_replies(source.id)
            if source.in_category_stats:
                await self.topics.update_category_stats(source.category_id, topics=-1, replies=-moved)
            if target.in_category_stats:
                await self.topics.update_category_stats(target.category_id, replies=moved)
            await self.moderation.move_replies(source.id, target.id)
            target.reply_count = await self.moderation.count_replies(target.id)
            target.last_activity_at = utcnow()
            source.status = TopicStatus.ARCHIVED
            source.reply_count = 0
            source.accepted_reply_id = None

        self.audit.record(
            moderator.id,
            "merge",
            "topic",
            source.id,
            reason,
            {"target_topic_id": target.id},
        )
        logger.info(f"Topic {source.id} merged into {target.id}")
        return target

    async def hard_delete_topic(self, topic_id: int, admin: User, reason: str) -> None:
        """Permanently delete a topic. Admin only, with a written reason."""
        if not admin.is_admin:
            raise ForbiddenError("Only admins can permanently delete topics")
        if not reason or len(reason.strip()) < MIN_DELETE_REASON_LENGTH:
            raise BadRequestError(
                f"Reason must be at least {MIN_DELETE_REASON_LENGTH} characters"
            )

        topic = await self._topic(topic_id)
        details = {"title": topic.title, "category_id": topic.category_id}

        async with unit_of_work(self.db):
            if topic.in_category_stats:
                await self.topics.update_category_stats(
                    topic.category_id, topics=-1, replies=-topic.reply_count
                )
            for tag in topic.tags:
                tag.usage_count = max(tag.usage_count - 1, 0)
            await self.moderation.hard_delete_topic(topic)

        self.audit.record(admin.id, "delete", "topic", topic_id, reason, details)
        logger.warning(f"Topic {topic_id} permanently deleted by admin {admin.id}")

    # ==================== Users ====================

    async def _target_user(self, user_id: int, moderator: User, action: str) -> User:
        """Load the target and apply the escalation rules."""
        if not moderator.is_staff:
            raise ForbiddenError("Moderator privileges required")

        target = await self.db.get(User, user_id)
        if not target:
            raise NotFoundError("User not found")
        if target.is_admin:
            raise ForbiddenError(f"Cannot {action} an admin")
        if target.is_moderator and not moderator.is_admin:
            raise ForbiddenError(f"Moderators cannot {action} other moderators")
        return target

    async def warn_user(self, user_id: int, moderator: User, reason: str) -> User:
        if not reason or not reason.strip():
            raise BadRequestError("Reason is required")
        target = await self._target_user(user_id, moderator, "warn")

        self.audit.record(moderator.id, "warn", "user", target.id, reason)
        self.notifier.send(
            target.id,
            NotificationType.MODERATION,
            "You have received a warning",
            reason,
        )
        return target

    async def suspend_user(
        self,
        user_id: int,
        moderator: User,
        reason: str,
        duration_days: int | None = None,
    ) -> User:
        """
        Suspend an account, indefinitely or for `duration_days`.
        """
        if not reason or not reason.strip():
            raise BadRequestError("Reason is required")
        if duration_days is not None and duration_days < 1:
            raise BadRequestError("Duration must be at least 1 day")
        target = await self._target_user(user_id, moderator, "suspend")

        target.status = UserStatus.SUSPENDED
        target.suspended_until = (
            utcnow() + timedelta(days=duration_days) if duration_days else None
        )
        await self.db.flush()

        self.audit.record(
            moderator.id,
            "suspend",
            "user",
            target.id,
            reason,
            {"duration_days": duration_days, "suspended_until": isoformat(target.suspended_until)},
        )
        until = f" until {target.suspended_until:%Y-%m-%d}" if target.suspended_until else ""
        self.notifier.send(
            target.id,
            NotificationType.ACCOUNT_UPDATE,
            "Your account has been suspended",
            f"Your account is suspended{until}. Reason: {reason}",
        )
        return target

    async def ban_user(self, user_id: int, admin: User, reason: str) -> User:
        """Permanently ban an account. Admin only."""
        if not admin.is_admin:
            raise ForbiddenError("Only admins can ban users")
        if not reason or not reason.strip():
            raise BadRequestError("Reason is required")
        target = await self._target_user(user_id, admin, "ban")

        target.status = UserStatus.BANNED
        target.suspended_until = None
        await self.db.flush()

        self.audit.record(admin.id, "ban", "user", target.id, reason)
        self.notifier.send(
            target.id,
            NotificationType.ACCOUNT_UPDATE,
            "Your account has been banned",
            f"Reason: {reason}",
        )
        return target

    # ==================== Audit log ====================

    async def get_moderation_logs(
        self,
        user: User,
        moderator_id: int | None = None,
        action: str | None = None,
        target_type: str | None = None,
        target_id: int | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> dict[str, Any]:
        if not user.is_staff:
            raise ForbiddenError("Moderator privileges required")

        logs, total = await self.moderation.list_logs(
            moderator_id=moderator_id,
            action=action,
            target_type=target_type,
            target_id=target_id,
            start_date=start_date,
            end_date=end_date,
            limit=limit,
            offset=offset_for(page, limit),
        )
        return {
            "items": [
                {
                    "id": log.id,
                    "moderator_id": log.moderator_id,
                    "action": log.action,
                    "target_type": log.target_type,
                    "target_id": log.target_id,
                    "reason": log.reason,
                    "metadata": log.details or {},
                    "created_at": isoformat(log.created_at),
                }
                for log in logs
            ],
            "pagination": pagination_meta(page, limit, total),
        }

    @staticmethod
    def user_to_dict(user: User) -> dict[str, Any]:
        return {
            "id": user.id,
            "username": user.username,
            "role": user.role.value,
            "status": user.status.value,
            "suspended_until": isoformat(user.suspended_until),
        }
