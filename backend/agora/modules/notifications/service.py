"""
Notification Service - Bundling, Do Not Disturb and channel preferences.
"""

import re
from datetime import datetime, timezone
from typing import Any, Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from agora.core.background import fire_and_forget
from agora.core.database import session_scope
from agora.core.exceptions import BadRequestError, NotFoundError
from agora.core.utils import isoformat, offset_for, pagination_meta, utcnow
from agora.models.notification import (
    DeliveryChannel,
    DndSchedule,
    Notification,
    NotificationFrequency,
    NotificationType,
)
from agora.modules.notifications.repository import NotificationRepository

BUNDLE_WINDOW_MINUTES = 60

# Two-digit 24h clock, "00:00" to "23:59"
TIME_PATTERN = re.compile(r"([01]\d|2[0-3]):[0-5]\d")

BUNDLEABLE_TYPES = frozenset({
    NotificationType.TOPIC_REPLY,
    NotificationType.COMMENT_REPLY,
    NotificationType.UPVOTE,
    NotificationType.NEW_FOLLOWER,
    NotificationType.PROFILE_VIEW,
})

# Delivered even during Do Not Disturb
CRITICAL_TYPES = frozenset({
    NotificationType.SYSTEM_ANNOUNCEMENT,
    NotificationType.ACCOUNT_UPDATE,
})


def bundle_key(notification_type: NotificationType, reference_id: int | None = None) -> str:
    if reference_id is not None:
        return f"{notification_type.value}:{reference_id}"
    return notification_type.value


def time_to_minutes(value: str) -> int:
    """'HH:MM' to minutes since midnight."""
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def is_time_in_range(current: str, start: str, end: str) -> bool:
    """Inclusive check; windows whose end is before their start cross midnight."""
    now, begin, finish = time_to_minutes(current), time_to_minutes(start), time_to_minutes(end)
    if begin <= finish:
        return begin <= now <= finish
    return now >= begin or now <= finish


def is_in_dnd_window(schedule: DndSchedule | None, now: datetime) -> bool:
    """
    Whether `now` (an aware datetime) falls inside the schedule, evaluated
    in the schedule's own timezone.
    """
    if not schedule or not schedule.enabled:
        return False

    try:
        local = now.astimezone(ZoneInfo(schedule.timezone or "UTC"))
    except ZoneInfoNotFoundError:
        logger.warning(f"Unknown DND timezone {schedule.timezone!r}, using UTC")
        local = now.astimezone(timezone.utc)

    # Python counts Monday as 0; schedules count Sunday as 0
    day = (local.weekday() + 1) % 7
    if schedule.days and day not in schedule.days:
        return False

    return is_time_in_range(local.strftime("%H:%M"), schedule.start_time, schedule.end_time)


class NotificationService:
    """
    Service for user notifications.

    Usage:
        notifications = NotificationService(db, NotificationRepository(db))
        await notifications.create_notification(
            user_id, NotificationType.MENTION, "You were mentioned", "..."
        )
    """

    def __init__(self, db: AsyncSession, notifications: NotificationRepository) -> None:
        self.db = db
        self.notifications = notifications

    # ==================== Create ====================

    async def create_notification(
        self,
        user_id: int,
        notification_type: NotificationType,
        title: str,
        message: str,
        action_url: str | None = None,
        reference_id: int | None = None,
        delivery_channels: list[DeliveryChannel] | None = None,
        now: datetime | None = None,
    ) -> Notification | None:
        """
        Create a notification, or fold it into a recent one with the same
        bundle key.

        Returns:
            The stored notification, or None when Do Not Disturb or the
            user's preferences suppress it
        """
        now = now or datetime.now(timezone.utc)

        if notification_type not in CRITICAL_TYPES and await self.is_user_in_dnd_mode(user_id, now):
            logger.info(f"Skipping notification for user {user_id} - in DND mode")
            return None

        requested = delivery_channels or [DeliveryChannel.IN_APP]
        allowed = await self.should_deliver(user_id, notification_type, requested)
        if not any(allowed.values()):
            logger.info(f"Skipping notification for user {user_id} - all channels disabled")
            return None

        channels = [channel for channel in requested if allowed[channel.value]]
        key = bundle_key(notification_type, reference_id)

        if notification_type in BUNDLEABLE_TYPES:
            existing = await self.notifications.find_recent_by_bundle_key(
                user_id, key, BUNDLE_WINDOW_MINUTES
            )
            if existing:
                existing.bundle_count += 1
                await self.db.flush()
                logger.info(
                    f"Bundled notification for user {user_id}, type {notification_type.value}, "
                    f"count: {existing.bundle_count}"
                )
                self._deliver(existing)
                return existing

        notification = await self.notifications.create(
            Notification(
                user_id=user_id,
                type=notification_type,
                title=title,
                message=message,
                action_url=action_url,
                reference_id=reference_id,
                bundle_key=key,
                delivery_channels=[c.value for c in channels] or [DeliveryChannel.IN_APP.value],
            )
        )
        logger.info(f"Created notification {notification.id} for user {user_id}")
        self._deliver(notification)
        return notification

    async def should_deliver(
        self,
        user_id: int,
        notification_type: NotificationType,
        channels: list[DeliveryChannel],
    ) -> dict[str, bool]:
        """
        Channel switches after applying preferences. In-app is on unless
        turned off; email and push are on for requested channels without a
        preference row; email also needs a frequency other than off.
        """
        preferences = {
            pref.channel: pref
            for pref in await self.notifications.get_preferences(user_id)
            if pref.notification_type == notification_type
        }
        result = {"in_app": True, "email": False, "push": False}

        for channel in channels:
            pref = preferences.get(channel)
            if channel == DeliveryChannel.IN_APP:
                result["in_app"] = pref.enabled if pref else True
            elif channel == DeliveryChannel.EMAIL:
                result["email"] = (
                    pref.enabled and pref.frequency != NotificationFrequency.OFF if pref else True
                )
            elif channel == DeliveryChannel.PUSH:
                result["push"] = pref.enabled if pref else True
        return result

    def _deliver(self, notification: Notification) -> None:
        """Hand email and push copies to their transports."""
        channels = notification.delivery_channels or [DeliveryChannel.IN_APP.value]
        if DeliveryChannel.EMAIL.value in channels:
            logger.info(f"Enqueuing email delivery for notification {notification.id}")
        if DeliveryChannel.PUSH.value in channels:
            logger.info(f"Enqueuing push delivery for notification {notification.id}")

    # ==================== Inbox ====================

    async def list_notifications(
        self,
        user_id: int,
        unread_only: bool = False,
        notification_type: NotificationType | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict[str, Any]:
        items, total = await self.notifications.list_for_user(
            user_id,
            unread_only=unread_only,
            notification_type=notification_type,
            limit=limit,
            offset=offset_for(page, limit),
        )
        return {
            "items": [self.to_dict(n) for n in items],
            "pagination": pagination_meta(page, limit, total),
        }

    async def mark_as_read(self, notification_id: int, user_id: int) -> Notification:
        notification = await self.notifications.get(notification_id, user_id)
        if not notification:
            raise NotFoundError("Notification not found")
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utcnow()
            await self.db.flush()
        return notification

    async def mark_all_as_read(self, user_id: int) -> int:
        count = await self.notifications.mark_all_read(user_id)
        logger.info(f"Marked {count} notifications as read for user {user_id}")
        return count

    async def delete_notification(self, notification_id: int, user_id: int) -> None:
        notification = await self.notifications.get(notification_id, user_id)
        if not notification:
            raise NotFoundError("Notification not found")
        await self.notifications.delete(notification)

    async def get_unread_count(self, user_id: int) -> int:
        return await self.notifications.unread_count(user_id)

    # ==================== Preferences ====================

    async def get_preferences(self, user_id: int) -> list[dict[str, Any]]:
        return [
            {
                "notification_type": pref.notification_type.value,
                "channel": pref.channel.value,
                "frequency": pref.frequency.value,
                "enabled": pref.enabled,
            }
            for pref in await self.notifications.get_preferences(user_id)
        ]

    async def update_preferences(
        self,
        user_id: int,
        preferences: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        """
        Upsert preferences.

        Args:
            preferences: [{"notification_type", "channel", "frequency", "enabled"}, ...]
        """
        for pref in preferences:
            await self.notifications.upsert_preference(
                user_id,
                notification_type=NotificationType(pref["notification_type"]),
                channel=DeliveryChannel(pref["channel"]),
                frequency=NotificationFrequency(pref.get("frequency", NotificationFrequency.IMMEDIATE)),
                enabled=pref.get("enabled", True),
            )
        logger.info(f"Updated {len(preferences)} notification preferences for user {user_id}")
        return await self.get_preferences(user_id)

    # ==================== Do Not Disturb ====================

    async def get_dnd_schedule(self, user_id: int) -> dict[str, Any] | None:
        schedule = await self.notifications.get_dnd_schedule(user_id)
        return self._schedule_to_dict(schedule) if schedule else None

    async def update_dnd_schedule(
        self,
        user_id: int,
        start_time: str,
        end_time: str,
        days: list[int] | None = None,
        timezone_name: str = "UTC",
        enabled: bool = True,
    ) -> dict[str, Any]:
        for value in (start_time, end_time):
            if not TIME_PATTERN.fullmatch(value):
                raise BadRequestError(f"Invalid time {value!r}, expected HH:MM")
        if any(day < 0 or day > 6 for day in days or []):
            raise BadRequestError("Days must be between 0 (Sunday) and 6 (Saturday)")
        try:
            ZoneInfo(timezone_name)
        except (ZoneInfoNotFoundError, ValueError):
            raise BadRequestError(f"Unknown timezone {timezone_name!r}")

        schedule = await self.notifications.upsert_dnd_schedule(
            user_id,
            start_time=start_time,
            end_time=end_time,
            days=sorted(set(days or [])),
            timezone=timezone_name,
            enabled=enabled,
        )
        logger.info(f"Updated DND schedule for user {user_id}")
        return self._schedule_to_dict(schedule)

    async def is_user_in_dnd_mode(self, user_id: int, now: datetime | None = None) -> bool:
        schedule = await self.notifications.get_dnd_schedule(user_id)
        return is_in_dnd_window(schedule, now or datetime.now(timezone.utc))

    # ==================== Serialization ====================

    @staticmethod
    def to_dict(notification: Notification) -> dict[str, Any]:
        return {
            "id": notification.id,
            "type": notification.type.value,
            "title": notification.title,
            "message": notification.message,
            "action_url": notification.action_url,
            "reference_id": notification.reference_id,
            "bundle_count": notification.bundle_count,
            "delivery_channels": notification.delivery_channels,
            "is_read": notification.is_read,
            "read_at": isoformat(notification.read_at),
            "created_at": isoformat(notification.created_at),
        }

    @staticmethod
    def _schedule_to_dict(schedule: DndSchedule) -> dict[str, Any]:
        return {
            "start_time": schedule.start_time,
            "end_time": schedule.end_time,
            "days": schedule.days,
            "timezone": schedule.timezone,
            "enabled": schedule.enabled,
        }


class NotificationDispatcher:
    """
    Send notifications in the background.

    Each send runs in its own session; a failure is logged and does not
    reach the action that triggered it.

    Usage:
        notifier = NotificationDispatcher()
        notifier.send(user_id, NotificationType.MENTION, "Mentioned", "...")
    """

    def __init__(self, scope: Callable[[], Any] = session_scope) -> None:
        self._scope = scope

    def send(
        self,
        user_id: int,
        notification_type: NotificationType,
        title: str,
        message: str,
        action_url: str | None = None,
        reference_id: int | None = None,
    ):
        return fire_and_forget(
            self._create(user_id, notification_type, title, message, action_url, reference_id),
            name=f"notification:{notification_type.value}",
        )

    async def _create(
        self,
        user_id: int,
        notification_type: NotificationType,
        title: str,
        message: str,
        action_url: str | None,
        reference_id: int | None,
    ) -> None:
        async with self._scope() as session:
            service = NotificationService(session, NotificationRepository(session))
            await service.create_notification(
                user_id,
                notification_type,
                title,
                message,
                action_url=action_url,
                reference_id=reference_id,
            )
