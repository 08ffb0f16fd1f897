"""
Notification Repository - Notifications, preferences and DND schedules.
"""

from datetime import timedelta

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from agora.core.utils import utcnow
from agora.models.notification import (
    DndSchedule,
    Notification,
    NotificationPreference,
    NotificationType,
)


class NotificationRepository:
    """Queries over notification tables."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ==================== Notifications ====================

    async def create(self, notification: Notification) -> Notification:
        self.db.add(notification)
        await self.db.flush()
        return notification

    async def find_recent_by_bundle_key(
        self,
        user_id: int,
        bundle_key: str,
        window_minutes: int,
    ) -> Notification | None:
        """Newest unread notification with this key inside the window."""
        since = utcnow() - timedelta(minutes=window_minutes)
        result = await self.db.execute(
            select(Notification)
            .where(
                Notification.user_id == user_id,
                Notification.bundle_key == bundle_key,
                Notification.is_read == False,
                Notification.created_at >= since,
            )
            .order_by(Notification.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get(self, notification_id: int, user_id: int) -> Notification | None:
        result = await self.db.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_for_user(
        self,
        user_id: int,
        unread_only: bool = False,
        notification_type: NotificationType | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Notification], int]:
        conditions = [Notification.user_id == user_id]
        if unread_only:
            conditions.append(Notification.is_read == False)
        if notification_type:
            conditions.append(Notification.type == notification_type)

        result = await self.db.execute(
            select(Notification)
            .where(*conditions)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
            .offset(offset)
        )
        total = await self.db.execute(select(func.count(Notification.id)).where(*conditions))
        return list(result.scalars().all()), int(total.scalar_one())

    async def mark_all_read(self, user_id: int) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read == False)
            .values(is_read=True, read_at=utcnow())
        )
        return result.rowcount or 0

    async def delete(self, notification: Notification) -> None:
        await self.db.delete(notification)
        await self.db.flush()

    async def unread_count(self, user_id: int) -> int:
        result = await self.db.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.is_read == False,
            )
        )
        return int(result.scalar_one())

    # ==================== Preferences ====================

    async def get_preferences(self, user_id: int) -> list[NotificationPreference]:
        result = await self.db.execute(
            select(NotificationPreference)
            .where(NotificationPreference.user_id == user_id)
            .order_by(NotificationPreference.notification_type, NotificationPreference.channel)
        )
        return list(result.scalars().all())

    async def upsert_preference(self, user_id: int, **values) -> NotificationPreference:
        result = await self.db.execute(
            select(NotificationPreference).where(
                NotificationPreference.user_id == user_id,
                NotificationPreference.notification_type == values["notification_type"],
                NotificationPreference.channel == values["channel"],
            )
        )
        preference = result.scalar_one_or_none()
        if preference is None:
            preference = NotificationPreference(user_id=user_id, **values)
            self.db.add(preference)
        else:
            preference.frequency = values["frequency"]
            preference.enabled = values["enabled"]
        await self.db.flush()
        return preference

    # ==================== Do Not Disturb ====================

    async def get_dnd_schedule(self, user_id: int) -> DndSchedule | None:
        result = await self.db.execute(
            select(DndSchedule).where(DndSchedule.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def upsert_dnd_schedule(self, user_id: int, **values) -> DndSchedule:
        schedule = await self.get_dnd_schedule(user_id)
        if schedule is None:
            schedule = DndSchedule(user_id=user_id, **values)
            self.db.add(schedule)
        else:
            for key, value in values.items():
                setattr(schedule, key, value)
        await self.db.flush()
        return schedule
