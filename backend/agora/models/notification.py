"""
Notification models: notifications, per-channel preferences and
Do Not Disturb schedules.
"""

from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from agora.core.database import Base
from agora.core.utils import utcnow


class NotificationType(str, PyEnum):
    """Event that produced a notification."""

    TOPIC_REPLY = "topic_reply"
    COMMENT_REPLY = "comment_reply"
    MENTION = "mention"
    UPVOTE = "upvote"
    ACCEPTED_ANSWER = "accepted_answer"
    BADGE = "badge"
    NEW_FOLLOWER = "new_follower"
    PROFILE_VIEW = "profile_view"
    REPORT_RESOLVED = "report_resolved"
    MODERATION = "moderation"
    SYSTEM_ANNOUNCEMENT = "system_announcement"
    ACCOUNT_UPDATE = "account_update"


class DeliveryChannel(str, PyEnum):
    """Where a notification is delivered."""

    IN_APP = "in_app"
    EMAIL = "email"
    PUSH = "push"


class NotificationFrequency(str, PyEnum):
    """How often a channel delivers."""

    IMMEDIATE = "immediate"
    DAILY = "daily"
    WEEKLY = "weekly"
    OFF = "off"


class Notification(Base):
    """In-app notification, possibly standing for a bundle of events."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    type: Mapped[NotificationType] = mapped_column(Enum(NotificationType))
    title: Mapped[str] = mapped_column(String(255))
    message: Mapped[str] = mapped_column(Text)
    action_url: Mapped[str | None] = mapped_column(String(500))
    reference_id: Mapped[int | None] = mapped_column(Integer)

    bundle_key: Mapped[str] = mapped_column(String(100), index=True)
    bundle_count: Mapped[int] = mapped_column(Integer, default=1)
    delivery_channels: Mapped[list[str]] = mapped_column(JSON, default=list)

    is_read: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    read_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )


class NotificationPreference(Base):
    """User choice for one notification type on one channel."""

    __tablename__ = "notification_preferences"
    __table_args__ = (UniqueConstraint("user_id", "notification_type", "channel"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    notification_type: Mapped[NotificationType] = mapped_column(Enum(NotificationType))
    channel: Mapped[DeliveryChannel] = mapped_column(Enum(DeliveryChannel))
    frequency: Mapped[NotificationFrequency] = mapped_column(
        Enum(NotificationFrequency), default=NotificationFrequency.IMMEDIATE
    )
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)


class DndSchedule(Base):
    """Do Not Disturb window. Days use 0 for Sunday through 6 for Saturday."""

    __tablename__ = "dnd_schedules"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), unique=True
    )
    start_time: Mapped[str] = mapped_column(String(5))  # HH:MM
    end_time: Mapped[str] = mapped_column(String(5))
    days: Mapped[list[int]] = mapped_column(JSON, default=list)
    timezone: Mapped[str] = mapped_column(String(64), default="UTC")
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )
