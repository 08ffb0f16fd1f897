"""
Badge models.

A badge's `criteria` is a JSON object:
    {"type": "reply_count", "threshold": 50, "timeframe": "30_days"}
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Any

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
from sqlalchemy.orm import Mapped, mapped_column, relationship

from agora.core.database import Base
from agora.core.utils import utcnow


class BadgeType(str, PyEnum):
    """Badge tier."""

    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


class BadgeCategory(str, PyEnum):
    """Badge grouping."""

    ACTIVITY = "activity"
    QUALITY = "quality"
    COMMUNITY = "community"
    SKILL = "skill"
    SPECIAL = "special"


class Badge(Base):
    """Achievement definition."""

    __tablename__ = "badges"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True)
    slug: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text)
    icon: Mapped[str | None] = mapped_column(String(100))
    badge_type: Mapped[BadgeType] = mapped_column(Enum(BadgeType), default=BadgeType.BRONZE)
    category: Mapped[BadgeCategory] = mapped_column(
        Enum(BadgeCategory), default=BadgeCategory.ACTIVITY
    )
    criteria: Mapped[dict[str, Any]] = mapped_column(JSON)
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class UserBadge(Base):
    """Badge earned by a user."""

    __tablename__ = "user_badges"
    __table_args__ = (UniqueConstraint("user_id", "badge_id"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    badge_id: Mapped[int] = mapped_column(
        ForeignKey("badges.id", ondelete="CASCADE"), index=True
    )
    progress: Mapped[int] = mapped_column(Integer, default=0)
    earned_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    badge: Mapped["Badge"] = relationship()


class BadgeProgress(Base):
    """Last evaluated progress toward a badge not yet earned."""

    __tablename__ = "badge_progress"
    __table_args__ = (UniqueConstraint("user_id", "badge_id"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    badge_id: Mapped[int] = mapped_column(
        ForeignKey("badges.id", ondelete="CASCADE"), index=True
    )
    current_value: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )
