"""
Moderation models: audit log and user reports.
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Any

from sqlalchemy import (
    JSON,
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


class ModerationLog(Base):
    """Write-once audit entry for a moderation action."""

    __tablename__ = "moderation_logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    moderator_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    action: Mapped[str] = mapped_column(String(50), index=True)
    target_type: Mapped[str] = mapped_column(String(20))
    target_id: Mapped[int] = mapped_column(Integer, index=True)
    reason: Mapped[str | None] = mapped_column(Text)
    # "metadata" is reserved on declarative classes
    details: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)


class ReportableType(str, PyEnum):
    """Content that can be reported."""

    TOPIC = "topic"
    REPLY = "reply"


class ReportReason(str, PyEnum):
    """Why content was reported."""

    SPAM = "spam"
    HARASSMENT = "harassment"
    OFF_TOPIC = "off_topic"
    MISINFORMATION = "misinformation"
    COPYRIGHT = "copyright"
    INAPPROPRIATE = "inappropriate"
    OTHER = "other"


class ReportStatus(str, PyEnum):
    """Report workflow state."""

    PENDING = "pending"
    REVIEWING = "reviewing"
    RESOLVED_VIOLATION = "resolved_violation"
    RESOLVED_NO_ACTION = "resolved_no_action"
    DISMISSED = "dismissed"


OPEN_REPORT_STATUSES = (ReportStatus.PENDING, ReportStatus.REVIEWING)


class Report(Base):
    """User report on a topic or reply."""

    __tablename__ = "reports"
    __table_args__ = (
        UniqueConstraint("reporter_id", "reportable_type", "reportable_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    reporter_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    reportable_type: Mapped[ReportableType] = mapped_column(Enum(ReportableType))
    reportable_id: Mapped[int] = mapped_column(Integer, index=True)
    reason: Mapped[ReportReason] = mapped_column(Enum(ReportReason))
    description: Mapped[str | None] = mapped_column(Text)
    status: Mapped[ReportStatus] = mapped_column(
        Enum(ReportStatus), default=ReportStatus.PENDING, index=True
    )
    resolved_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime)
    resolution_note: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
