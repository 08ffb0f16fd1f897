"""
Forum models for community discussions.

Includes:
- Categories (two-level tree) and their moderators
- Topics with tags and attachments
- Threaded replies and their edit history
- Spam keywords used to flag new topics
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import TYPE_CHECKING

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from agora.core.database import Base
from agora.core.utils import utcnow

if TYPE_CHECKING:
    from agora.models.user import User

# Content at or below this score is treated as hidden on read
AUTO_HIDE_THRESHOLD = -5


class CategoryVisibility(str, PyEnum):
    """Who may see a category."""

    PUBLIC = "public"
    PRIVATE = "private"
    MODERATOR_ONLY = "moderator_only"


class TopicType(str, PyEnum):
    """Kind of topic."""

    DISCUSSION = "discussion"
    QUESTION = "question"
    SHOWCASE = "showcase"
    TUTORIAL = "tutorial"
    ANNOUNCEMENT = "announcement"
    PAPER = "paper"


class TopicStatus(str, PyEnum):
    """Topic lifecycle state."""

    OPEN = "open"
    CLOSED = "closed"
    RESOLVED = "resolved"
    ARCHIVED = "archived"


class ForumCategory(Base):
    """Forum category. Level 1 is a section, level 2 a sub-section."""

    __tablename__ = "forum_categories"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100))
    slug: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text)
    icon: Mapped[str | None] = mapped_column(String(50))
    color: Mapped[str | None] = mapped_column(String(20))

    parent_id: Mapped[int | None] = mapped_column(ForeignKey("forum_categories.id"))
    level: Mapped[int] = mapped_column(Integer, default=1)
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    visibility: Mapped[CategoryVisibility] = mapped_column(
        Enum(CategoryVisibility), default=CategoryVisibility.PUBLIC
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Stats (denormalized)
    topic_count: Mapped[int] = mapped_column(Integer, default=0)
    reply_count: Mapped[int] = mapped_column(Integer, default=0)
    last_activity_at: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<ForumCategory {self.name}>"


class CategoryModerator(Base):
    """User granted moderation rights in one category."""

    __tablename__ = "category_moderators"
    __table_args__ = (UniqueConstraint("category_id", "user_id"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("forum_categories.id", ondelete="CASCADE"), index=True
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    assigned_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


topic_tags = Table(
    "topic_tags",
    Base.metadata,
    Column("topic_id", ForeignKey("topics.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class Tag(Base):
    """Free-form topic label."""

    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), unique=True)
    slug: Mapped[str] = mapped_column(String(60), unique=True, index=True)
    usage_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class Topic(Base):
    """Forum topic/thread."""

    __tablename__ = "topics"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    category_id: Mapped[int] = mapped_column(ForeignKey("forum_categories.id"), index=True)
    author_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)

    title: Mapped[str] = mapped_column(String(255))
    slug: Mapped[str] = mapped_column(String(300), unique=True, index=True)
    content: Mapped[str] = mapped_column(Text)
    type: Mapped[TopicType] = mapped_column(
        Enum(TopicType), default=TopicType.DISCUSSION
    )
    status: Mapped[TopicStatus] = mapped_column(
        Enum(TopicStatus), default=TopicStatus.OPEN
    )

    # Flags
    is_draft: Mapped[bool] = mapped_column(Boolean, default=False)
    is_pinned: Mapped[bool] = mapped_column(Boolean, default=False)
    is_locked: Mapped[bool] = mapped_column(Boolean, default=False)
    is_flagged: Mapped[bool] = mapped_column(Boolean, default=False)

    # Stats, vote counters are recounted from the vote table
    view_count: Mapped[int] = mapped_column(Integer, default=0)
    reply_count: Mapped[int] = mapped_column(Integer, default=0)
    vote_score: Mapped[int] = mapped_column(Integer, default=0)
    upvote_count: Mapped[int] = mapped_column(Integer, default=0)
    downvote_count: Mapped[int] = mapped_column(Integer, default=0)

    accepted_reply_id: Mapped[int | None] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )
    last_activity_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    # Relationships
    author: Mapped["User"] = relationship()
    category: Mapped["ForumCategory"] = relationship()
    tags: Mapped[list["Tag"]] = relationship(secondary=topic_tags)
    attachments: Mapped[list["TopicAttachment"]] = relationship(
        order_by="TopicAttachment.display_order",
        cascade="all, delete-orphan",
    )

    @property
    def in_category_stats(self) -> bool:
        """Published topics that are not archived count towards their category."""
        return not self.is_draft and self.status != TopicStatus.ARCHIVED

    @property
    def is_hidden(self) -> bool:
        return self.vote_score <= AUTO_HIDE_THRESHOLD

    def __repr__(self) -> str:
        return f"<Topic {self.title[:30]}>"


class TopicAttachment(Base):
    """File attached to a topic."""

    __tablename__ = "topic_attachments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    topic_id: Mapped[int] = mapped_column(
        ForeignKey("topics.id", ondelete="CASCADE"), index=True
    )
    file_name: Mapped[str] = mapped_column(String(255))
    file_url: Mapped[str] = mapped_column(String(1000))
    mime_type: Mapped[str | None] = mapped_column(String(100))
    file_size: Mapped[int | None] = mapped_column(Integer)
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class Reply(Base):
    """Threaded reply. Root replies have depth 0, the deepest allowed is 2."""

    __tablename__ = "replies"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    topic_id: Mapped[int] = mapped_column(
        ForeignKey("topics.id", ondelete="CASCADE"), index=True
    )
    author_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    parent_reply_id: Mapped[int | None] = mapped_column(ForeignKey("replies.id"))
    quoted_reply_id: Mapped[int | None] = mapped_column(ForeignKey("replies.id"))

    content: Mapped[str] = mapped_column(Text)
    depth: Mapped[int] = mapped_column(Integer, default=0)
    mentions: Mapped[list[str]] = mapped_column(JSON, default=list)

    is_accepted: Mapped[bool] = mapped_column(Boolean, default=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)

    vote_score: Mapped[int] = mapped_column(Integer, default=0)
    upvote_count: Mapped[int] = mapped_column(Integer, default=0)
    downvote_count: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    edited_at: Mapped[datetime | None] = mapped_column(DateTime)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime)

    author: Mapped["User"] = relationship()

    @property
    def is_hidden(self) -> bool:
        return self.vote_score <= AUTO_HIDE_THRESHOLD

    def __repr__(self) -> str:
        return f"<Reply {self.id} in topic {self.topic_id}>"


class ReplyEditHistory(Base):
    """Content of a reply before one edit. Append-only."""

    __tablename__ = "reply_edit_history"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    reply_id: Mapped[int] = mapped_column(
        ForeignKey("replies.id", ondelete="CASCADE"), index=True
    )
    previous_content: Mapped[str] = mapped_column(Text)
    edited_by: Mapped[int] = mapped_column(ForeignKey("users.id"))
    edit_reason: Mapped[str | None] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class SpamKeyword(Base):
    """Keyword whose presence adds `severity` to a topic's spam score."""

    __tablename__ = "spam_keywords"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    keyword: Mapped[str] = mapped_column(String(100), unique=True)
    severity: Mapped[int] = mapped_column(Integer, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
