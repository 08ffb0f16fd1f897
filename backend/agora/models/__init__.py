"""
Database models.

Importing this package registers every mapper on `Base.metadata`.
"""

from agora.models.badge import Badge, BadgeCategory, BadgeProgress, BadgeType, UserBadge
from agora.models.forum import (
    AUTO_HIDE_THRESHOLD,
    CategoryModerator,
    CategoryVisibility,
    ForumCategory,
    Reply,
    ReplyEditHistory,
    SpamKeyword,
    Tag,
    Topic,
    TopicAttachment,
    TopicStatus,
    TopicType,
    topic_tags,
)
from agora.models.leaderboard import LeaderboardEntry
from agora.models.moderation import (
    ModerationLog,
    Report,
    ReportableType,
    ReportReason,
    ReportStatus,
)
from agora.models.notification import (
    DeliveryChannel,
    DndSchedule,
    Notification,
    NotificationFrequency,
    NotificationPreference,
    NotificationType,
)
from agora.models.poll import Poll, PollOption, PollType, PollVote
from agora.models.search import SavedSearch, SearchHistory
from agora.models.user import User, UserRole, UserStatus
from agora.models.vote import ReplyVote, ReputationHistory, TopicVote

__all__ = [
    "AUTO_HIDE_THRESHOLD",
    "Badge",
    "BadgeCategory",
    "BadgeProgress",
    "BadgeType",
    "CategoryModerator",
    "CategoryVisibility",
    "DeliveryChannel",
    "DndSchedule",
    "ForumCategory",
    "LeaderboardEntry",
    "ModerationLog",
    "Notification",
    "NotificationFrequency",
    "NotificationPreference",
    "NotificationType",
    "Poll",
    "PollOption",
    "PollType",
    "PollVote",
    "Reply",
    "ReplyEditHistory",
    "ReplyVote",
    "Report",
    "ReportReason",
    "ReportStatus",
    "ReportableType",
    "ReputationHistory",
    "SavedSearch",
    "SearchHistory",
    "SpamKeyword",
    "Tag",
    "Topic",
    "TopicAttachment",
    "TopicStatus",
    "TopicType",
    "TopicVote",
    "User",
    "UserBadge",
    "UserRole",
    "UserStatus",
    "topic_tags",
]
