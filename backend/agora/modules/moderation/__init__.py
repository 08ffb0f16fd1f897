"""
Moderation Module - Moderator tools.

Features:
- Pin, lock, move, merge and delete topics
- Warn, suspend and ban users
- Audit log
"""

from agora.modules.moderation.service import ModerationAudit, ModerationService

__all__ = [
    "ModerationService",
    "ModerationAudit",
]
