"""
Replies Module - Threaded replies.

Features:
- Replies nested up to two levels
- Mentions and quotes
- Edit window with history
- Accepted answers on questions
"""

from agora.modules.replies.service import ReplyService

__all__ = ["ReplyService"]
