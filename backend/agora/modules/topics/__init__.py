"""
Topics Module - Forum topics.

Features:
- Topics with tags, attachments and drafts
- Unique slugs
- Keyword spam scoring
- Link previews
"""

from agora.modules.topics.service import TopicService

__all__ = ["TopicService"]
