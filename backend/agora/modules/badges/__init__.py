"""
Badges Module - Achievement badges.
"""

from agora.modules.badges.service import BadgeService

__all__ = ["BadgeService"]
