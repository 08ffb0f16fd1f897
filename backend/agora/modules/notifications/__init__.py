"""
Notifications Module - In-app notifications.

Features:
- Bundling of repeated events
- Per-type channel preferences
- Do Not Disturb schedules
"""

from agora.modules.notifications.service import NotificationDispatcher, NotificationService

__all__ = [
    "NotificationService",
    "NotificationDispatcher",
]
