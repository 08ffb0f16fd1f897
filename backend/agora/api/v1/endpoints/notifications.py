"""
Notification API Endpoints.

Inbox, channel preferences and Do Not Disturb.
"""

from typing import Any

from fastapi import APIRouter, Depends, Query

from agora.api.deps import RequestSchema, get_current_user, get_notification_service, ok
from agora.models.notification import DeliveryChannel, NotificationFrequency, NotificationType
from agora.models.user import User
from agora.modules.notifications.service import NotificationService

router = APIRouter()


# ==================== Schemas ====================


class PreferenceInput(RequestSchema):
    notification_type: NotificationType
    channel: DeliveryChannel
    frequency: NotificationFrequency = NotificationFrequency.IMMEDIATE
    enabled: bool = True


class UpdatePreferencesRequest(RequestSchema):
    preferences: list[PreferenceInput]


class DndScheduleRequest(RequestSchema):
    """Quiet hours, "HH:MM" in the given timezone. Days: 0=Sunday."""

    start_time: str
    end_time: str
    days: list[int] = []
    timezone: str = "UTC"
    enabled: bool = True


# ==================== Inbox ====================


@router.get("")
async def get_notifications(
    unread_only: bool = Query(False),
    type: NotificationType | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
) -> dict[str, Any]:
    return ok(await notifications.list_notifications(user.id, unread_only, type, page, limit))


@router.get("/unread-count")
async def get_unread_count(
    user: User = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
) -> dict[str, Any]:
    return ok({"count": await notifications.get_unread_count(user.id)})


@router.put("/read-all")
async def mark_all_as_read(
    user: User = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
) -> dict[str, Any]:
    return ok({"updated": await notifications.mark_all_as_read(user.id)})


@router.put("/{notification_id}/read")
async def mark_as_read(
    notification_id: int,
    user: User = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
) -> dict[str, Any]:
    notification = await notifications.mark_as_read(notification_id, user.id)
    return ok(notifications.to_dict(notification))


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: int,
    user: User = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
) -> dict[str, Any]:
    await notifications.delete_notification(notification_id, user.id)
    return ok({"message": "Notification deleted"})


# ==================== Preferences ====================


@router.get("/preferences")
async def get_preferences(
    user: User = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
) -> dict[str, Any]:
    return ok(await notifications.get_preferences(user.id))


@router.put("/preferences")
async def update_preferences(
    request: UpdatePreferencesRequest,
    user: User = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
) -> dict[str, Any]:
    return ok(
        await notifications.update_preferences(
            user.id, [p.model_dump() for p in request.preferences]
        )
    )


# ==================== Do Not Disturb ====================


@router.get("/dnd")
async def get_dnd_schedule(
    user: User = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
) -> dict[str, Any]:
    return ok(await notifications.get_dnd_schedule(user.id))


@router.put("/dnd")
async def update_dnd_schedule(
    request: DndScheduleRequest,
    user: User = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
) -> dict[str, Any]:
    return ok(
        await notifications.update_dnd_schedule(
            user.id,
            request.start_time,
            request.end_time,
            days=request.days,
            timezone_name=request.timezone,
            enabled=request.enabled,
        )
    )
