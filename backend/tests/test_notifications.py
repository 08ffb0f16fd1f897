"""Tests for notification bundling, Do Not Disturb and preferences."""

from datetime import datetime, timezone

import pytest

from agora.core.exceptions import BadRequestError, NotFoundError
from agora.models.notification import (
    DeliveryChannel,
    DndSchedule,
    NotificationFrequency,
    NotificationType,
)
from agora.modules.notifications.service import bundle_key, is_in_dnd_window, is_time_in_range

# 2024-01-08 04:00 UTC is Sunday 23:00 in New York
SUNDAY_NIGHT_IN_NEW_YORK = datetime(2024, 1, 8, 4, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "current,start,end,expected",
    [
        ("12:00", "09:00", "17:00", True),
        ("09:00", "09:00", "17:00", True),
        ("17:00", "09:00", "17:00", True),
        ("17:01", "09:00", "17:00", False),
        ("23:30", "22:00", "07:00", True),
        ("06:59", "22:00", "07:00", True),
        ("12:00", "22:00", "07:00", False),
    ],
)
def test_is_time_in_range(current, start, end, expected):
    assert is_time_in_range(current, start, end) is expected


def test_bundle_key():
    assert bundle_key(NotificationType.TOPIC_REPLY, 12) == "topic_reply:12"
    assert bundle_key(NotificationType.UPVOTE) == "upvote"


def _schedule(**overrides) -> DndSchedule:
    values = {
        "start_time": "22:00",
        "end_time": "07:00",
        "days": [],
        "timezone": "America/New_York",
        "enabled": True,
    }
    values.update(overrides)
    return DndSchedule(user_id=1, **values)


def test_dnd_window_uses_schedule_timezone():
    late_evening = {"start_time": "22:00", "end_time": "23:30"}

    assert is_in_dnd_window(_schedule(**late_evening), SUNDAY_NIGHT_IN_NEW_YORK) is True
    # 04:00 in UTC is outside the same window
    assert is_in_dnd_window(_schedule(timezone="UTC", **late_evening), SUNDAY_NIGHT_IN_NEW_YORK) is False


def test_dnd_days_count_from_sunday():
    assert is_in_dnd_window(_schedule(days=[0]), SUNDAY_NIGHT_IN_NEW_YORK) is True
    assert is_in_dnd_window(_schedule(days=[1, 2, 3]), SUNDAY_NIGHT_IN_NEW_YORK) is False


def test_disabled_or_missing_schedule():
    assert is_in_dnd_window(None, SUNDAY_NIGHT_IN_NEW_YORK) is False
    assert is_in_dnd_window(_schedule(enabled=False), SUNDAY_NIGHT_IN_NEW_YORK) is False


async def test_bundling_merges_unread_notifications(make_user, notification_service):
    user = await make_user()

    first = await notification_service.create_notification(
        user.id, NotificationType.TOPIC_REPLY, "New reply", "One", reference_id=7
    )
    second = await notification_service.create_notification(
        user.id, NotificationType.TOPIC_REPLY, "New reply", "Two", reference_id=7
    )
    other_topic = await notification_service.create_notification(
        user.id, NotificationType.TOPIC_REPLY, "New reply", "Elsewhere", reference_id=8
    )

    assert second.id == first.id
    assert second.bundle_count == 2
    assert other_topic.id != first.id

    await notification_service.mark_as_read(first.id, user.id)
    third = await notification_service.create_notification(
        user.id, NotificationType.TOPIC_REPLY, "New reply", "Three", reference_id=7
    )
    assert third.id != first.id
    assert third.bundle_count == 1


async def test_mentions_are_never_bundled(make_user, notification_service):
    user = await make_user()

    first = await notification_service.create_notification(user.id, NotificationType.MENTION, "Hi", "One")
    second = await notification_service.create_notification(user.id, NotificationType.MENTION, "Hi", "Two")

    assert first.id != second.id


async def test_dnd_suppresses_all_but_critical(make_user, notification_service):
    user = await make_user()
    await notification_service.update_dnd_schedule(user.id, "00:00", "23:59", timezone_name="UTC")

    assert await notification_service.is_user_in_dnd_mode(user.id) is True
    suppressed = await notification_service.create_notification(
        user.id, NotificationType.MENTION, "Hi", "Quiet please"
    )
    critical = await notification_service.create_notification(
        user.id, NotificationType.ACCOUNT_UPDATE, "Account", "Suspended"
    )

    assert suppressed is None
    assert critical is not None


async def test_dnd_schedule_validation(make_user, notification_service):
    user = await make_user()

    with pytest.raises(BadRequestError):
        await notification_service.update_dnd_schedule(user.id, "25:00", "07:00")
    with pytest.raises(BadRequestError):
        await notification_service.update_dnd_schedule(user.id, "22:00", "soon")
    with pytest.raises(BadRequestError):
        await notification_service.update_dnd_schedule(user.id, "10:75", "23:00")
    with pytest.raises(BadRequestError):
        await notification_service.update_dnd_schedule(user.id, "7:00", "23:00")
    with pytest.raises(BadRequestError):
        await notification_service.update_dnd_schedule(user.id, "22:00", "07:00", days=[7])
    with pytest.raises(BadRequestError):
        await notification_service.update_dnd_schedule(user.id, "22:00", "07:00", timezone_name="Mars/Base")

    schedule = await notification_service.update_dnd_schedule(user.id, "22:00", "07:00", days=[5, 6, 5])
    assert schedule["days"] == [5, 6]
    assert (await notification_service.get_dnd_schedule(user.id))["start_time"] == "22:00"


async def test_preferences_control_channels(make_user, notification_service):
    user = await make_user()

    defaults = await notification_service.should_deliver(
        user.id, NotificationType.MENTION, [DeliveryChannel.IN_APP, DeliveryChannel.EMAIL]
    )
    assert defaults == {"in_app": True, "email": True, "push": False}

    await notification_service.update_preferences(user.id, [
        {"notification_type": "mention", "channel": "in_app", "enabled": False},
        {"notification_type": "mention", "channel": "email", "frequency": NotificationFrequency.OFF},
    ])

    muted = await notification_service.should_deliver(
        user.id, NotificationType.MENTION, [DeliveryChannel.IN_APP, DeliveryChannel.EMAIL]
    )
    assert muted == {"in_app": False, "email": False, "push": False}
    assert await notification_service.create_notification(
        user.id, NotificationType.MENTION, "Hi", "Muted"
    ) is None

    preferences = await notification_service.get_preferences(user.id)
    assert {(p["channel"], p["enabled"]) for p in preferences} == {("in_app", False), ("email", True)}


async def test_inbox_operations(make_user, notification_service):
    user = await make_user()
    stranger = await make_user()
    for index in range(3):
        await notification_service.create_notification(
            user.id, NotificationType.MENTION, f"Mention {index}", "Hello"
        )

    inbox = await notification_service.list_notifications(user.id)
    assert inbox["pagination"]["total"] == 3
    assert await notification_service.get_unread_count(user.id) == 3

    newest = inbox["items"][0]
    read = await notification_service.mark_as_read(newest["id"], user.id)
    assert read.is_read is True
    assert await notification_service.get_unread_count(user.id) == 2

    unread = await notification_service.list_notifications(user.id, unread_only=True)
    assert newest["id"] not in [n["id"] for n in unread["items"]]

    with pytest.raises(NotFoundError):
        await notification_service.mark_as_read(newest["id"], stranger.id)

    assert await notification_service.mark_all_as_read(user.id) == 2
    assert await notification_service.get_unread_count(user.id) == 0

    await notification_service.delete_notification(newest["id"], user.id)
    with pytest.raises(NotFoundError):
        await notification_service.delete_notification(newest["id"], user.id)
