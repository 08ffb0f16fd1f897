"""Tests for moderation actions, escalation rules and the audit log."""

from datetime import timedelta

import pytest

from agora.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from agora.core.utils import utcnow
from agora.models.forum import Topic, TopicStatus, TopicType
from agora.models.notification import NotificationType
from agora.models.user import UserRole, UserStatus


@pytest.fixture
async def staff(make_user):
    return {
        "admin": await make_user("admin", role=UserRole.ADMIN),
        "moderator": await make_user("moderator", role=UserRole.MODERATOR),
        "other_moderator": await make_user("other_moderator", role=UserRole.MODERATOR),
        "member": await make_user("member"),
    }


async def test_permission_requires_category_assignment(
    staff, make_category, category_service, moderation_service
):
    category = await make_category()

    with pytest.raises(ForbiddenError, match="Moderator privileges"):
        await moderation_service.check_moderator_permission(staff["member"], category.id)
    with pytest.raises(ForbiddenError, match="not a moderator of this category"):
        await moderation_service.check_moderator_permission(staff["moderator"], category.id)

    await category_service.assign_moderator(category.id, staff["moderator"].id)

    await moderation_service.check_moderator_permission(staff["moderator"], category.id)
    await moderation_service.check_moderator_permission(staff["admin"], category.id)


async def test_pin_and_lock_are_audited(staff, make_topic, moderation_service, settle):
    topic = await make_topic(staff["member"])
    admin = staff["admin"]

    pinned = await moderation_service.pin_topic(topic.id, admin, True, reason="Useful guide")
    locked = await moderation_service.lock_topic(topic.id, admin, True)
    await settle()

    assert pinned.is_pinned is True
    assert locked.is_locked is True

    logs = await moderation_service.get_moderation_logs(admin)
    assert [log["action"] for log in logs["items"]] == ["lock", "pin"]
    assert logs["items"][1]["reason"] == "Useful guide"
    assert logs["items"][1]["target_type"] == "topic"

    only_pins = await moderation_service.get_moderation_logs(admin, action="pin")
    assert only_pins["pagination"]["total"] == 1


async def test_logs_are_staff_only(staff, moderation_service):
    with pytest.raises(ForbiddenError):
        await moderation_service.get_moderation_logs(staff["member"])


async def test_move_needs_rights_in_both_categories(
    db, staff, make_category, make_topic, category_service, moderation_service
):
    source = await make_category("Source")
    destination = await make_category("Destination")
    topic = await make_topic(staff["member"], category=source)
    moderator = staff["moderator"]
    await category_service.assign_moderator(source.id, moderator.id)

    with pytest.raises(ForbiddenError):
        await moderation_service.move_topic(topic.id, moderator, destination.id)

    await category_service.assign_moderator(destination.id, moderator.id)
    moved = await moderation_service.move_topic(topic.id, moderator, destination.id)

    assert moved.category_id == destination.id
    await db.refresh(source)
    await db.refresh(destination)
    assert (source.topic_count, destination.topic_count) == (0, 1)

    with pytest.raises(NotFoundError):
        await moderation_service.move_topic(topic.id, staff["admin"], 999)


async def test_merge_moves_replies_and_archives_source(
    db, staff, make_topic, reply_service, moderation_service, settle
):
    asker = staff["member"]
    source = await make_topic(asker, title="Duplicate question", topic_type=TopicType.QUESTION)
    target = await make_topic(asker, title="Original question")
    await reply_service.create_reply(target.id, staff["moderator"], "Existing answer")
    moved = await reply_service.create_reply(source.id, staff["moderator"], "Answer to move")
    await reply_service.mark_accepted_answer(moved.id, asker)

    merged = await moderation_service.merge_topics(source.id, target.id, staff["admin"], "Duplicate")
    await settle()

    assert merged.id == target.id
    assert merged.reply_count == 2

    source = await db.get(Topic, source.id)
    assert source.status == TopicStatus.ARCHIVED
    assert source.reply_count == 0
    assert source.accepted_reply_id is None

    moved = await reply_service.get_reply(moved.id)
    assert moved.topic_id == target.id
    assert moved.is_accepted is False

    logs = await moderation_service.get_moderation_logs(staff["admin"], action="merge")
    assert logs["items"][0]["metadata"] == {"target_topic_id": target.id}


async def test_merge_across_categories_moves_category_totals(
    db, staff, make_category, make_topic, reply_service, moderation_service
):
    duplicates = await make_category("Duplicates")
    answers = await make_category("Answers")
    source = await make_topic(staff["member"], category=duplicates, title="Same question")
    target = await make_topic(staff["member"], category=answers, title="First question")
    await reply_service.create_reply(source.id, staff["moderator"], "Answer to move")
    await reply_service.create_reply(source.id, staff["moderator"], "Another answer")
    await reply_service.create_reply(target.id, staff["moderator"], "Existing answer")

    await moderation_service.merge_topics(source.id, target.id, staff["admin"], "Duplicate")
    await db.commit()

    await db.refresh(duplicates)
    await db.refresh(answers)
    assert (duplicates.topic_count, duplicates.reply_count) == (0, 0)
    assert (answers.topic_count, answers.reply_count) == (1, 3)


async def test_merge_into_itself_is_rejected(staff, make_topic, moderation_service):
    topic = await make_topic(staff["member"])

    with pytest.raises(BadRequestError):
        await moderation_service.merge_topics(topic.id, topic.id, staff["admin"])


async def test_hard_delete(
    db, staff, make_category, make_topic, reply_service, vote_service, topic_service, moderation_service
):
    category = await make_category()
    topic = await make_topic(staff["member"], category=category, tags=["gone", "kept"])
    await make_topic(staff["member"], title="Still tagged", tags=["kept"])
    await reply_service.create_reply(topic.id, staff["moderator"], "A reply")
    await vote_service.vote_topic(topic.id, staff["moderator"], 1)
    topic_id = topic.id

    with pytest.raises(ForbiddenError):
        await moderation_service.hard_delete_topic(topic_id, staff["moderator"], "Spam content here")
    with pytest.raises(BadRequestError, match="at least 10"):
        await moderation_service.hard_delete_topic(topic_id, staff["admin"], "spam")

    await moderation_service.hard_delete_topic(topic_id, staff["admin"], "Commercial spam, removed")
    await db.commit()

    assert await db.get(Topic, topic_id) is None
    await db.refresh(category)
    assert (category.topic_count, category.reply_count) == (0, 0)

    tags = await topic_service.popular_tags()
    assert [(tag["slug"], tag["usage_count"]) for tag in tags] == [("kept", 1)]


async def test_escalation_rules(staff, moderation_service):
    moderator = staff["moderator"]

    with pytest.raises(ForbiddenError, match="admin"):
        await moderation_service.warn_user(staff["admin"].id, moderator, "Be nice")
    with pytest.raises(ForbiddenError, match="other moderators"):
        await moderation_service.suspend_user(staff["other_moderator"].id, moderator, "Abuse", 3)
    with pytest.raises(ForbiddenError, match="Moderator privileges"):
        await moderation_service.warn_user(moderator.id, staff["member"], "Nope")
    with pytest.raises(ForbiddenError, match="Only admins"):
        await moderation_service.ban_user(staff["member"].id, moderator, "Spam")
    with pytest.raises(NotFoundError):
        await moderation_service.warn_user(999, moderator, "Who?")

    suspended = await moderation_service.suspend_user(
        staff["other_moderator"].id, staff["admin"], "Abuse of tools", 3
    )
    assert suspended.status == UserStatus.SUSPENDED


async def test_moderators_cannot_warn_each_other(staff, moderation_service):
    with pytest.raises(ForbiddenError, match="other moderators"):
        await moderation_service.warn_user(staff["other_moderator"].id, staff["moderator"], "Be nice")


@pytest.mark.parametrize("action", ["warn", "suspend", "ban"])
async def test_admins_cannot_act_on_admins(action, staff, make_user, moderation_service):
    second_admin = await make_user("second_admin", role=UserRole.ADMIN)
    handlers = {
        "warn": lambda: moderation_service.warn_user(second_admin.id, staff["admin"], "Be nice"),
        "suspend": lambda: moderation_service.suspend_user(second_admin.id, staff["admin"], "Abuse", 3),
        "ban": lambda: moderation_service.ban_user(second_admin.id, staff["admin"], "Abuse"),
    }

    with pytest.raises(ForbiddenError, match=f"Cannot {action} an admin"):
        await handlers[action]()
    assert second_admin.status == UserStatus.ACTIVE


async def test_suspension_and_ban(staff, moderation_service, notification_service, settle):
    member = staff["member"]

    with pytest.raises(BadRequestError):
        await moderation_service.suspend_user(member.id, staff["moderator"], "Spam", 0)

    suspended = await moderation_service.suspend_user(member.id, staff["moderator"], "Spam", 7)
    assert suspended.status == UserStatus.SUSPENDED
    assert suspended.suspended_until - utcnow() > timedelta(days=6)

    indefinite = await moderation_service.suspend_user(member.id, staff["moderator"], "Spam again")
    assert indefinite.suspended_until is None

    banned = await moderation_service.ban_user(member.id, staff["admin"], "Repeated spam")
    await settle()

    assert banned.status == UserStatus.BANNED
    inbox = await notification_service.list_notifications(member.id)
    assert {n["type"] for n in inbox["items"]} == {NotificationType.ACCOUNT_UPDATE.value}
    assert inbox["pagination"]["total"] == 3


async def test_warning_notifies_user(staff, moderation_service, notification_service, settle):
    await moderation_service.warn_user(staff["member"].id, staff["moderator"], "Stay on topic")
    await settle()

    inbox = await notification_service.list_notifications(staff["member"].id)
    assert inbox["items"][0]["type"] == NotificationType.MODERATION.value
    assert inbox["items"][0]["message"] == "Stay on topic"
