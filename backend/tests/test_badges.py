"""Tests for badge criteria, awarding and progress."""

from datetime import date

import pytest

from agora.core.exceptions import NotFoundError
from agora.models.badge import Badge, BadgeCategory, BadgeType
from agora.models.notification import NotificationType
from agora.modules.badges.service import activity_streak

TODAY = date(2024, 5, 10)


@pytest.mark.parametrize(
    "days,expected",
    [
        (set(), 0),
        ({date(2024, 5, 10)}, 1),
        ({date(2024, 5, 8), date(2024, 5, 9), date(2024, 5, 10)}, 3),
        # Yesterday still counts, the streak is not broken yet
        ({date(2024, 5, 8), date(2024, 5, 9)}, 2),
        ({date(2024, 5, 5), date(2024, 5, 6), date(2024, 5, 10)}, 1),
        ({date(2024, 5, 7), date(2024, 5, 8)}, 0),
    ],
)
def test_activity_streak(days, expected):
    assert activity_streak(days, TODAY) == expected


@pytest.fixture
async def badges(db):
    definitions = {
        "first_post": Badge(
            name="First Post", slug="first-post", badge_type=BadgeType.BRONZE,
            category=BadgeCategory.ACTIVITY, display_order=1,
            criteria={"type": "topic_count", "threshold": 1},
        ),
        "rising_star": Badge(
            name="Rising Star", slug="rising-star", badge_type=BadgeType.SILVER,
            category=BadgeCategory.QUALITY, display_order=2,
            criteria={"type": "reputation", "threshold": 100},
        ),
        "chatty": Badge(
            name="Chatty", slug="chatty", badge_type=BadgeType.BRONZE,
            category=BadgeCategory.COMMUNITY, display_order=3,
            criteria={"type": "reply_count", "threshold": 3, "timeframe": "7_days"},
        ),
        "retired": Badge(
            name="Retired", slug="retired", badge_type=BadgeType.GOLD,
            category=BadgeCategory.SPECIAL, display_order=4, is_active=False,
            criteria={"type": "topic_count", "threshold": 0},
        ),
    }
    db.add_all(definitions.values())
    await db.commit()
    return definitions


async def test_list_badges_skips_inactive(badges, badge_service):
    listed = await badge_service.list_badges()
    assert [b.slug for b in listed] == ["first-post", "rising-star", "chatty"]

    quality = await badge_service.list_badges(BadgeCategory.QUALITY)
    assert [b.slug for b in quality] == ["rising-star"]

    with pytest.raises(NotFoundError):
        await badge_service.get_badge(999)


async def test_evaluate_criteria(badges, make_user, make_topic, badge_service, settle):
    user = await make_user()
    await make_topic(user)
    await settle()

    topics = await badge_service.evaluate_badge_criteria(user.id, badges["first_post"].id)
    assert topics == {
        "badge_id": badges["first_post"].id,
        "current_progress": 1,
        "threshold": 1,
        "percentage": 100,
        "is_earned": True,
    }

    reputation = await badge_service.evaluate_badge_criteria(user.id, badges["rising_star"].id)
    assert reputation["current_progress"] == 5
    assert reputation["percentage"] == 5
    assert reputation["is_earned"] is False


async def test_unknown_criteria_measures_zero(db, make_user, badge_service):
    user = await make_user()
    odd = Badge(name="Odd", slug="odd", criteria={"type": "photos_uploaded", "threshold": 1})
    db.add(odd)
    await db.commit()

    evaluation = await badge_service.evaluate_badge_criteria(user.id, odd.id)
    assert evaluation["current_progress"] == 0
    assert evaluation["is_earned"] is False


async def test_check_and_award(badges, make_user, make_topic, reply_service, badge_service, notification_service, settle):
    user = await make_user()
    topic = await make_topic(user)
    await reply_service.create_reply(topic.id, user, "Following up with more detail")
    await settle()

    awarded = await badge_service.check_and_award_badges(user.id)
    await settle()

    assert awarded == [badges["first_post"].id]
    assert await badge_service.check_and_award_badges(user.id) == []

    earned = await badge_service.get_user_badges(user.id)
    assert [b["slug"] for b in earned] == ["first-post"]
    assert earned[0]["progress"] == 1

    inbox = await notification_service.list_notifications(user.id)
    assert inbox["items"][0]["type"] == NotificationType.BADGE.value
    assert "First Post" in inbox["items"][0]["message"]

    progress = {item["slug"]: item for item in await badge_service.get_badge_progress(user.id)}
    assert progress["first-post"]["is_earned"] is True
    assert progress["first-post"]["percentage"] == 100
    assert progress["chatty"]["current_progress"] == 1
    assert progress["chatty"]["percentage"] == 33
    assert progress["rising-star"]["current_progress"] == 7


async def test_badge_holders(badges, make_user, make_topic, badge_service):
    first = await make_user("first")
    second = await make_user("second")
    await make_user("lurker")
    for user in (first, second):
        await make_topic(user)
        await badge_service.check_and_award_badges(user.id)

    holders = await badge_service.get_badge_holders(badges["first_post"].id)

    assert holders["total"] == 2
    assert [h["username"] for h in holders["holders"]] == ["first", "second"]
    assert holders["badge"]["slug"] == "first-post"


async def test_unknown_user(engine, badge_service):
    with pytest.raises(NotFoundError):
        await badge_service.check_and_award_badges(999)
    with pytest.raises(NotFoundError):
        await badge_service.get_user_badges(999)
