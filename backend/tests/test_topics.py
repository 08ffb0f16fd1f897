"""Tests for topic creation, listing and editing."""

import pytest

from agora.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from agora.models.forum import SpamKeyword, TopicStatus, TopicType
from agora.models.user import UserRole
from agora.modules.topics.service import extract_links, spam_score


def test_extract_links_keeps_first_three_distinct():
    content = (
        "See https://a.example/docs and https://a.example/docs again "
        "then http://b.example and https://c.example/x (or https://d.example)"
    )

    assert extract_links(content) == [
        "https://a.example/docs",
        "http://b.example",
        "https://c.example/x",
    ]


def test_spam_score_sums_matching_keywords():
    keywords = [
        SpamKeyword(keyword="casino", severity=3),
        SpamKeyword(keyword="free money", severity=4),
        SpamKeyword(keyword="thruster", severity=0),
    ]

    assert spam_score("FREE MONEY at the Casino", keywords) == 7
    assert spam_score("Nothing to see", keywords) == 0


async def test_create_topic(db, make_user, make_category, topic_service, reputation_service, settle):
    author = await make_user()
    category = await make_category()

    topic = await topic_service.create_topic(
        author,
        category_id=category.id,
        title="  Best thruster for a 2 kg ROV?  ",
        content="Looking for advice.",
        topic_type=TopicType.QUESTION,
        tags=["Thrusters", "thrusters", "Beginner"],
        attachments=[{"file_name": "frame.png", "file_url": "https://files.example/frame.png"}],
    )
    await settle()

    assert topic.title == "Best thruster for a 2 kg ROV?"
    assert topic.slug == "best-thruster-for-a-2-kg-rov"
    assert topic.type == TopicType.QUESTION
    assert sorted(tag.name for tag in topic.tags) == ["Beginner", "Thrusters"]
    assert [a.file_name for a in topic.attachments] == ["frame.png"]
    assert topic.is_flagged is False

    await db.refresh(category)
    assert category.topic_count == 1
    assert await reputation_service.get_total(author.id) == 5


async def test_duplicate_titles_get_unique_slugs(make_user, make_topic):
    author = await make_user()

    first = await make_topic(author, title="Depth hold")
    second = await make_topic(author, title="Depth hold")
    third = await make_topic(author, title="Depth hold")

    assert [first.slug, second.slug, third.slug] == ["depth-hold", "depth-hold-1", "depth-hold-2"]


async def test_create_topic_validation(make_user, make_category, topic_service):
    author = await make_user()
    category = await make_category()

    with pytest.raises(BadRequestError):
        await topic_service.create_topic(author, category.id, "   ", "Body")
    with pytest.raises(BadRequestError):
        await topic_service.create_topic(author, category.id, "Title", " ")
    with pytest.raises(NotFoundError):
        await topic_service.create_topic(author, 999, "Title", "Body")


async def test_spam_keywords_flag_topic(db, make_user, make_topic):
    db.add(SpamKeyword(keyword="casino", severity=5))
    await db.commit()
    author = await make_user()

    topic = await make_topic(author, title="Win at the casino", content="Click here")

    assert topic.is_flagged is True


async def test_draft_is_private_until_published(db, make_user, make_category, make_topic, topic_service, reputation_service, settle):
    author = await make_user()
    other = await make_user()
    category = await make_category()

    draft = await make_topic(author, category=category, is_draft=True)
    await settle()

    with pytest.raises(NotFoundError):
        await topic_service.get_topic(draft.id, viewer=other)
    assert (await topic_service.get_topic(draft.id, viewer=author)).id == draft.id

    assert (await topic_service.list_topics())["items"] == []
    drafts = await topic_service.list_topics(viewer=author, is_draft=True)
    assert [item["id"] for item in drafts["items"]] == [draft.id]
    assert await reputation_service.get_total(author.id) == 0

    await topic_service.update_topic(draft.id, author, is_draft=False)
    await settle()

    await db.refresh(category)
    assert category.topic_count == 1
    assert await reputation_service.get_total(author.id) == 5


async def test_drafts_listing_requires_a_viewer(topic_service, engine):
    with pytest.raises(ForbiddenError):
        await topic_service.list_topics(is_draft=True)


async def test_get_topic_counts_views(make_user, make_topic, topic_service):
    author = await make_user()
    topic = await make_topic(author)

    await topic_service.get_topic(topic.id)
    viewed = await topic_service.get_topic_by_slug(topic.slug)

    assert viewed.view_count == 2


async def test_list_topics_pins_first_and_filters(db, make_user, make_topic, topic_service):
    author = await make_user()
    other = await make_user()
    older = await make_topic(author, title="Older", tags=["sonar"])
    pinned = await make_topic(author, title="Pinned")
    newest = await make_topic(other, title="Newest")
    archived = await make_topic(author, title="Archived")
    pinned.is_pinned = True
    archived.status = TopicStatus.ARCHIVED
    await db.commit()

    listing = await topic_service.list_topics()
    assert [item["id"] for item in listing["items"]] == [pinned.id, newest.id, older.id]
    assert listing["pagination"]["total"] == 3

    by_tag = await topic_service.list_topics(tag="sonar")
    assert [item["id"] for item in by_tag["items"]] == [older.id]

    by_author = await topic_service.list_topics(author_id=other.id)
    assert [item["id"] for item in by_author["items"]] == [newest.id]

    only_archived = await topic_service.list_topics(status=TopicStatus.ARCHIVED)
    assert [item["id"] for item in only_archived["items"]] == [archived.id]

    with pytest.raises(BadRequestError):
        await topic_service.list_topics(sort="random")


async def test_hidden_topics_are_listed_for_staff_on_request(db, make_user, make_topic, topic_service):
    author = await make_user()
    moderator = await make_user(role=UserRole.MODERATOR)
    topic = await make_topic(author)
    topic.vote_score = -5
    await db.commit()

    assert (await topic_service.list_topics(viewer=author, include_hidden=True))["items"] == []
    staff_view = await topic_service.list_topics(viewer=moderator, include_hidden=True)
    assert [item["id"] for item in staff_view["items"]] == [topic.id]
    assert staff_view["items"][0]["hidden"] is True


async def test_update_topic_permissions(make_user, make_topic, topic_service):
    author = await make_user()
    stranger = await make_user()
    admin = await make_user(role=UserRole.ADMIN)
    topic = await make_topic(author, title="Original title")

    with pytest.raises(ForbiddenError):
        await topic_service.update_topic(topic.id, stranger, title="Hijacked")

    updated = await topic_service.update_topic(topic.id, author, title="Better title", tags=["pid"])
    assert updated.slug == "better-title"
    assert [tag.name for tag in updated.tags] == ["pid"]

    edited = await topic_service.update_topic(topic.id, admin, content="Moderated content")
    assert edited.content == "Moderated content"


async def test_archive_is_a_soft_delete(make_user, make_topic, topic_service):
    author = await make_user()
    topic = await make_topic(author)

    await topic_service.delete_topic(topic.id, author)

    archived = await topic_service.get_topic(topic.id)
    assert archived.status == TopicStatus.ARCHIVED


async def test_archiving_leaves_category_totals(
    db, make_user, make_category, make_topic, reply_service, topic_service
):
    author = await make_user()
    category = await make_category()
    topic = await make_topic(author, category=category)
    await make_topic(author, category=category, title="Still open")
    await reply_service.create_reply(topic.id, author, "Bump")

    await topic_service.delete_topic(topic.id, author)
    await topic_service.delete_topic(topic.id, author)
    await db.commit()

    await db.refresh(category)
    assert (category.topic_count, category.reply_count) == (1, 0)


async def test_topic_with_poll(make_user, make_topic, poll_service):
    author = await make_user()
    topic = await make_topic(
        author,
        poll={"question": "Which frame?", "options": ["Open", "Closed"], "poll_type": "multiple"},
    )

    poll = await poll_service.get_poll_by_topic(topic.id)
    assert poll["question"] == "Which frame?"
    assert poll["poll_type"] == "multiple"
    assert [option["option_text"] for option in poll["options"]] == ["Open", "Closed"]


async def test_invalid_poll_rejects_topic(make_user, make_category, topic_service):
    author = await make_user()
    category = await make_category()

    with pytest.raises(BadRequestError):
        await topic_service.create_topic(
            author, category.id, "Vote", "Pick one", poll={"question": "?", "options": ["Only"]}
        )


async def test_popular_tags(make_user, make_topic, topic_service):
    author = await make_user()
    await make_topic(author, title="One", tags=["sonar", "gps"])
    await make_topic(author, title="Two", tags=["sonar"])

    tags = await topic_service.popular_tags()

    assert tags[0] == {"name": "sonar", "slug": "sonar", "usage_count": 2}
    assert tags[1]["slug"] == "gps"
