"""Tests for threaded replies, edits and accepted answers."""

from datetime import timedelta

import pytest

from agora.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from agora.core.utils import utcnow
from agora.models.forum import TopicType
from agora.models.notification import NotificationType
from agora.models.user import UserRole
from agora.modules.replies.service import DELETED_CONTENT, extract_mentions


def test_extract_mentions():
    assert extract_mentions("@alice and @bob_2, thanks @alice!") == ["alice", "bob_2"]
    assert extract_mentions("email me at someone@") == []


@pytest.fixture
async def question(make_user, make_topic):
    asker = await make_user("asker")
    topic = await make_topic(asker, title="Why does my ROV roll?", topic_type=TopicType.QUESTION)
    return asker, topic


async def test_reply_updates_topic_and_rewards_author(
    db, question, make_user, reply_service, reputation_service, settle
):
    asker, topic = question
    helper = await make_user("helper")

    reply = await reply_service.create_reply(topic.id, helper, "Check the ballast.")
    await settle()

    assert reply.depth == 0
    assert reply.author.username == "helper"
    await db.refresh(topic)
    assert topic.reply_count == 1
    assert await reputation_service.get_total(helper.id) == 2


async def test_threads_stop_at_depth_two(question, make_user, reply_service):
    asker, topic = question
    helper = await make_user()

    root = await reply_service.create_reply(topic.id, helper, "Level 0")
    child = await reply_service.create_reply(topic.id, asker, "Level 1", parent_reply_id=root.id)
    grandchild = await reply_service.create_reply(topic.id, helper, "Level 2", parent_reply_id=child.id)

    assert (child.depth, grandchild.depth) == (1, 2)
    with pytest.raises(ForbiddenError, match="Maximum reply depth"):
        await reply_service.create_reply(topic.id, asker, "Level 3", parent_reply_id=grandchild.id)


async def test_parent_must_be_in_the_same_topic(question, make_user, make_topic, reply_service):
    asker, topic = question
    other_topic = await make_topic(asker, title="Another topic")
    foreign = await reply_service.create_reply(other_topic.id, asker, "Elsewhere")

    with pytest.raises(BadRequestError):
        await reply_service.create_reply(topic.id, asker, "Answer", parent_reply_id=foreign.id)


async def test_locked_topic_refuses_replies(db, question, make_user, reply_service):
    asker, topic = question
    topic.is_locked = True
    await db.commit()

    with pytest.raises(ForbiddenError, match="locked"):
        await reply_service.create_reply(topic.id, await make_user(), "Too late")


async def test_empty_reply_is_rejected(question, reply_service):
    asker, topic = question

    with pytest.raises(BadRequestError):
        await reply_service.create_reply(topic.id, asker, "   ")


async def test_reply_notifications(question, make_user, reply_service, notification_service, settle):
    asker, topic = question
    helper = await make_user("helper")
    friend = await make_user("friend")

    root = await reply_service.create_reply(topic.id, helper, "Try trimming the ballast")
    await reply_service.create_reply(
        topic.id, asker, "Thanks, @friend what do you think?", parent_reply_id=root.id
    )
    await settle()

    asker_inbox = await notification_service.list_notifications(asker.id)
    assert [n["type"] for n in asker_inbox["items"]] == [NotificationType.TOPIC_REPLY.value]

    helper_inbox = await notification_service.list_notifications(helper.id)
    assert [n["type"] for n in helper_inbox["items"]] == [NotificationType.COMMENT_REPLY.value]

    friend_inbox = await notification_service.list_notifications(friend.id)
    assert [n["type"] for n in friend_inbox["items"]] == [NotificationType.MENTION.value]


async def test_edit_window(db, question, make_user, reply_service):
    asker, topic = question
    helper = await make_user()
    moderator = await make_user(role=UserRole.MODERATOR)
    reply = await reply_service.create_reply(topic.id, helper, "First draft")

    edited = await reply_service.update_reply(reply.id, helper, "Second draft", "typo")
    assert edited.content == "Second draft"
    assert edited.edited_at is not None

    reply.created_at = utcnow() - timedelta(minutes=16)
    await db.commit()

    with pytest.raises(ForbiddenError, match="Edit window"):
        await reply_service.update_reply(reply.id, helper, "Third draft")

    with pytest.raises(ForbiddenError):
        await reply_service.update_reply(reply.id, asker, "Not mine")

    await reply_service.update_reply(reply.id, moderator, "Moderated")

    history = await reply_service.get_edit_history(reply.id, moderator)
    assert [entry["previous_content"] for entry in history] == ["Second draft", "First draft"]
    assert history[1]["edit_reason"] == "typo"

    with pytest.raises(ForbiddenError):
        await reply_service.get_edit_history(reply.id, helper)


async def test_delete_is_soft(db, question, make_user, reply_service):
    asker, topic = question
    helper = await make_user()
    moderator = await make_user(role=UserRole.MODERATOR)
    reply = await reply_service.create_reply(topic.id, helper, "Oops")

    with pytest.raises(ForbiddenError):
        await reply_service.delete_reply(reply.id, asker)

    await reply_service.delete_reply(reply.id, helper)

    await db.refresh(topic)
    assert topic.reply_count == 0
    with pytest.raises(NotFoundError):
        await reply_service.get_reply(reply.id, viewer=helper)

    deleted = await reply_service.get_reply(reply.id, viewer=moderator)
    assert deleted.is_deleted is True
    assert deleted.content == DELETED_CONTENT

    assert await reply_service.list_replies(topic.id, viewer=helper) == []
    assert len(await reply_service.list_replies(topic.id, viewer=moderator)) == 1


async def test_only_one_accepted_answer(db, question, make_user, reply_service, reputation_service, settle):
    asker, topic = question
    first_helper = await make_user()
    second_helper = await make_user()
    first = await reply_service.create_reply(topic.id, first_helper, "Answer one")
    second = await reply_service.create_reply(topic.id, second_helper, "Answer two")

    await reply_service.mark_accepted_answer(first.id, asker)
    await reply_service.mark_accepted_answer(second.id, asker)
    await settle()

    first = await reply_service.get_reply(first.id)
    second = await reply_service.get_reply(second.id)
    await db.refresh(topic)
    assert first.is_accepted is False
    assert second.is_accepted is True
    assert topic.accepted_reply_id == second.id

    # +2 for replying, +25 per acceptance; unaccepting does not take it back
    assert await reputation_service.get_total(first_helper.id) == 27
    assert await reputation_service.get_total(second_helper.id) == 27

    tree = await reply_service.list_replies(topic.id)
    assert tree[0]["id"] == second.id


async def test_accepting_own_answer_earns_nothing(question, reply_service, reputation_service, settle):
    asker, topic = question
    reply = await reply_service.create_reply(topic.id, asker, "Solved it myself")

    accepted = await reply_service.mark_accepted_answer(reply.id, asker)
    await settle()

    assert accepted.is_accepted is True
    # +5 topic, +2 reply, no best answer bonus
    assert await reputation_service.get_total(asker.id) == 7


async def test_accept_rules(make_user, make_topic, question, reply_service):
    asker, topic = question
    helper = await make_user()
    reply = await reply_service.create_reply(topic.id, helper, "Answer")

    with pytest.raises(ForbiddenError):
        await reply_service.mark_accepted_answer(reply.id, helper)

    discussion = await make_topic(asker, title="Just chatting")
    chat = await reply_service.create_reply(discussion.id, helper, "Hello")
    with pytest.raises(BadRequestError, match="question"):
        await reply_service.mark_accepted_answer(chat.id, asker)

    with pytest.raises(BadRequestError):
        await reply_service.remove_accepted_answer(reply.id, asker)


async def test_remove_accepted_answer(db, question, make_user, reply_service):
    asker, topic = question
    reply = await reply_service.create_reply(topic.id, await make_user(), "Answer")
    await reply_service.mark_accepted_answer(reply.id, asker)

    removed = await reply_service.remove_accepted_answer(reply.id, asker)

    await db.refresh(topic)
    assert removed.is_accepted is False
    assert topic.accepted_reply_id is None


async def test_deleting_accepted_reply_clears_topic(db, question, make_user, reply_service):
    asker, topic = question
    helper = await make_user()
    reply = await reply_service.create_reply(topic.id, helper, "Answer")
    await reply_service.mark_accepted_answer(reply.id, asker)

    await reply_service.delete_reply(reply.id, helper)

    await db.refresh(topic)
    assert topic.accepted_reply_id is None


async def test_reply_tree_sorting(question, make_user, reply_service, vote_service):
    asker, topic = question
    helper = await make_user()
    voter = await make_user()
    first = await reply_service.create_reply(topic.id, helper, "First")
    second = await reply_service.create_reply(topic.id, helper, "Second")
    child = await reply_service.create_reply(topic.id, asker, "Child", parent_reply_id=first.id)
    await vote_service.vote_reply(second.id, voter, 1)

    oldest = await reply_service.list_replies(topic.id)
    assert [node["id"] for node in oldest] == [first.id, second.id]
    assert [node["id"] for node in oldest[0]["children"]] == [child.id]

    newest = await reply_service.list_replies(topic.id, sort="newest")
    assert [node["id"] for node in newest] == [second.id, first.id]

    voted = await reply_service.list_replies(topic.id, sort="most_voted")
    assert voted[0]["id"] == second.id

    with pytest.raises(BadRequestError):
        await reply_service.list_replies(topic.id, sort="random")


async def test_answers_to_a_deleted_reply_stay_nested(question, make_user, reply_service):
    asker, topic = question
    helper = await make_user()
    moderator = await make_user(role=UserRole.MODERATOR)
    kept = await reply_service.create_reply(topic.id, helper, "Still here")
    root = await reply_service.create_reply(topic.id, helper, "Removed later")
    child = await reply_service.create_reply(topic.id, asker, "Answer", parent_reply_id=root.id)
    await reply_service.delete_reply(root.id, helper)

    public = await reply_service.list_replies(topic.id)
    assert [node["id"] for node in public] == [kept.id]
    assert all(node["parent_reply_id"] is None for node in public)

    staff = await reply_service.list_replies(topic.id, viewer=moderator)
    assert [node["id"] for node in staff] == [kept.id, root.id]
    assert [node["id"] for node in staff[1]["children"]] == [child.id]
