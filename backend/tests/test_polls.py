"""Tests for topic polls."""

from datetime import datetime, timedelta, timezone

import pytest

from agora.core.exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from agora.core.utils import utcnow
from agora.models.poll import PollType
from agora.models.user import UserRole
from agora.modules.polls.service import validate_poll_options


@pytest.mark.parametrize(
    "options",
    [
        ["Only one"],
        [f"Option {i}" for i in range(11)],
        ["Yes", "  "],
        ["Yes", "yes"],
    ],
)
def test_invalid_options(options):
    with pytest.raises(BadRequestError):
        validate_poll_options(options)


def test_valid_options():
    validate_poll_options(["Yes", "No", "Maybe"])


@pytest.fixture
async def topic(make_user, make_topic):
    author = await make_user("pollster")
    return await make_topic(author, title="Which camera should I buy?")


async def test_single_choice_poll(topic, make_user, poll_service):
    author = topic.author
    poll = await poll_service.create_poll(topic.id, author, "Pick one", ["A", "B", "C"])
    a, b, c = [option.id for option in poll.options]
    voters = [await make_user() for _ in range(3)]

    await poll_service.cast_vote(poll.id, voters[0], [a])
    await poll_service.cast_vote(poll.id, voters[1], [a])
    results = await poll_service.cast_vote(poll.id, voters[2], [b])

    assert results["total_votes"] == 3
    assert results["total_voters"] == 3
    assert [o["vote_count"] for o in results["options"]] == [2, 1, 0]
    assert [o["percentage"] for o in results["options"]] == [67, 33, 0]
    assert results["user_vote"] == {"option_ids": [b]}

    with pytest.raises(ConflictError):
        await poll_service.cast_vote(poll.id, voters[0], [b])
    with pytest.raises(BadRequestError):
        await poll_service.cast_vote(poll.id, author, [a, b])
    with pytest.raises(BadRequestError, match="Invalid option"):
        await poll_service.cast_vote(poll.id, author, [c + 100])


async def test_multiple_choice_revote_replaces_selection(topic, make_user, poll_service):
    poll = await poll_service.create_poll(
        topic.id, topic.author, "Pick any", ["A", "B", "C"], poll_type=PollType.MULTIPLE
    )
    a, b, c = [option.id for option in poll.options]
    voter = await make_user()

    first = await poll_service.cast_vote(poll.id, voter, [a, b])
    assert first["total_votes"] == 2
    assert first["total_voters"] == 1

    second = await poll_service.cast_vote(poll.id, voter, [c])
    assert [o["vote_count"] for o in second["options"]] == [0, 0, 1]
    assert second["user_vote"] == {"option_ids": [c]}

    with pytest.raises(BadRequestError):
        await poll_service.cast_vote(poll.id, voter, [])


async def test_expired_poll_is_closed(topic, make_user, poll_service):
    deadline = datetime.now(timezone.utc) - timedelta(hours=1)
    poll = await poll_service.create_poll(topic.id, topic.author, "Too late?", ["Yes", "No"], deadline=deadline)

    # Stored as naive UTC
    assert poll.deadline.tzinfo is None
    assert poll.deadline < utcnow()

    with pytest.raises(ForbiddenError, match="expired"):
        await poll_service.cast_vote(poll.id, await make_user(), [poll.options[0].id])

    results = await poll_service.get_poll(poll.id)
    assert results["has_expired"] is True


async def test_one_poll_per_topic(topic, poll_service):
    await poll_service.create_poll(topic.id, topic.author, "First", ["A", "B"])

    with pytest.raises(ConflictError):
        await poll_service.create_poll(topic.id, topic.author, "Second", ["A", "B"])


async def test_only_author_or_staff_adds_a_poll(topic, make_user, poll_service):
    stranger = await make_user()
    moderator = await make_user(role=UserRole.MODERATOR)

    with pytest.raises(ForbiddenError):
        await poll_service.create_poll(topic.id, stranger, "Mine?", ["A", "B"])

    poll = await poll_service.create_poll(topic.id, moderator, "Staff poll", ["A", "B"])
    assert poll.created_by == moderator.id

    with pytest.raises(NotFoundError):
        await poll_service.create_poll(999, moderator, "Nowhere", ["A", "B"])


async def test_delete_poll(topic, make_user, poll_service):
    poll = await poll_service.create_poll(topic.id, topic.author, "Temporary", ["A", "B"])
    await poll_service.cast_vote(poll.id, await make_user(), [poll.options[0].id])

    await poll_service.delete_poll(poll.id)

    with pytest.raises(NotFoundError):
        await poll_service.get_poll(poll.id)
