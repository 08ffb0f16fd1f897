"""Tests for the reputation ledger, levels and permissions."""

from contextlib import asynccontextmanager

import pytest

from agora.core.background import drain
from agora.core.exceptions import NotFoundError
from agora.modules.reputation.service import (
    ReputationEvent,
    ReputationRewards,
    calculate_level,
    level_progress,
    permissions_for,
)


@pytest.mark.parametrize(
    "total,level",
    [
        (-20, "newcomer"),
        (0, "newcomer"),
        (99, "newcomer"),
        (100, "contributor"),
        (499, "contributor"),
        (500, "expert"),
        (1000, "master"),
        (2499, "master"),
        (2500, "legend"),
        (10000, "legend"),
    ],
)
def test_calculate_level(total, level):
    assert calculate_level(total) == level


def test_level_progress_midway():
    progress = level_progress(300)

    assert progress["next_level"] == "expert"
    assert progress["current_threshold"] == 100
    assert progress["next_threshold"] == 500
    assert progress["percentage"] == 50


def test_level_progress_at_top_level():
    progress = level_progress(3000)

    assert progress["next_level"] is None
    assert progress["percentage"] == 100


def test_negative_reputation_has_zero_progress():
    assert level_progress(-40)["percentage"] == 0


def test_permissions_for():
    assert permissions_for(49) == {"downvote": False, "edit_others": False, "moderate": False}
    assert permissions_for(500) == {"downvote": True, "edit_others": True, "moderate": False}
    assert permissions_for(1000)["moderate"] is True


async def test_total_is_ledger_sum(db, make_user, reputation_service):
    user = await make_user()

    await reputation_service.record(user.id, ReputationEvent.UPVOTE_RECEIVED, 10)
    await reputation_service.record(user.id, ReputationEvent.DOWNVOTE_RECEIVED, -5)
    await reputation_service.record(user.id, ReputationEvent.PENALTY, -30)

    # No floor at zero
    assert await reputation_service.get_total(user.id) == -25
    assert await reputation_service.has_permission(user.id, "downvote") is False


async def test_user_reputation_summary(make_user, make_topic, reputation_service, settle):
    user = await make_user()
    await make_topic(user)
    await reputation_service.record(user.id, ReputationEvent.UPVOTE_RECEIVED, 10)
    await reputation_service.record(user.id, ReputationEvent.BEST_ANSWER, 25)
    await settle()

    summary = await reputation_service.get_user_reputation(user.id)

    assert summary["total_reputation"] == 40
    assert summary["level"] == "newcomer"
    assert summary["breakdown"]["topics_created"] == 1
    assert summary["breakdown"]["upvotes_received"] == 10
    assert summary["breakdown"]["best_answers"] == 1
    assert len(summary["recent_history"]) == 3


async def test_unknown_user_reputation(reputation_service, engine):
    with pytest.raises(NotFoundError):
        await reputation_service.get_user_reputation(404)


async def test_history_is_paginated_newest_first(make_user, reputation_service):
    user = await make_user()
    for points in (1, 2, 3):
        await reputation_service.record(user.id, ReputationEvent.UPVOTE_RECEIVED, points)

    history = await reputation_service.get_history(user.id, page=1, limit=2)

    assert history["pagination"] == {"page": 1, "limit": 2, "total": 3, "total_pages": 2}
    assert [item["points"] for item in history["items"]] == [3, 2]


async def test_rewards_failures_do_not_propagate(make_user, reputation_service):
    @asynccontextmanager
    async def broken_scope():
        raise RuntimeError("database unavailable")
        yield

    user = await make_user()
    ReputationRewards(scope=broken_scope).topic_created(user.id, 1)
    await drain()

    assert await reputation_service.get_total(user.id) == 0
