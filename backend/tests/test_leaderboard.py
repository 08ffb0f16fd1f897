"""Tests for leaderboard snapshots, caching and the Hall of Fame."""

from datetime import datetime, timedelta

import pytest

from agora.core.exceptions import NotFoundError
from agora.core.utils import utcnow
from agora.models.vote import ReputationHistory
from agora.modules.leaderboard.service import ALL_TIME_START, LeaderboardPeriod, period_boundaries


def test_period_boundaries():
    now = datetime(2024, 3, 15, 12, 0)

    assert period_boundaries(LeaderboardPeriod.WEEKLY, now) == (datetime(2024, 3, 8, 12, 0), now)
    assert period_boundaries(LeaderboardPeriod.MONTHLY, now) == (datetime(2024, 2, 14, 12, 0), now)
    assert period_boundaries(LeaderboardPeriod.ALL_TIME, now) == (ALL_TIME_START, now)


@pytest.fixture
async def ranked_users(db, make_user):
    alice = await make_user("alice", reputation=100)
    bob = await make_user("bob", reputation=30)
    carol = await make_user("carol")
    # Net loss in the window, never ranked
    dave = await make_user("dave", reputation=10)
    db.add(ReputationHistory(user_id=dave.id, event_type="penalty", points=-20))
    await db.commit()
    return {"alice": alice, "bob": bob, "carol": carol, "dave": dave}


async def test_rankings_order_positive_gains(ranked_users, leaderboard_service):
    assert await leaderboard_service.recalculate_rankings(LeaderboardPeriod.WEEKLY) == 2

    board = await leaderboard_service.get_leaderboard(LeaderboardPeriod.WEEKLY)

    assert [(e["rank"], e["username"], e["reputation_gain"]) for e in board["entries"]] == [
        (1, "alice", 100),
        (2, "bob", 30),
    ]
    assert board["entries"][0]["total_reputation"] == 100
    assert board["stats"]["total_users"] == 2
    assert board["stats"]["top_reputation_gain"] == 100


async def test_empty_leaderboard(engine, leaderboard_service):
    board = await leaderboard_service.get_leaderboard(LeaderboardPeriod.MONTHLY)

    assert board["entries"] == []
    assert board["stats"] is None


async def test_leaderboard_is_served_from_cache(db, ranked_users, cache, leaderboard_service):
    await leaderboard_service.recalculate_rankings(LeaderboardPeriod.WEEKLY)
    await leaderboard_service.get_leaderboard(LeaderboardPeriod.WEEKLY)
    assert "weekly" in cache.data

    db.add(ReputationHistory(user_id=ranked_users["carol"].id, event_type="bonus", points=50))
    await db.commit()

    cached = await leaderboard_service.get_leaderboard(LeaderboardPeriod.WEEKLY)
    assert len(cached["entries"]) == 2

    await leaderboard_service.recalculate_rankings(LeaderboardPeriod.WEEKLY)
    assert "weekly" not in cache.data
    fresh = await leaderboard_service.get_leaderboard(LeaderboardPeriod.WEEKLY)
    assert [e["username"] for e in fresh["entries"]] == ["alice", "carol", "bob"]


async def test_user_rankings(ranked_users, cache, leaderboard_service):
    await leaderboard_service.recalculate_all_rankings()

    rankings = await leaderboard_service.get_user_rankings(ranked_users["bob"].id)

    assert set(rankings) == {"weekly", "monthly", "all-time"}
    assert rankings["weekly"]["rank"] == 2
    assert rankings["weekly"]["reputation_gain"] == 30
    assert rankings["weekly"]["total_users"] == 2
    assert rankings["weekly"]["percentile"] == 0.0
    assert f"user:{ranked_users['bob'].id}" in cache.data

    unranked = await leaderboard_service.get_user_rankings(ranked_users["carol"].id)
    assert unranked["all-time"]["rank"] is None
    assert unranked["all-time"]["percentile"] is None

    with pytest.raises(NotFoundError):
        await leaderboard_service.get_user_rankings(999)


async def test_recalculate_all_clears_cache(ranked_users, cache, leaderboard_service):
    cache.data["stale"] = {"entries": []}

    counts = await leaderboard_service.recalculate_all_rankings()

    assert counts == {"weekly": 2, "monthly": 2, "all-time": 2}
    assert cache.data == {}


async def test_month_change_archives_hall_of_fame(ranked_users, leaderboard_service):
    now = utcnow()
    await leaderboard_service.recalculate_rankings(LeaderboardPeriod.MONTHLY, now)

    # Same month again: nothing archived yet
    await leaderboard_service.recalculate_rankings(LeaderboardPeriod.MONTHLY, now)
    assert (await leaderboard_service.get_hall_of_fame())["entries"] == []
    await leaderboard_service.cache.clear()

    next_month = now + timedelta(days=40)
    assert await leaderboard_service.recalculate_rankings(LeaderboardPeriod.MONTHLY, next_month) == 0

    hall = await leaderboard_service.get_hall_of_fame()
    assert [(e["rank"], e["username"], e["best_rank"]) for e in hall["entries"]] == [
        (1, "alice", 1),
        (2, "bob", 2),
    ]
    assert hall["entries"][0]["months_featured"] == 1
    assert hall["entries"][0]["total_reputation"] == 100
