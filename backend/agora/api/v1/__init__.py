"""
API Version 1 Router.

Combines all API endpoints under /api/v1 prefix.
"""

from fastapi import APIRouter

from agora.api.v1.endpoints import (
    badges,
    categories,
    leaderboard,
    moderation,
    notifications,
    polls,
    replies,
    reports,
    reputation,
    search,
    topics,
    votes,
)

router = APIRouter()

# Include endpoint routers
router.include_router(categories.router, prefix="/categories", tags=["Categories"])
router.include_router(moderation.router, tags=["Moderation"])
router.include_router(topics.router, prefix="/topics", tags=["Topics"])
router.include_router(replies.router, tags=["Replies"])
router.include_router(votes.router, tags=["Votes"])
router.include_router(reputation.router, tags=["Reputation"])
router.include_router(reports.router, prefix="/reports", tags=["Reports"])
router.include_router(search.router, prefix="/search", tags=["Search"])
router.include_router(polls.router, prefix="/polls", tags=["Polls"])
router.include_router(leaderboard.router, prefix="/leaderboard", tags=["Leaderboard"])
router.include_router(badges.router, prefix="/badges", tags=["Badges"])
router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
