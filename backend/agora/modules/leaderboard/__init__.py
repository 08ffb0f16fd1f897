"""
Leaderboard Module - Reputation rankings.

Features:
- Weekly, monthly and all-time rankings
- Redis cached responses
- Hall of Fame from archived monthly leaders
"""

from agora.modules.leaderboard.cache import LeaderboardCache, get_leaderboard_cache
from agora.modules.leaderboard.service import LeaderboardPeriod, LeaderboardService

__all__ = [
    "LeaderboardService",
    "LeaderboardPeriod",
    "LeaderboardCache",
    "get_leaderboard_cache",
]
