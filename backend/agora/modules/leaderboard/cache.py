"""
Leaderboard Cache - JSON snapshots in Redis.
"""

import json
from typing import Any

import redis.asyncio as redis
from loguru import logger
from redis.exceptions import RedisError

from agora.core.config import settings

CACHE_KEY_PREFIX = "leaderboard:"


class LeaderboardCache:
    """
    Redis cache for leaderboard responses.

    The cache is an optimisation only: every Redis failure is logged and
    reported as a miss, so callers fall back to the database.

    Usage:
        cache = LeaderboardCache()
        await cache.set_json("weekly", data)
        data = await cache.get_json("weekly")
    """

    def __init__(self, url: str | None = None, ttl: int | None = None) -> None:
        """Initialize Redis settings; the connection opens on first use."""
        self._url = url or str(settings.redis_url)
        self.ttl = ttl or settings.leaderboard_cache_ttl
        self._redis: redis.Redis | None = None

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.from_url(
            self._url,
            encoding="utf-8",
            decode_responses=True,
        )

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    def _key(self, name: str) -> str:
        return f"{CACHE_KEY_PREFIX}{name}"

    async def get_json(self, name: str) -> Any | None:
        if not self._redis:
            await self.connect()

        try:
            raw = await self._redis.get(self._key(name))
        except RedisError as e:
            logger.warning(f"Leaderboard cache read failed for {name}: {e}")
            return None

        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Invalid leaderboard cache data for {name}")
            return None

    async def set_json(self, name: str, value: Any) -> None:
        if not self._redis:
            await self.connect()

        try:
            await self._redis.setex(self._key(name), self.ttl, json.dumps(value, default=str))
        except RedisError as e:
            logger.warning(f"Leaderboard cache write failed for {name}: {e}")

    async def delete(self, name: str) -> None:
        if not self._redis:
            await self.connect()

        try:
            await self._redis.delete(self._key(name))
        except RedisError as e:
            logger.warning(f"Leaderboard cache delete failed for {name}: {e}")

    async def clear(self) -> int:
        """Drop every leaderboard key."""
        if not self._redis:
            await self.connect()

        try:
            keys = [key async for key in self._redis.scan_iter(match=f"{CACHE_KEY_PREFIX}*")]
            if keys:
                await self._redis.delete(*keys)
            return len(keys)
        except RedisError as e:
            logger.warning(f"Leaderboard cache clear failed: {e}")
            return 0


# Global cache instance
_leaderboard_cache: LeaderboardCache | None = None


async def get_leaderboard_cache() -> LeaderboardCache:
    """Get or create leaderboard cache singleton."""
    global _leaderboard_cache
    if _leaderboard_cache is None:
        _leaderboard_cache = LeaderboardCache()
        await _leaderboard_cache.connect()
    return _leaderboard_cache


async def close_leaderboard_cache() -> None:
    global _leaderboard_cache
    if _leaderboard_cache is not None:
        await _leaderboard_cache.disconnect()
        _leaderboard_cache = None
