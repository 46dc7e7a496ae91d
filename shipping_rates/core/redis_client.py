"""
Redis client for the rate cache

Lets several calculator instances share memoized carrier quotes and failures.
Redis is optional: without REDIS_URL (or when it is unreachable) rates are
cached in process memory instead.
"""
import logging
from typing import Optional

import redis.asyncio as redis

from shipping_rates.core.config import Settings, settings as default_settings
from shipping_rates.core.rate_cache import InMemoryCacheStore, RateCache, RedisCacheStore

logger = logging.getLogger(__name__)

# Global Redis client (initialized lazily)
_redis_client: Optional[redis.Redis] = None


async def get_redis(settings: Settings = default_settings) -> Optional[redis.Redis]:
    """Get Redis client, initializing if needed.

    Returns None if REDIS_URL not configured (graceful degradation).
    """
    global _redis_client

    if not settings.REDIS_URL:
        return None

    if _redis_client is None:
        client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True
        )
        try:
            # Test connection
            await client.ping()
        except (redis.RedisError, OSError) as e:
            logger.warning(f"Redis connection failed: {e}. Falling back to in-memory.")
            await client.aclose()
            return None
        _redis_client = client
        logger.info("Redis connection established")

    return _redis_client


async def close_redis():
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


async def create_rate_cache(settings: Settings = default_settings) -> RateCache:
    """Build a RateCache on Redis when available, in memory otherwise."""
    ttl = settings.RATE_CACHE_TTL_SECONDS or None

    client = await get_redis(settings)
    if client is not None:
        return RateCache(RedisCacheStore(client, prefix=settings.RATE_CACHE_PREFIX, ttl_seconds=ttl))

    return RateCache(InMemoryCacheStore(ttl_seconds=ttl, max_size=settings.RATE_CACHE_MAX_SIZE or None))
