"""Redis client lifecycle management.

The same client backs token blacklisting and the realtime change feed, so the
connection is opened once in the application lifespan and shared.
"""

import redis.asyncio as redis
import structlog

from peer_chat.core.config import settings

logger = structlog.get_logger()

redis_client: redis.Redis | None = None  # type: ignore[type-arg]


async def init_redis(url: str | None = None) -> redis.Redis:  # type: ignore[type-arg]
    """Initialize the Redis connection."""
    global redis_client  # noqa: PLW0603
    redis_client = redis.from_url(url or settings.redis.url, decode_responses=True)
    await redis_client.ping()
    logger.info("Redis connected")
    return redis_client


async def close_redis() -> None:
    """Close the Redis connection."""
    global redis_client  # noqa: PLW0603
    if redis_client:
        await redis_client.aclose()
        redis_client = None


def get_redis() -> redis.Redis:  # type: ignore[type-arg]
    """Get the active Redis client."""
    if redis_client is None:
        raise RuntimeError("Redis client not initialized")
    return redis_client


async def redis_is_healthy() -> bool:
    """Ping Redis without raising; used by the health endpoint."""
    if redis_client is None:
        return False
    try:
        return bool(await redis_client.ping())
    except redis.RedisError:
        logger.warning("Redis ping failed")
        return False
