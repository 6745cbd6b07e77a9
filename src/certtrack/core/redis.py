"""
Redis Configuration

Async Redis client used for best-effort advisory locks around scheduled jobs.
Redis is optional: when it is not available, callers proceed without a lock.
"""

import logging
import secrets
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from redis.asyncio import Redis, from_url

from certtrack.core.config import settings

logger = logging.getLogger(__name__)

# Redis client instance
redis_client: Redis | None = None

# Compare-and-delete so a lock is only released by the holder that set it
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


async def init_redis() -> Redis:
    """
    Initialize Redis connection.

    Call this on application startup.
    """
    global redis_client
    redis_client = from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    # Test connection
    await redis_client.ping()
    return redis_client


async def get_redis() -> Redis | None:
    """
    Get Redis client instance.

    Returns None if Redis is not available (optional dependency).
    """
    return redis_client


async def close_redis() -> None:
    """Close Redis connection."""
    global redis_client
    if redis_client:
        await redis_client.close()
        redis_client = None


@asynccontextmanager
async def advisory_lock(
    key: str,
    ttl_seconds: int,
    client: Redis | None = None,
) -> AsyncIterator[bool]:
    """
    Try to take a best-effort advisory lock.

    Yields True when the lock was acquired or when Redis is unavailable
    (the caller should proceed), False when another holder owns the lock.
    The lock expires after ``ttl_seconds`` even if the holder crashes.

    Usage:
        async with advisory_lock("lock:my_job", 600) as acquired:
            if not acquired:
                return
            ...
    """
    client = client if client is not None else redis_client

    if client is None:
        logger.warning(f"Redis not initialized, proceeding without lock {key}")
        yield True
        return

    token = secrets.token_hex(16)
    try:
        acquired = bool(await client.set(key, token, nx=True, ex=ttl_seconds))
    except Exception as e:
        logger.warning(f"Could not acquire lock {key}, proceeding without it: {e}")
        acquired = None

    if acquired is None:
        yield True
        return

    if not acquired:
        logger.info(f"Lock {key} is held by another run")
        yield False
        return

    try:
        yield True
    finally:
        try:
            await client.eval(_RELEASE_SCRIPT, 1, key, token)
        except Exception as e:
            logger.warning(f"Failed to release lock {key}; it will expire in {ttl_seconds}s: {e}")
