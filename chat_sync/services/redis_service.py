import logging
import redis.asyncio as redis
from redis import exceptions as redis_exceptions
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from chat_sync.config import settings

logger = logging.getLogger(__name__)

# Global Connection Pool
_pool = redis.ConnectionPool(
    host=settings.REDIS_HOST,
    port=settings.REDIS_PORT,
    db=settings.REDIS_DB,
    password=settings.REDIS_PASSWORD,
    decode_responses=True,
    max_connections=50
)


def get_redis() -> redis.Redis:
    """Get a Redis client from the pool."""
    return redis.Redis(connection_pool=_pool)


@asynccontextmanager
async def acquire_lock(
    lock_name: str,
    expire: int = 60,
    wait_time: float = 10,
    client: redis.Redis = None,
) -> AsyncGenerator[bool, None]:
    """
    Distributed lock shared by every worker process.

    Args:
        lock_name: The unique key for the lock.
        expire: Seconds before the lock auto-releases.
        wait_time: Seconds to wait for the lock before giving up (0 = don't wait).

    Yields:
        True if the lock was acquired.
    """
    client = client or get_redis()
    lock = client.lock(f"lock:{lock_name}", timeout=expire, blocking_timeout=wait_time)

    acquired = False
    try:
        acquired = await lock.acquire(blocking=wait_time > 0)
    except redis_exceptions.LockError:
        acquired = False
    except redis_exceptions.RedisError as e:
        logger.error(f"Redis Lock Error: {e}")
        acquired = False

    try:
        yield acquired
    finally:
        if acquired:
            try:
                await lock.release()
            except redis_exceptions.LockError:
                # Lock expired before release
                pass
