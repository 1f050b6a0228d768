"""ARQ configuration for the step queue."""
from typing import Optional

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings

from agent_engine.config import settings

REDIS_SETTINGS = RedisSettings(
    host=settings.REDIS_HOST,
    port=settings.REDIS_PORT,
    database=settings.REDIS_DATABASE,
)

_pool: Optional[ArqRedis] = None


async def get_redis_pool() -> ArqRedis:
    """Return the process-wide ARQ Redis connection pool, creating it on first use."""
    global _pool
    if _pool is None:
        _pool = await create_pool(REDIS_SETTINGS, default_queue_name=settings.ARQ_QUEUE_NAME)
    return _pool


async def close_redis_pool():
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
