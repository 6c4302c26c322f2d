import asyncio
import json
import logging
from concurrent.futures import Future
from typing import Any

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

# Global Redis client instance, set up in the application lifespan
redis_client: Redis | None = None

# Loop that owns redis_client; sync handlers run in the threadpool and must
# schedule coroutines onto it.
event_loop: asyncio.AbstractEventLoop | None = None


def unread_cache_key(user_id: object) -> str:
    return f"dm:unread:{user_id}"


async def get_cached_json(key: str) -> Any | None:
    """Read a JSON value, treating any Redis failure as a cache miss."""
    try:
        if redis_client:
            cached = await redis_client.get(key)
            if cached is not None:
                return json.loads(cached)
    except Exception:
        logger.warning("Redis cache read failed for %s", key)
    return None


async def set_cached_json(key: str, value: Any, ttl_seconds: int) -> None:
    try:
        if redis_client:
            await redis_client.setex(key, ttl_seconds, json.dumps(value))
    except Exception:
        logger.warning("Redis cache write failed for %s", key)


def invalidate_keys(*keys: str) -> None:
    """Fire-and-forget delete, callable from sync code in any thread."""
    if not keys or redis_client is None or event_loop is None:
        return
    try:
        future = asyncio.run_coroutine_threadsafe(redis_client.delete(*keys), event_loop)
    except Exception:
        logger.warning("Failed to invalidate cache keys %s", keys)
        return
    future.add_done_callback(lambda f: _log_invalidate_failure(f, keys))


def _log_invalidate_failure(future: Future, keys: tuple[str, ...]) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.warning("Failed to invalidate cache keys %s: %s", keys, exc)
