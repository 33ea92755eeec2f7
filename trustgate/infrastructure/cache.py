"""Shared Cache Client — redis.asyncio connection with bounded socket timeouts.

Invariants:
    - Client is created lazily (from_url does not connect) so startup never blocks on redis
    - Every command carries socket_timeout / socket_connect_timeout (no unbounded waits)
    - Empty redis_url means "no shared cache": callers receive None and degrade

Design Decisions:
    - Singleton cache_client initialized on startup, mirrors db_manager lifecycle
    - decode_responses=True: keys and markers are plain text
"""

import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

cache_client: redis.Redis | None = None


def init_cache(redis_url: str, socket_timeout: float = 2.0) -> redis.Redis | None:
    global cache_client
    if not redis_url:
        logger.warning("REDIS_URL empty: replay guard will use the in-process fallback")
        cache_client = None
        return None
    cache_client = redis.from_url(
        redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
        max_connections=50,
    )
    return cache_client


async def cache_health_check(client: redis.Redis | None) -> bool:
    """Ping the shared cache (for readiness probes)."""
    if client is None:
        return False
    try:
        return bool(await client.ping())
    except (RedisError, OSError) as e:
        logger.error(f"Cache health check failed: {e}")
        return False


async def close_cache() -> None:
    global cache_client
    if cache_client is not None:
        await cache_client.aclose()
        cache_client = None
        logger.info("Redis connection closed")
