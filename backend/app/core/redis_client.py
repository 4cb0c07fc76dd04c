from __future__ import annotations

from functools import lru_cache

import redis

from app.core.config import settings


@lru_cache(maxsize=4)
def _pool(url: str) -> redis.ConnectionPool:
    return redis.ConnectionPool.from_url(
        url,
        decode_responses=True,
        socket_timeout=float(settings.redis_socket_timeout_seconds),
        socket_connect_timeout=float(settings.redis_socket_timeout_seconds),
    )


def get_redis() -> redis.Redis:
    """Rate limiting and the pending upload store share one pool per URL."""
    return redis.Redis(connection_pool=_pool(settings.redis_url))
