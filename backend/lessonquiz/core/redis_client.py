from __future__ import annotations

from functools import lru_cache

import redis

from lessonquiz.core.config import settings


@lru_cache(maxsize=1)
def _pool() -> redis.ConnectionPool:
    # Submission locks sit on the request path, so a hung Redis must fail fast.
    return redis.ConnectionPool.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_connect_timeout=2.0,
        socket_timeout=2.0,
    )


def get_redis() -> redis.Redis:
    return redis.Redis(connection_pool=_pool())


def redis_ready(r: redis.Redis | None = None) -> bool:
    try:
        return bool((r or get_redis()).ping())
    except redis.RedisError:
        return False
