from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Depends, Request

from lessonquiz.core.config import settings
from lessonquiz.core.redis_client import get_redis
from lessonquiz.services.errors import RateLimited


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimit:
    key: str
    limit: int
    window_seconds: int
    used: int


def client_ip(request: Request) -> str:
    if bool(settings.trust_proxy_headers):
        xff = str(request.headers.get("x-forwarded-for") or "")
        ip = xff.split(",")[0].strip() or str(request.headers.get("x-real-ip") or "").strip()
        if ip:
            return ip
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def rate_limit_subject(request: Request) -> str:
    """Authenticated learners are counted per account, everyone else per IP."""

    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"user:{user_id}"
    return f"ip:{client_ip(request)}"


def rate_limit(*, key_prefix: str, limit: int, window_seconds: int):
    """Fixed-window limiter. Declare it after ``get_current_user`` so the
    learner id is already on ``request.state``."""

    limit = int(limit)
    window = int(window_seconds)

    def _dep(request: Request) -> RateLimit:
        key = f"rl:{key_prefix}:{rate_limit_subject(request)}"
        try:
            r = get_redis()
            # Open the window first so the counter can never live without a TTL.
            r.set(key, 0, ex=window, nx=True)
            used = int(r.incr(key))
        except Exception:
            log.warning("rate_limit: redis unavailable prefix=%s, not limiting", key_prefix)
            return RateLimit(key=key, limit=limit, window_seconds=window, used=0)

        if used > limit:
            ttl = r.ttl(key)
            retry_after = int(ttl) if ttl and int(ttl) > 0 else window
            log.info("rate_limit: refused key=%s used=%s limit=%s", key, used, limit)
            raise RateLimited("too many submissions, slow down", retry_after=retry_after)

        return RateLimit(key=key, limit=limit, window_seconds=window, used=used)

    return Depends(_dep)
