from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

from lessonquiz.core.config import settings
from lessonquiz.core.redis_client import get_redis


log = logging.getLogger(__name__)


def submission_lock_key(user_id: uuid.UUID, quiz_id: uuid.UUID) -> str:
    return f"locks:quiz_submit:{user_id}:{quiz_id}"


@contextmanager
def submission_lock(user_id: uuid.UUID, quiz_id: uuid.UUID) -> Iterator[bool]:
    """Per (user, quiz) mutex around a submission.

    Yields False when another submission for the same key currently holds the
    lock. When Redis cannot be reached the lock degrades to a no-op and the
    enrollment row lock taken inside the transaction remains the only guard.
    """

    key = submission_lock_key(user_id, quiz_id)
    token = uuid.uuid4().hex
    try:
        r = get_redis()
        acquired = bool(r.set(key, token, nx=True, ex=int(settings.submit_lock_seconds)))
    except Exception:
        log.warning("submission_lock: redis unavailable key=%s, relying on row lock", key)
        yield True
        return

    if not acquired:
        yield False
        return

    try:
        yield True
    finally:
        try:
            if r.get(key) == token:
                r.delete(key)
        except Exception:
            log.warning("submission_lock: release failed key=%s", key)
