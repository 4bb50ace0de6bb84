"""
DevTinder — Message rate limiting.

Fixed-window counter per sender kept in Redis::

    ratelimit:messages:<user_id>:<window index>

The first hit of a window sets its expiry, so stale keys clean themselves
up.  Without a Redis client every send is allowed, and a Redis failure is
logged and lets the message through rather than blocking chat.
"""

from __future__ import annotations

import time
import uuid
from typing import Any

import structlog
from redis.exceptions import RedisError

logger = structlog.get_logger("devtinder.rate_limit")


class MessageRateLimiter:
    def __init__(self, redis: Any | None, limit: int, window_seconds: int) -> None:
        self.redis = redis
        self.limit = limit
        self.window_seconds = window_seconds

    def key_for(self, user_id: uuid.UUID | str, now: float | None = None) -> str:
        window = int((time.time() if now is None else now) // self.window_seconds)
        return f"ratelimit:messages:{user_id}:{window}"

    async def hit(self, user_id: uuid.UUID | str) -> bool:
        """Count one message for ``user_id``; ``False`` once over the limit."""
        if self.redis is None:
            return True

        key = self.key_for(user_id)
        try:
            count = await self.redis.incr(key)
            if count == 1:
                await self.redis.expire(key, self.window_seconds)
        except RedisError as exc:
            logger.warning("rate_limit_unavailable", user_id=str(user_id), error=str(exc))
            return True

        if count > self.limit:
            logger.info("rate_limit_exceeded", user_id=str(user_id), count=count, limit=self.limit)
            return False
        return True
