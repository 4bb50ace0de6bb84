"""Unit tests for the Redis-backed message rate limiter."""
import uuid
from unittest.mock import AsyncMock

from redis.exceptions import ConnectionError as RedisConnectionError

from devtinder.services.rate_limit import MessageRateLimiter


def make_redis(count):
    redis = AsyncMock()
    redis.incr.return_value = count
    return redis


class TestMessageRateLimiter:

    async def test_without_redis_everything_passes(self):
        limiter = MessageRateLimiter(None, limit=1, window_seconds=60)
        for _ in range(5):
            assert await limiter.hit(uuid.uuid4()) is True

    async def test_first_hit_sets_window_expiry(self):
        redis = make_redis(1)
        limiter = MessageRateLimiter(redis, limit=30, window_seconds=60)
        user_id = uuid.uuid4()

        assert await limiter.hit(user_id) is True

        key = redis.incr.await_args.args[0]
        assert key.startswith(f"ratelimit:messages:{user_id}:")
        redis.expire.assert_awaited_once_with(key, 60)

    async def test_later_hits_do_not_reset_expiry(self):
        redis = make_redis(5)
        limiter = MessageRateLimiter(redis, limit=30, window_seconds=60)

        assert await limiter.hit(uuid.uuid4()) is True
        redis.expire.assert_not_awaited()

    async def test_over_limit_is_refused(self):
        limiter = MessageRateLimiter(make_redis(31), limit=30, window_seconds=60)
        assert await limiter.hit(uuid.uuid4()) is False

    async def test_at_limit_still_allowed(self):
        limiter = MessageRateLimiter(make_redis(30), limit=30, window_seconds=60)
        assert await limiter.hit(uuid.uuid4()) is True

    async def test_redis_failure_fails_open(self):
        redis = AsyncMock()
        redis.incr.side_effect = RedisConnectionError("down")
        limiter = MessageRateLimiter(redis, limit=1, window_seconds=60)

        assert await limiter.hit(uuid.uuid4()) is True

    def test_key_changes_per_window(self):
        limiter = MessageRateLimiter(None, limit=1, window_seconds=60)
        user_id = uuid.uuid4()
        assert limiter.key_for(user_id, now=0) == limiter.key_for(user_id, now=59)
        assert limiter.key_for(user_id, now=59) != limiter.key_for(user_id, now=60)
