"""Sliding-window rate limiter on a Redis sorted set (one member per attempt)."""
import time
import uuid
from dataclasses import dataclass

import redis
from loguru import logger


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: int  # epoch ms when the oldest counted attempt leaves the window


class SlidingWindowRateLimiter:
    def __init__(self, r: redis.Redis, limit: int, window_seconds: int, prefix: str = "ratelimit:checkout") -> None:
        self.r = r
        self.limit = int(limit)
        self.window_ms = int(window_seconds) * 1000
        self.prefix = prefix

    def key(self, identity: str) -> str:
        return f"{self.prefix}:{identity}"

    def hit(self, identity: str, now_ms: int | None = None) -> RateLimitResult:
        now_ms = int(time.time() * 1000) if now_ms is None else int(now_ms)
        key = self.key(identity)
        member = f"{now_ms}-{uuid.uuid4().hex[:8]}"
        try:
            pipe = self.r.pipeline(transaction=True)
            pipe.zremrangebyscore(key, 0, now_ms - self.window_ms)
            pipe.zadd(key, {member: now_ms})
            pipe.zcard(key)
            pipe.zrange(key, 0, 0, withscores=True)
            pipe.pexpire(key, self.window_ms)
            _, _, count, oldest, _ = pipe.execute()
        except redis.RedisError as e:
            logger.warning("rate limiter unavailable, allowing {}: {}", identity, e)
            return RateLimitResult(allowed=True, remaining=self.limit, reset_at=now_ms + self.window_ms)

        oldest_ms = int(oldest[0][1]) if oldest else now_ms
        reset_at = oldest_ms + self.window_ms
        if count > self.limit:
            # rejected attempts do not extend the window
            try:
                self.r.zrem(key, member)
            except redis.RedisError as e:
                logger.warning("rate limiter: could not drop rejected attempt for {}: {}", identity, e)
            logger.info("rate limited {} ({} attempts in window)", identity, count - 1)
            return RateLimitResult(allowed=False, remaining=0, reset_at=reset_at)
        return RateLimitResult(allowed=True, remaining=max(0, self.limit - count), reset_at=reset_at)
