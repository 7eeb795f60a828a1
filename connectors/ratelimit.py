"""
RateLimiter — Redis sliding-window limits per user and action.

Each ``(action, user)`` pair owns a sorted set of request timestamps.  A
check trims entries older than the window, counts what is left and records
the new request only when it is allowed.

Redis being down never blocks callers: the check fails open and logs a
warning.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

import redis
import redis.asyncio as aioredis

from config.settings import Settings
from utils.redaction import redact_id

logger = logging.getLogger(__name__)

WRITE_TOKEN_ACTION = "token_write"


@dataclass
class RateLimitResult:
    """
    Outcome of one check.

    Attributes:
        allowed:     Whether the request may proceed.
        remaining:   Requests left in the current window.
        limit:       Requests allowed per window.
        retry_after: Seconds until the caller should retry (0 if allowed).
    """

    allowed: bool
    remaining: int
    limit: int
    retry_after: int


class RateLimiter:
    """Async Redis-backed sliding window limiter."""

    def __init__(
        self,
        redis_url: str,
        limit: int = 20,
        window_seconds: int = 3600,
        *,
        enabled: bool = True,
    ) -> None:
        self.redis_url = redis_url
        self.limit = limit
        self.window_seconds = window_seconds
        self.enabled = enabled
        self._redis: Optional[aioredis.Redis] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateLimiter":
        return cls(
            settings.redis_url,
            settings.write_token_rate_limit,
            settings.write_token_rate_window_seconds,
            enabled=settings.rate_limit_enabled,
        )

    def _get_redis(self) -> aioredis.Redis:
        # Connect lazily so the app starts before Redis is reachable
        if self._redis is None:
            self._redis = aioredis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
            )
        return self._redis

    def _open(self) -> RateLimitResult:
        return RateLimitResult(allowed=True, remaining=self.limit, limit=self.limit, retry_after=0)

    async def check(self, user_id: str, action: str) -> RateLimitResult:
        """
        Count this request against ``user_id``'s budget for ``action``.

        Denied requests are not recorded, so a caller hammering the endpoint
        does not push its own window forward.
        """
        if not self.enabled:
            return self._open()

        now = time.time()
        key = f"ratelimit:{action}:{user_id}"

        try:
            r = self._get_redis()

            pipe = r.pipeline(transaction=True)
            pipe.zremrangebyscore(key, "-inf", now - self.window_seconds)
            pipe.zcard(key)
            results = await pipe.execute()
            current_count: int = results[1]

            if current_count >= self.limit:
                logger.warning(
                    "Rate limit hit: action=%s user=%s count=%d limit=%d",
                    action,
                    redact_id(user_id),
                    current_count,
                    self.limit,
                )
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    limit=self.limit,
                    retry_after=max(1, self.window_seconds),
                )

            pipe = r.pipeline(transaction=True)
            pipe.zadd(key, {f"{now}:{current_count}": now})
            pipe.expire(key, self.window_seconds + 10)
            await pipe.execute()

            return RateLimitResult(
                allowed=True,
                remaining=max(0, self.limit - current_count - 1),
                limit=self.limit,
                retry_after=0,
            )
        except redis.RedisError as exc:
            logger.warning(
                "Redis unavailable for rate limiting, allowing request: %s (%s)",
                type(exc).__name__,
                action,
            )
            return self._open()

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
