"""
In-memory token-bucket rate limiter.

State lives in this process only: N instances behind a load balancer allow
N times the configured rate.
"""

import time

from fastapi import HTTPException, Request, status
from loguru import logger
from auth_provider.config import settings
from auth_provider.util import get_client_ip


class _Bucket:
    __slots__ = ("tokens", "last_refill")

    def __init__(self, capacity: float, now: float):
        self.tokens: float = capacity
        self.last_refill: float = now


class RateLimiter:
    """
    Token bucket per key (client IP); `rate` tokens per second refill up to
    `capacity`.
    """

    def __init__(self, rate: float, capacity: int):
        self.rate = rate
        self.capacity = capacity
        self._buckets: dict[str, _Bucket] = {}

    def allow(self, key: str) -> bool:
        now = time.monotonic()
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = self._buckets[key] = _Bucket(self.capacity, now)
        bucket.tokens = min(self.capacity, bucket.tokens + (now - bucket.last_refill) * self.rate)
        bucket.last_refill = now
        if bucket.tokens >= 1.0:
            bucket.tokens -= 1.0
            return True
        return False

    def cleanup(self, max_age: float = 3600.0) -> int:
        now = time.monotonic()
        stale = [key for key, bucket in self._buckets.items() if now - bucket.last_refill > max_age]
        for key in stale:
            del self._buckets[key]
        return len(stale)

    def reset(self):
        self._buckets.clear()


limiter = RateLimiter(
    rate=settings.rate_limit_per_minute / 60.0,
    capacity=settings.rate_limit_burst,
)


async def enforce_rate_limit(request: Request):
    """
    FastAPI dependency rejecting callers that exhausted their bucket.
    """
    key = f"{request.url.path}:{get_client_ip(request)}"
    if not limiter.allow(key):
        logger.warning(f"Rate limit exceeded for {key}")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests",
        )
