"""Fixed-window request counters for the redirect endpoint.

Counters reset wholesale when their window expires; there is no continuous decay.
The in-memory limiter is per process, so with several API instances each keeps its own
counters and the effective budget is approximate (roughly limit x instances). Use the Redis
backend when one shared budget is required.
"""
from __future__ import annotations
import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

import redis

from linkpeek.config import get_settings, Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float  # epoch seconds when the window resets
    retry_after: int = 0  # whole seconds, > 0 only when rejected


class RateLimiter(ABC):
    @abstractmethod
    def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        """Count one request against ``key`` and report whether it fits the budget."""


def _retry_after(reset_at: float, now: float) -> int:
    return max(1, math.ceil(reset_at - now))


class InMemoryRateLimiter(RateLimiter):
    def __init__(self, max_entries: int = 10_000, clock=time.time):
        self._entries: dict[str, list[float]] = {}  # key -> [count, reset_at]
        self._lock = threading.Lock()
        self._max_entries = max_entries
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    def _sweep(self, now: float) -> None:
        expired = [k for k, (_, reset_at) in self._entries.items() if reset_at <= now]
        for k in expired:
            del self._entries[k]

    def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            if len(self._entries) > self._max_entries:
                self._sweep(now)
            entry = self._entries.get(key)
            if entry is None or entry[1] <= now:
                entry = [0, now + window_seconds]
                self._entries[key] = entry
            if entry[0] >= limit:
                return RateLimitResult(False, 0, entry[1], _retry_after(entry[1], now))
            entry[0] += 1
            return RateLimitResult(True, int(limit - entry[0]), entry[1])


class RedisRateLimiter(RateLimiter):
    """INCR/EXPIRE counter shared by all instances. Fails open when Redis is unreachable."""

    def __init__(self, client: redis.Redis | None = None, url: str | None = None, clock=time.time):
        self._client = client
        self._url = url
        self._clock = clock

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.Redis.from_url(self._url or get_settings().redis_url)
        return self._client

    def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        now = self._clock()
        window_start = int(now // window_seconds) * window_seconds
        reset_at = float(window_start + window_seconds)
        bucket = f"ratelimit:{key}:{window_start}"
        try:
            r = self.client
            current = r.incr(bucket, 1)
            if current == 1:
                r.expire(bucket, window_seconds)
        except Exception as e:
            logger.warning("rate limit backend unavailable, allowing request: %s", e)
            return RateLimitResult(True, limit, reset_at)
        if current > limit:
            return RateLimitResult(False, 0, reset_at, _retry_after(reset_at, now))
        return RateLimitResult(True, int(limit - current), reset_at)


def build_rate_limiter(settings: Settings | None = None) -> RateLimiter:
    s = settings or get_settings()
    if s.rate_limit_backend == "redis":
        return RedisRateLimiter(url=s.redis_url)
    return InMemoryRateLimiter(max_entries=s.rate_limit_max_entries)
