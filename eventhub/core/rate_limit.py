"""
Fixed-window request counting per client.

The counter store is injected so the in-process store used in development can
be swapped for Redis when several API processes share one limit.
"""
import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Collection, Protocol

import redis
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from eventhub.core.config import (
    RATE_LIMIT_BACKEND,
    RATE_LIMIT_MAX_REQUESTS,
    RATE_LIMIT_WINDOW_SECONDS,
    TRUSTED_PROXIES,
    get_redis_url,
)
from eventhub.core.errors import RateLimitExceededError

logger = logging.getLogger(__name__)


class RateLimitStore(Protocol):
    def hit(self, key: str, window_seconds: int) -> tuple[int, float]:
        """Count one request for ``key``; return (count in window, seconds until reset)."""
        ...


class InMemoryRateLimitStore:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._windows: dict[str, tuple[int, float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def hit(self, key: str, window_seconds: int) -> tuple[int, float]:
        with self._lock:
            now = self._clock()
            if now - self._last_sweep >= window_seconds:
                self._evict(now, window_seconds)

            count, started = self._windows.get(key, (0, now))
            if now - started >= window_seconds:
                count, started = 0, now
            count += 1
            self._windows[key] = (count, started)
            return count, window_seconds - (now - started)

    def _evict(self, now: float, window_seconds: int) -> None:
        expired = [key for key, (_, started) in self._windows.items() if now - started >= window_seconds]
        for key in expired:
            del self._windows[key]
        self._last_sweep = now

    def __len__(self) -> int:
        return len(self._windows)


class RedisRateLimitStore:
    def __init__(self, client: redis.Redis, prefix: str = "rate_limit:"):
        self._client = client
        self._prefix = prefix

    def hit(self, key: str, window_seconds: int) -> tuple[int, float]:
        redis_key = f"{self._prefix}{key}"
        count = int(self._client.incr(redis_key))
        if count == 1:
            self._client.expire(redis_key, window_seconds)
        ttl = self._client.ttl(redis_key)
        if ttl is None or ttl < 0:
            # key lost its expiry (e.g. a crash between INCR and EXPIRE)
            self._client.expire(redis_key, window_seconds)
            ttl = window_seconds
        return count, float(ttl)


def get_redis_client():
    """Get Redis client for the shared rate-limit store."""
    return redis.from_url(get_redis_url(), decode_responses=True)


def build_rate_limit_store(backend: str = RATE_LIMIT_BACKEND) -> RateLimitStore:
    if backend == "redis":
        return RedisRateLimitStore(get_redis_client())
    return InMemoryRateLimitStore()


def client_key(request: Request, trusted_proxies: Collection[str] = TRUSTED_PROXIES) -> str:
    peer = request.client.host if request.client else "unknown"
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded and peer in trusted_proxies:
        return forwarded.split(",")[0].strip() or peer
    return peer


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        store: RateLimitStore | None = None,
        max_requests: int = RATE_LIMIT_MAX_REQUESTS,
        window_seconds: int = RATE_LIMIT_WINDOW_SECONDS,
        trusted_proxies: Collection[str] = TRUSTED_PROXIES,
    ):
        super().__init__(app)
        self.store = store or InMemoryRateLimitStore()
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.trusted_proxies = frozenset(trusted_proxies)

    async def dispatch(self, request: Request, call_next):
        key = client_key(request, self.trusted_proxies)
        count, reset_in = self.store.hit(key, self.window_seconds)
        headers = {
            "X-RateLimit-Limit": str(self.max_requests),
            "X-RateLimit-Remaining": str(max(self.max_requests - count, 0)),
            "X-RateLimit-Reset": (datetime.now(timezone.utc) + timedelta(seconds=reset_in)).isoformat(),
        }

        if count > self.max_requests:
            logger.warning(
                "Rate limit exceeded for %s: %s requests (max %s) on %s %s",
                key,
                count,
                self.max_requests,
                request.method,
                request.url.path,
            )
            error = RateLimitExceededError()
            return JSONResponse(
                status_code=error.status_code,
                content={"detail": error.message, "kind": error.kind},
                headers=headers,
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response
