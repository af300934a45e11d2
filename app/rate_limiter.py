"""
Fixed-window rate limiting for auth and public booking routes.

Windows are counted in Redis (INCR + EXPIRE) so every API worker shares
them. When Redis is unreachable each process falls back to its own
in-memory windows.
"""

import logging
import os
import time
from dataclasses import dataclass
from threading import Lock
from typing import Optional

import redis
from fastapi import HTTPException, Request, status

from .config import RATE_LIMIT_ENABLED, REDIS_URL

logger = logging.getLogger(__name__)

redis_client: Optional[redis.Redis] = None

REDIS_OPTIONS = {
    "decode_responses": True,
    "socket_connect_timeout": 5,
    "socket_timeout": 10,
    "retry_on_timeout": True,
    "health_check_interval": 30,
}


def get_redis_client() -> redis.Redis:
    """Shared Redis client, from REDIS_URL or REDIS_HOST/REDIS_PORT"""
    global redis_client

    if redis_client is None:
        if REDIS_URL:
            client = redis.from_url(REDIS_URL, **REDIS_OPTIONS)
        else:
            client = redis.Redis(
                host=os.getenv("REDIS_HOST", "localhost"),
                port=int(os.getenv("REDIS_PORT", "6379")),
                password=os.getenv("REDIS_PASSWORD"),
                db=int(os.getenv("REDIS_DB", "0")),
                **REDIS_OPTIONS,
            )
        client.ping()
        redis_client = client
        logger.info("✅ Redis connected")

    return redis_client


@dataclass
class Window:
    count: int
    limit: int
    resets_in: int

    @property
    def allowed(self) -> bool:
        return self.count <= self.limit

    @property
    def remaining(self) -> int:
        return max(self.limit - self.count, 0)


class FixedWindowLimiter:
    """Counts hits per key inside windows of `window_seconds`"""

    def __init__(self):
        self._local: dict[str, tuple[int, float]] = {}
        self._lock = Lock()

    def _hit_redis(self, client: redis.Redis, key: str, window_seconds: int) -> tuple[int, int]:
        pipe = client.pipeline()
        pipe.incr(key)
        pipe.ttl(key)
        count, ttl = pipe.execute()
        if ttl is None or ttl < 0:
            client.expire(key, window_seconds)
            ttl = window_seconds
        return int(count), int(ttl)

    def _hit_local(self, key: str, window_seconds: int, now: float) -> tuple[int, int]:
        with self._lock:
            count, reset_at = self._local.get(key, (0, 0.0))
            if now >= reset_at:
                count, reset_at = 0, now + window_seconds
            count += 1
            self._local[key] = (count, reset_at)
            for stale in [k for k, (_, r) in self._local.items() if r <= now]:
                del self._local[stale]
        return count, max(int(reset_at - now), 0)

    def hit(self, key: str, limit: int, window_seconds: int, client: Optional[redis.Redis] = None) -> Window:
        if client is not None:
            try:
                count, ttl = self._hit_redis(client, key, window_seconds)
                return Window(count, limit, ttl)
            except redis.RedisError as e:
                logger.warning(f"⚠️ Rate limit counter unavailable in Redis, counting locally: {e}")
        count, ttl = self._hit_local(key, window_seconds, time.time())
        return Window(count, limit, ttl)


limiter = FixedWindowLimiter()


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def rate_limit_key(request: Request, key_prefix: str) -> str:
    """Public booking routes are limited per salon slug and caller IP"""
    slug = request.path_params.get("slug")
    scope = f"{slug}:" if slug else ""
    return f"rl:{key_prefix}:{scope}{client_ip(request)}"


def create_rate_limiter(limit: int, window_seconds: int, key_prefix: str = "api"):
    """
    Build a FastAPI dependency that answers 429 with Retry-After once
    `limit` requests were made inside the window.

    Example:
        login_rate_limit = create_rate_limiter(limit=10, window_seconds=300, key_prefix="login")

        @router.post("/login")
        async def login(data: LoginRequest, _: None = Depends(login_rate_limit)):
            ...
    """

    async def rate_limiter(request: Request):
        if not RATE_LIMIT_ENABLED:
            return

        try:
            client = get_redis_client()
        except Exception as e:
            logger.debug(f"Redis unavailable for rate limiting: {e}")
            client = None

        key = rate_limit_key(request, key_prefix)
        window = limiter.hit(key, limit, window_seconds, client)
        request.state.rate_limit_remaining = window.remaining

        if not window.allowed:
            logger.warning(f"🚫 Rate limit exceeded for {key} ({window.count}/{limit})")
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={
                    "message": f"Too many requests. Try again in {window.resets_in} seconds.",
                    "retry_after": window.resets_in,
                },
                headers={"Retry-After": str(window.resets_in)},
            )

    return rate_limiter
