"""
Redis cache for the public booking catalog.

Entries are keyed per salon slug and section ("profile", "services", ...)
and dropped as a group whenever the salon edits its catalog. Every Redis
error degrades to a cache miss.
"""

import json
import logging
from functools import wraps
from typing import Any, Callable, Optional

from .config import CACHE_ENABLED
from .rate_limiter import get_redis_client

logger = logging.getLogger(__name__)

PUBLIC_NAMESPACE = "public"


class Cache:
    """JSON values in Redis; a disabled or unreachable Redis behaves as empty"""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self.redis_client = None

    def _get_client(self):
        if not self.enabled:
            return None
        if self.redis_client is None:
            try:
                self.redis_client = get_redis_client()
            except Exception as e:
                logger.warning(f"⚠️ Redis cache unavailable: {e}")
                return None
        return self.redis_client

    def _run(self, action: str, key: str, operation: Callable, default: Any):
        client = self._get_client()
        if not client:
            return default
        try:
            return operation(client)
        except Exception as e:
            logger.error(f"❌ Cache {action} error for {key}: {e}")
            return default

    def get(self, key: str) -> Optional[Any]:
        raw = self._run("get", key, lambda client: client.get(key), None)
        if raw is None:
            logger.debug(f"Cache MISS: {key}")
            return None
        logger.debug(f"Cache HIT: {key}")
        return json.loads(raw)

    def set(self, key: str, value: Any, ttl: int) -> bool:
        payload = json.dumps(value, default=str)
        return self._run("set", key, lambda client: bool(client.setex(key, ttl, payload)), False)

    def delete_pattern(self, pattern: str) -> int:
        def drop(client) -> int:
            keys = list(client.scan_iter(match=pattern))
            return client.delete(*keys) if keys else 0

        deleted = self._run("delete", pattern, drop, 0)
        if deleted:
            logger.info(f"🧹 Cache dropped {deleted} keys for {pattern}")
        return deleted


cache = Cache(enabled=CACHE_ENABLED)


def public_catalog_key(slug: str, section: str) -> str:
    return f"{PUBLIC_NAMESPACE}:{slug}:{section}"


def cached_public(section: str, ttl: int):
    """
    Cache a service method whose first argument is the salon slug.

    Example:
        @cached_public("services", ttl=300)
        def services(self, slug: str) -> list[dict]:
            ...
    """

    def decorator(func):
        @wraps(func)
        def wrapper(owner, slug: str, *args, **kwargs):
            key = public_catalog_key(slug, section)
            hit = cache.get(key)
            if hit is not None:
                return hit
            result = func(owner, slug, *args, **kwargs)
            if result is not None:
                cache.set(key, result, ttl)
            return result

        return wrapper

    return decorator


def invalidate_public_catalog(slug: str) -> int:
    """Drop cached public booking data after tenant, service or professional changes"""
    return cache.delete_pattern(public_catalog_key(slug, "*"))
