"""Redis-backed JSON cache with TTLs and pattern invalidation"""
import json
import logging
from typing import Any, List, Optional

import redis

from app.config import settings

logger = logging.getLogger(__name__)


class CacheService:
    """
    Thin cache layer over Redis

    Every operation degrades to a miss / no-op when Redis is not configured or
    unreachable, so callers never need to guard cache calls.
    """

    def __init__(self, client: Optional[redis.Redis] = None, prefix: str = None):
        self.client = client
        self.prefix = prefix if prefix is not None else settings.CACHE_KEY_PREFIX

    @classmethod
    def from_settings(cls) -> "CacheService":
        """Connect using REDIS_URL; an empty URL or failed ping gives a disabled cache"""
        if not settings.REDIS_URL:
            logger.warning("REDIS_URL not set - caching disabled")
            return cls(None)
        try:
            client = redis.from_url(
                settings.REDIS_URL,
                password=settings.REDIS_PASSWORD if settings.REDIS_PASSWORD else None,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
                retry_on_timeout=True
            )
            client.ping()
        except redis.RedisError as e:
            logger.warning(f"Redis not available for caching: {e}")
            return cls(None)
        return cls(client)

    @property
    def is_enabled(self) -> bool:
        return self.client is not None

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str) -> Optional[Any]:
        if not self.client:
            return None
        try:
            value = self.client.get(self._key(key))
        except redis.RedisError as e:
            logger.error(f"Error getting cache key {key}: {e}")
            return None
        return json.loads(value) if value else None

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        if not self.client:
            return False
        try:
            payload = json.dumps(value, default=str)
            if ttl_seconds:
                self.client.setex(self._key(key), ttl_seconds, payload)
            else:
                self.client.set(self._key(key), payload)
            return True
        except redis.RedisError as e:
            logger.error(f"Error setting cache key {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        if not self.client:
            return False
        try:
            return self.client.delete(self._key(key)) > 0
        except redis.RedisError as e:
            logger.error(f"Error deleting cache key {key}: {e}")
            return False

    def clear_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern; returns the number removed"""
        if not self.client:
            return 0
        keys: List[str] = list(self.client.scan_iter(match=self._key(pattern), count=500))
        if not keys:
            return 0
        return self.client.delete(*keys)

    def close(self) -> None:
        if self.client is not None:
            self.client.close()


def booking_invalidation_patterns(consultant_id: str, consultant_slug: str) -> List[str]:
    """Cache namespaces that a new booking makes stale"""
    return [
        f"clients:{consultant_id}:*",
        f"sessions:{consultant_id}:*",
        f"dashboard_*:{consultant_id}:*",
        f"slots:{consultant_slug}:*",
        f"availability:{consultant_id}:*",
    ]


def payment_invalidation_patterns(consultant_id: str) -> List[str]:
    return [
        f"dashboard_*:{consultant_id}:*",
        f"sessions:{consultant_id}:*",
    ]
