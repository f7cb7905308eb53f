"""
Caching components for CareConnect API calls
Explicit, injectable TTL caches; nothing here is module-level state
"""

import json
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional, Tuple

import redis

from logging_config import get_logger

logger = get_logger(__name__)


class TTLCache:
    """
    Bounded in-memory cache with per-entry expiry.

    Entries older than `ttl_seconds` are treated as missing. When the cache is
    full the oldest entry is evicted. Safe to share between request threads.
    """

    def __init__(self, ttl_seconds: float, max_entries: int = 1024,
                 clock: Callable[[], float] = time.monotonic):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[Any]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            stored_at, value = entry
            if now - stored_at >= self.ttl_seconds:
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return value

    def set(self, key: str, value: Any) -> None:
        now = self._clock()
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            self._entries[key] = (now, value)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Evicted cache entry {evicted}")

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info(f"Cleared {count} cache entries")
        return count

    def cleanup_expired(self) -> int:
        """Remove expired entries to keep memory bounded between evictions."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (stored_at, _) in self._entries.items()
                       if now - stored_at >= self.ttl_seconds]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug(f"Cleaned up {len(expired)} expired cache entries")
        return len(expired)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "backend": "memory",
                "entries": len(self._entries),
                "max_entries": self.max_entries,
                "ttl_seconds": self.ttl_seconds,
                "hits": self._hits,
                "misses": self._misses,
            }


class RedisCache:
    """Same interface as TTLCache, backed by Redis SETEX with JSON values."""

    def __init__(self, client: "redis.Redis", ttl_seconds: float, prefix: str = "careconnect:"):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, ttl_seconds: float) -> "RedisCache":
        client = redis.from_url(url, decode_responses=True, socket_connect_timeout=1, socket_timeout=1)
        return cls(client, ttl_seconds)

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self.client.get(self.prefix + key)
        except redis.RedisError as e:
            logger.warning(f"Redis read error, treating as cache miss: {e}")
            return None
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any) -> None:
        try:
            self.client.setex(self.prefix + key, max(1, int(self.ttl_seconds)), json.dumps(value))
        except redis.RedisError as e:
            logger.warning(f"Redis write error: {e}")

    def clear(self) -> int:
        try:
            keys = list(self.client.scan_iter(match=self.prefix + "*"))
            if keys:
                self.client.delete(*keys)
        except redis.RedisError as e:
            logger.warning(f"Error clearing Redis cache: {e}")
            return 0
        logger.info(f"Cleared {len(keys)} cache entries")
        return len(keys)

    def cleanup_expired(self) -> int:
        # Redis expires keys itself
        return 0

    def stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {"backend": "redis", "ttl_seconds": self.ttl_seconds}
        try:
            stats["entries"] = sum(1 for _ in self.client.scan_iter(match=self.prefix + "*"))
        except redis.RedisError as e:
            stats["redis_error"] = str(e)
        return stats


def build_cache(ttl_seconds: float, max_entries: int = 1024, redis_url: Optional[str] = None):
    """
    Build the configured cache, or None when caching is disabled (ttl <= 0).

    Redis is used when a URL is configured and answers a ping; otherwise the
    in-memory cache is used.
    """
    if ttl_seconds <= 0:
        return None
    if redis_url:
        try:
            cache = RedisCache.from_url(redis_url, ttl_seconds)
            cache.client.ping()
            logger.info("Redis connected for distributed caching")
            return cache
        except redis.RedisError as e:
            logger.warning(f"Redis not available, using in-memory cache: {e}")
    return TTLCache(ttl_seconds, max_entries)
