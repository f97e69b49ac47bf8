"""
Caching utilities for short-lived values (provider access tokens, settings)
Uses Redis when configured, otherwise a per-process dictionary
"""
import json
import logging
import time
from threading import Lock
from typing import Optional, Any

import redis

from .rate_limiter import get_redis_client

logger = logging.getLogger(__name__)


class Cache:
    """Redis cache wrapper with automatic serialization"""

    def __init__(self):
        self.redis_client = None
        # key -> (expires_at, serialized value)
        self._local: dict[str, tuple[float, str]] = {}
        self._lock = Lock()

    def _get_client(self):
        """Lazy load Redis client"""
        if self.redis_client is None:
            self.redis_client = get_redis_client()
        return self.redis_client

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        client = self._get_client()
        if client is None:
            with self._lock:
                entry = self._local.get(key)
                if not entry:
                    return None
                if entry[0] <= time.time():
                    del self._local[key]
                    return None
                return json.loads(entry[1])

        try:
            value = client.get(key)
            if value:
                logger.debug(f"✅ Cache HIT: {key}")
                return json.loads(value)
            logger.debug(f"❌ Cache MISS: {key}")
            return None
        except redis.RedisError as e:
            logger.error(f"❌ Cache get error for {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        """Set value in cache with TTL (default 1 hour)"""
        serialized = json.dumps(value)
        client = self._get_client()
        if client is None:
            with self._lock:
                self._local[key] = (time.time() + ttl, serialized)
            return True

        try:
            client.setex(key, ttl, serialized)
            logger.debug(f"✅ Cache SET: {key} (TTL: {ttl}s)")
            return True
        except redis.RedisError as e:
            logger.error(f"❌ Cache set error for {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        """Delete value from cache"""
        client = self._get_client()
        if client is None:
            with self._lock:
                return self._local.pop(key, None) is not None

        try:
            client.delete(key)
            logger.debug(f"✅ Cache DELETE: {key}")
            return True
        except redis.RedisError as e:
            logger.error(f"❌ Cache delete error for {key}: {e}")
            return False

    def clear_local(self):
        with self._lock:
            self._local.clear()


# Global cache instance
cache = Cache()
