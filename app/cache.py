"""
Redis caching utilities with an in-process fallback
Values are JSON-serialized and always stored with a TTL
"""

import json
import logging
import time
from threading import Lock
from typing import Any, Optional

from .rate_limiter import get_redis_client

logger = logging.getLogger(__name__)

MEMORY_CACHE_MAX_ENTRIES = 1000


class Cache:
    """Redis cache wrapper; falls back to a bounded in-memory store when Redis is unavailable"""

    def __init__(self, max_entries: int = MEMORY_CACHE_MAX_ENTRIES):
        self.max_entries = max_entries
        # {key: (serialized value, expires_at)}
        self._memory: dict[str, tuple[str, float]] = {}
        self._lock = Lock()

    def _get_client(self):
        try:
            return get_redis_client()
        except Exception as e:
            logger.warning(f"⚠️ Redis cache unavailable: {e}")
            return None

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        client = self._get_client()
        if client:
            try:
                value = client.get(key)
            except Exception as e:
                logger.error(f"❌ Cache get error for {key}: {e}")
                return None
        else:
            value = self._memory_get(key)

        if value is None:
            logger.debug(f"❌ Cache MISS: {key}")
            return None
        logger.debug(f"✅ Cache HIT: {key}")
        return json.loads(value)

    def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        """Set value in cache with TTL (default 1 hour)"""
        serialized = json.dumps(value)
        client = self._get_client()
        if client:
            try:
                client.setex(key, ttl, serialized)
            except Exception as e:
                logger.error(f"❌ Cache set error for {key}: {e}")
                return False
        else:
            self._memory_set(key, serialized, ttl)
        logger.debug(f"✅ Cache SET: {key} (TTL: {ttl}s)")
        return True

    def delete(self, key: str) -> bool:
        client = self._get_client()
        if client:
            try:
                client.delete(key)
            except Exception as e:
                logger.error(f"❌ Cache delete error for {key}: {e}")
                return False
        else:
            with self._lock:
                self._memory.pop(key, None)
        return True

    def clear_memory(self):
        with self._lock:
            self._memory.clear()

    def memory_size(self) -> int:
        with self._lock:
            return len(self._memory)

    def _memory_get(self, key: str) -> Optional[str]:
        now = time.time()
        with self._lock:
            entry = self._memory.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= now:
                del self._memory[key]
                return None
            return value

    def _memory_set(self, key: str, value: str, ttl: int):
        now = time.time()
        with self._lock:
            self._memory.pop(key, None)
            if len(self._memory) >= self.max_entries:
                expired = [k for k, (_, expires_at) in self._memory.items() if expires_at <= now]
                for k in expired:
                    del self._memory[k]
            while len(self._memory) >= self.max_entries:
                # Dicts keep insertion order, so the first key is the oldest write
                del self._memory[next(iter(self._memory))]
            self._memory[key] = (value, now + ttl)


# Global cache instance
cache = Cache()
