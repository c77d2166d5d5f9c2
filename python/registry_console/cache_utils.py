"""Caching utilities for dashboard reads"""

import json
import time
from typing import Any, Callable, Dict, Optional, Tuple

from registry_console.logging_utils import get_logger

logger = get_logger(__name__)


class TTLCache:
    """Time-To-Live cache with automatic expiration"""

    def __init__(self, ttl_seconds: float = 300, max_size: Optional[int] = None,
                 clock: Callable[[], float] = time.monotonic):
        """Initialize TTL cache

        Args:
            ttl_seconds: Time to live in seconds (0 disables caching)
            max_size: Maximum number of items (None = unlimited)
            clock: Monotonic time source
        """
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._cache: Dict[str, Tuple[Any, float]] = {}
        self._access_times: Dict[str, float] = {}

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache if not expired"""
        if key not in self._cache:
            return None

        value, expiry_time = self._cache[key]
        now = self._clock()
        if now >= expiry_time:
            self.remove(key)
            return None

        self._access_times[key] = now
        return value

    def set(self, key: str, value: Any) -> None:
        """Set value in cache with TTL"""
        if self.ttl_seconds <= 0:
            return
        now = self._clock()

        # If at max size, evict least recently used
        if self.max_size and len(self._cache) >= self.max_size and key not in self._cache:
            lru_key = min(self._access_times.items(), key=lambda x: x[1])[0]
            self.remove(lru_key)

        self._cache[key] = (value, now + self.ttl_seconds)
        self._access_times[key] = now

    def clear(self) -> None:
        """Clear all cached items"""
        self._cache.clear()
        self._access_times.clear()

    def remove(self, key: str) -> None:
        """Remove specific key from cache"""
        self._cache.pop(key, None)
        self._access_times.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> int:
        """Remove every key starting with `prefix` and return how many were removed"""
        keys = [key for key in self._cache if key.startswith(prefix)]
        for key in keys:
            self.remove(key)
        return len(keys)

    def size(self) -> int:
        """Get current cache size"""
        return len(self._cache)


def cache_key(*args, **kwargs) -> str:
    """Build a deterministic key from simple arguments, e.g. 'stats|repo-a|limit=5'"""
    parts = [json.dumps(arg, sort_keys=True) if isinstance(arg, (list, tuple, dict)) else str(arg)
             for arg in args]
    parts.extend(f"{k}={v}" for k, v in sorted(kwargs.items()))
    return "|".join(parts)
