"""
TTL Cache
Dictionary-based cache with per-entry expiry, used for conversation lists
and per-channel counts.
"""
import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple


class TTLCache:
    """Simple dictionary-based cache with TTL"""

    def __init__(self, ttl_seconds: float = 30, clock: Callable[[], float] = time.monotonic):
        self.cache: Dict[Hashable, Tuple[Any, float]] = {}
        self.ttl = ttl_seconds
        self._clock = clock

    def get(self, key: Hashable) -> Optional[Any]:
        entry = self.cache.get(key)
        if entry is None:
            return None
        value, stored_at = entry
        if self._clock() - stored_at > self.ttl:
            del self.cache[key]
            return None
        return value

    def set(self, key: Hashable, value: Any) -> None:
        self.cache[key] = (value, self._clock())

    def invalidate(self, key: Hashable) -> None:
        self.cache.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every string key starting with prefix, returns how many were dropped"""
        keys_to_remove = [k for k in self.cache if isinstance(k, str) and k.startswith(prefix)]
        for k in keys_to_remove:
            del self.cache[k]
        return len(keys_to_remove)

    def clear(self) -> None:
        self.cache.clear()

    def _cleanup(self) -> None:
        now = self._clock()
        # Remove expired keys
        keys_to_remove = [k for k, (_, t) in self.cache.items() if now - t > self.ttl]
        for k in keys_to_remove:
            del self.cache[k]

    def __len__(self) -> int:
        self._cleanup()
        return len(self.cache)
