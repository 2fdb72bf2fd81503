"""In-memory TTL cache for lookup results."""
import os
import time
import threading
from typing import Any, Callable, Dict, Optional, Tuple

RESULT_CACHE_TTL = int(os.environ.get("RESULT_CACHE_TTL", "300"))  # 5 minutes


class ResultCache:
    """Keyed (cached_time, data) store, same shape as the price caches."""

    def __init__(self, ttl_seconds: int = RESULT_CACHE_TTL, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def key(*parts: Any) -> str:
        return ":".join(str(p) for p in parts).lower()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            cached_time, data = entry
            if self._clock() - cached_time >= self.ttl_seconds:
                del self._entries[key]
                return None
            return data

    def set(self, key: str, data: Any):
        if self.ttl_seconds <= 0:
            return
        with self._lock:
            self._entries[key] = (self._clock(), data)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
