"""
Thread-safe in-memory cache.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

from cache.base import CacheInterface

logger = logging.getLogger(__name__)


class MemoryCache(CacheInterface):
    """
    In-memory cache storing (value, written_at) per key.

    Features:
    - Freshness checked per lookup against the caller's max_age
    - Lookups never mutate entries
    - Thread-safe operations
    - Usage statistics
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        """
        Initialize the memory cache.

        Args:
            clock: Time source in seconds; injectable for tests
        """
        self.cache: Dict[str, Tuple[Any, float]] = {}
        self.clock = clock
        self.lock = threading.RLock()
        self.hits = 0
        self.misses = 0
        self.expired = 0
        self.puts = 0

    def get(self, key: str, max_age: Optional[float] = None) -> Tuple[Optional[Any], bool]:
        with self.lock:
            entry = self.cache.get(key)
            if entry is None:
                self.misses += 1
                return None, False

            value, written_at = entry
            if max_age is not None and self.clock() - written_at > max_age:
                self.expired += 1
                self.misses += 1
                return None, False

            self.hits += 1
            return value, True

    def put(self, key: str, value: Any) -> None:
        self.put_entry(key, value, self.clock())

    def put_entry(self, key: str, value: Any, written_at: float) -> None:
        """Store a value with an explicit write time, e.g. when promoting from disk."""
        with self.lock:
            self.cache[key] = (value, written_at)
            self.puts += 1

    def written_at(self, key: str) -> Optional[float]:
        with self.lock:
            entry = self.cache.get(key)
            return entry[1] if entry else None

    def __contains__(self, key: str) -> bool:
        with self.lock:
            return key in self.cache

    def __len__(self) -> int:
        with self.lock:
            return len(self.cache)

    def clear(self) -> None:
        with self.lock:
            self.cache.clear()

    def get_stats(self) -> Dict[str, Any]:
        with self.lock:
            total = self.hits + self.misses
            return {
                'size': len(self.cache),
                'hits': self.hits,
                'misses': self.misses,
                'expired': self.expired,
                'puts': self.puts,
                'hit_rate': self.hits / total if total > 0 else 0,
            }
