"""
Tiered cache with memory and disk storage.
"""

import hashlib
import logging
import os
import pickle
import tempfile
import time
from typing import Any, Callable, Dict, Optional, Tuple

from cache.base import CacheInterface
from cache.memory_cache import MemoryCache

logger = logging.getLogger(__name__)


class TieredCache(CacheInterface):
    """
    Memory cache backed by one pickle file per key on disk.

    The disk tier lets fetched bodies and summaries survive restarts. Both
    tiers keep the original write time, so an entry promoted from disk ages
    exactly as if it had never left memory.
    """

    def __init__(self, disk_path: str = "./.cache/digest", clock: Callable[[], float] = time.time):
        """
        Initialize the tiered cache.

        Args:
            disk_path: Path to disk cache directory
            clock: Time source in seconds
        """
        self.memory_cache = MemoryCache(clock=clock)
        self.clock = clock
        self.disk_path = os.path.abspath(disk_path)
        os.makedirs(self.disk_path, exist_ok=True)
        self.disk_errors = 0

        logger.info(f"Initialized TieredCache at {self.disk_path}")

    def _get_disk_path(self, key: str) -> str:
        key_hash = hashlib.md5(key.encode('utf-8')).hexdigest()
        return os.path.join(self.disk_path, f"{key_hash}.cache")

    def get(self, key: str, max_age: Optional[float] = None) -> Tuple[Optional[Any], bool]:
        if key in self.memory_cache:
            return self.memory_cache.get(key, max_age)

        disk_path = self._get_disk_path(key)
        if not os.path.exists(disk_path):
            return self.memory_cache.get(key, max_age)

        try:
            with open(disk_path, 'rb') as f:
                stored_key, value, written_at = pickle.load(f)
        except (OSError, EOFError, pickle.UnpicklingError, ValueError) as e:
            # Unreadable entries behave like misses and get rewritten on the next put
            self.disk_errors += 1
            logger.error(f"Error reading from disk cache: {e}")
            return None, False

        if stored_key != key:
            return None, False

        self.memory_cache.put_entry(key, value, written_at)
        return self.memory_cache.get(key, max_age)

    def put(self, key: str, value: Any) -> None:
        written_at = self.clock()
        self.memory_cache.put_entry(key, value, written_at)

        # Write-then-rename keeps concurrent writers from leaving a torn file
        fd, tmp_path = tempfile.mkstemp(dir=self.disk_path, suffix=".tmp")
        try:
            with os.fdopen(fd, 'wb') as f:
                pickle.dump((key, value, written_at), f)
            os.replace(tmp_path, self._get_disk_path(key))
        except OSError as e:
            self.disk_errors += 1
            logger.error(f"Error writing to disk cache: {e}")
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    def clear(self) -> None:
        self.memory_cache.clear()
        for filename in os.listdir(self.disk_path):
            file_path = os.path.join(self.disk_path, filename)
            if os.path.isfile(file_path) and filename.endswith('.cache'):
                os.remove(file_path)

    def get_stats(self) -> Dict[str, Any]:
        disk_count = 0
        disk_size = 0
        for filename in os.listdir(self.disk_path):
            file_path = os.path.join(self.disk_path, filename)
            if os.path.isfile(file_path) and filename.endswith('.cache'):
                disk_count += 1
                disk_size += os.path.getsize(file_path)

        return {
            'memory': self.memory_cache.get_stats(),
            'disk_entries': disk_count,
            'disk_size_bytes': disk_size,
            'disk_errors': self.disk_errors,
        }
