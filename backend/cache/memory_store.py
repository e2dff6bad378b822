"""
Memory Store Implementation
内存存储实现

Thread-safe in-memory cache for search responses.

Features:
- Thread-safe operations with Lock
- TTL-based expiration, checked on read and swept from an expiry heap
- FIFO eviction (oldest insertion first) when max entries exceeded
- Expiry is scoped to the insertion that scheduled it, so a key that was
  re-put after its first insertion is not removed early
"""

import asyncio
import heapq
import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_TTL = 30.0
DEFAULT_MAX_ENTRIES = 100


@dataclass
class CacheEntry:
    """
    Cache entry data structure
    缓存条目数据结构
    """
    key: str                         # normalized query + "_" + page
    payload: Any                     # JSON-serializable response body
    inserted_at: float               # clock() value when stored


class ResultCache:
    """
    Thread-safe in-memory result cache
    线程安全的内存结果缓存

    Eviction is by insertion order, not by access: reading a popular key
    does not protect it from being evicted.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl: float = DEFAULT_TTL,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize result cache

        Args:
            max_entries: Maximum number of entries to keep
            ttl: Time-to-live in seconds
            clock: Time source, seconds as float (defaults to time.monotonic)
        """
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")

        # dict preserves insertion order; the first key is the oldest
        self._store: Dict[str, CacheEntry] = {}
        # (expires_at, key, inserted_at)
        self._expiry_heap: List[Tuple[float, str, float]] = []
        self._lock = Lock()
        self._max_entries = max_entries
        self._ttl = ttl
        self._clock = clock or time.monotonic
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @property
    def ttl(self) -> float:
        return self._ttl

    def get(self, key: str) -> Optional[Any]:
        """
        Get cached payload by key
        根据 key 获取缓存内容

        Returns:
            The payload if present and younger than the TTL, None otherwise
        """
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                return None
            if self._clock() - entry.inserted_at >= self._ttl:
                del self._store[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry.payload

    def put(self, key: str, payload: Any) -> None:
        """
        Store payload under key
        存储缓存内容

        Overwriting an existing key restarts its TTL but keeps its place
        in the eviction order.
        """
        with self._lock:
            now = self._clock()

            if key not in self._store and len(self._store) >= self._max_entries:
                oldest_key = next(iter(self._store))
                del self._store[oldest_key]
                self._evictions += 1

            self._store[key] = CacheEntry(key=key, payload=payload, inserted_at=now)
            heapq.heappush(self._expiry_heap, (now + self._ttl, key, now))

    def purge_expired(self) -> int:
        """
        Remove entries whose scheduled expiry has passed
        清理过期条目

        Returns:
            Number of entries removed
        """
        with self._lock:
            now = self._clock()
            removed = 0
            while self._expiry_heap and self._expiry_heap[0][0] <= now:
                _, key, inserted_at = heapq.heappop(self._expiry_heap)
                entry = self._store.get(key)
                # Only the insertion that scheduled this expiry may remove it
                if entry is not None and entry.inserted_at == inserted_at:
                    del self._store[key]
                    removed += 1
            return removed

    def delete(self, key: str) -> bool:
        """
        Delete cache entry
        删除缓存条目

        Returns:
            True if deleted, False if not found
        """
        with self._lock:
            if key in self._store:
                del self._store[key]
                return True
            return False

    def clear(self) -> int:
        """
        Clear all cache entries
        清空所有缓存

        Returns:
            Number of entries deleted
        """
        with self._lock:
            count = len(self._store)
            self._store.clear()
            self._expiry_heap.clear()
            return count

    def keys(self) -> List[str]:
        """Current keys, oldest insertion first"""
        with self._lock:
            return list(self._store)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def stats(self) -> Dict[str, Any]:
        """
        Get cache statistics
        获取缓存统计信息
        """
        with self._lock:
            return {
                "total_entries": len(self._store),
                "max_entries": self._max_entries,
                "ttl_seconds": self._ttl,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "pending_expiries": len(self._expiry_heap),
            }


async def run_expiry_sweeper(cache: ResultCache, interval: float = 1.0) -> None:
    """
    Periodically purge expired entries until cancelled
    定期清理过期条目
    """
    while True:
        await asyncio.sleep(interval)
        removed = cache.purge_expired()
        if removed:
            logger.debug(f"[ResultCache] Expired {removed} entries")
