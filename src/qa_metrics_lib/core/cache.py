"""
TTL cache for computed metrics snapshots.

Entries are valid for a fixed five minutes. Invalidation is coarse: every
key containing a scope id is dropped at once, covering all aggregate types
and filter variants of that scope.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from qa_metrics_lib.config import CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)


def build_cache_key(suite_id: str, aggregate_type: str, filters: Optional[Mapping[str, Any]] = None) -> str:
    """Deterministic cache key for a scope, aggregate type and filter object.

    Filters are serialized with sorted keys, so semantically equal filter
    objects map to the same key regardless of insertion order.

    Example:
        >>> build_cache_key("s1", "testCaseMetrics", {"sprintId": None})
        's1-testCaseMetrics-{"sprintId":null}'
    """
    serialized = json.dumps(
        dict(filters or {}), sort_keys=True, separators=(",", ":"), default=str
    )
    return f"{suite_id}-{aggregate_type}-{serialized}"


@dataclass
class CacheEntry:
    key: str
    data: Any
    timestamp: float


class MetricsCache:
    """In-memory TTL cache of metrics snapshots.

    Owned by one MetricsService; construct separate instances to isolate
    tenants. ``max_size`` optionally bounds the number of entries by evicting
    the oldest one.
    """

    def __init__(
        self,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        max_size: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def key(self, suite_id: str, aggregate_type: str, filters: Optional[Mapping[str, Any]] = None) -> str:
        return build_cache_key(suite_id, aggregate_type, filters)

    def _is_valid(self, entry: CacheEntry) -> bool:
        return (self._clock() - entry.timestamp) < self.ttl_seconds

    def get(self, key: str) -> Optional[Any]:
        """Return cached data younger than the TTL, otherwise None."""
        entry = self._entries.get(key)
        if entry is None:
            logger.debug(f"Cache miss: {key}")
            return None
        if not self._is_valid(entry):
            del self._entries[key]
            logger.debug(f"Cache expired: {key}")
            return None
        logger.debug(f"Cache hit: {key}")
        return entry.data

    def set(self, key: str, data: Any) -> None:
        """Store data under key with the current timestamp, replacing any entry."""
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(key=key, data=data, timestamp=self._clock())

        # Evict oldest entries if cache is full
        if self.max_size is not None:
            while len(self._entries) > self.max_size:
                oldest_key = next(iter(self._entries))
                del self._entries[oldest_key]
                logger.debug(f"Cache evicted: {oldest_key}")

    def invalidate(self, pattern: Optional[str] = None) -> int:
        """Remove every entry whose key contains ``pattern``.

        With no pattern the whole cache is cleared. Returns the number of
        removed entries.
        """
        if pattern is None:
            removed = len(self._entries)
            self._entries.clear()
        else:
            matching = [key for key in self._entries if pattern in key]
            for key in matching:
                del self._entries[key]
            removed = len(matching)
        if removed:
            logger.debug(f"Invalidated {removed} cache entries (pattern={pattern!r})")
        return removed

    def clear(self) -> None:
        self.invalidate()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._is_valid(entry)
