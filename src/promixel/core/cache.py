"""Size-bounded TTL cache for generation results.

Entries expire ``ttl_seconds`` after they were stored.  When the cache holds
more than ``max_entries`` entries the globally oldest entry (by store time) is
evicted.  Reads never refresh an entry's age, so eviction is FIFO-by-age and
not LRU.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

from promixel.core.models import CacheEntry, GenerationResult

logger = logging.getLogger(__name__)


class ResultCache:
    """In-memory result cache keyed by normalized prompt.

    Args:
        ttl_seconds: Age after which an entry is treated as expired.
        max_entries: Maximum number of entries kept.
        clock: Time source returning seconds, injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float = 30 * 60,
        max_entries: int = 20,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.timestamp >= self.ttl_seconds

    def get(self, key: str) -> GenerationResult | None:
        """Return the cached result for ``key``, or ``None`` if missing or expired."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._is_expired(entry, now):
                del self._entries[key]
                logger.debug(f"Cache entry expired: {key!r}")
                return None
            return entry.result

    def put(self, key: str, result: GenerationResult) -> None:
        """Store ``result`` under ``key`` and evict the oldest entries over capacity."""
        with self._lock:
            self._entries[key] = CacheEntry(result=result, timestamp=self._clock())
            while len(self._entries) > self.max_entries:
                oldest = min(self._entries, key=lambda k: self._entries[k].timestamp)
                del self._entries[oldest]
                logger.debug(f"Cache full, evicted oldest entry: {oldest!r}")

    def purge_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if self._is_expired(e, now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def snapshot(self) -> list[dict[str, Any]]:
        """Serialise entries to plain dicts, oldest first."""
        with self._lock:
            entries = sorted(self._entries.items(), key=lambda item: item[1].timestamp)
            return [
                {"key": key, "timestamp": entry.timestamp, "result": entry.result.to_dict()}
                for key, entry in entries
            ]

    def restore(self, data: list[dict[str, Any]]) -> None:
        """Load entries produced by :meth:`snapshot`, skipping malformed or expired ones."""
        now = self._clock()
        with self._lock:
            for item in data or []:
                try:
                    entry = CacheEntry(
                        result=GenerationResult.from_dict(item["result"]),
                        timestamp=float(item["timestamp"]),
                    )
                    key = str(item["key"])
                except (KeyError, TypeError, ValueError, AttributeError):
                    logger.warning("Skipping malformed cache snapshot item")
                    continue
                if not self._is_expired(entry, now):
                    self._entries[key] = entry
            while len(self._entries) > self.max_entries:
                oldest = min(self._entries, key=lambda k: self._entries[k].timestamp)
                del self._entries[oldest]

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None
