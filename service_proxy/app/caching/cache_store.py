"""
In-memory response cache for the proxy.

Bounded LRU map whose entries expire after a maximum age. Expiry is
absolute by default (age counted from the write); with ``sliding=True``
every successful ``get`` restarts the entry's age.
"""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from shared.logging import get_logger
from ..models import CacheEntry


DEFAULT_MAX_AGE_SECONDS = 60.0
DEFAULT_MAX_ENTRIES = 500


@dataclass
class _Slot:
    entry: CacheEntry
    stored_at: float


class CacheStore:
    """Thread-safe, bounded, time-expiring key -> CacheEntry map."""

    def __init__(
        self,
        max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        *,
        sliding: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_age_seconds <= 0:
            raise ValueError("max_age_seconds must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")

        self.max_age_seconds = max_age_seconds
        self.max_entries = max_entries
        self.sliding = sliding
        self._clock = clock
        self._lock = threading.Lock()
        self._slots: "OrderedDict[str, _Slot]" = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self.logger = get_logger("proxy.cache_store")

    def _is_expired(self, slot: _Slot, now: float) -> bool:
        return now - slot.stored_at >= self.max_age_seconds

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the live entry for ``key`` or None."""
        with self._lock:
            slot = self._slots.get(key)
            if slot is None:
                self._misses += 1
                return None

            now = self._clock()
            if self._is_expired(slot, now):
                del self._slots[key]
                self._misses += 1
                return None

            self._slots.move_to_end(key)
            if self.sliding:
                slot.stored_at = now
            self._hits += 1
            return slot.entry

    def has(self, key: str) -> bool:
        """Existence check honouring expiry; leaves recency untouched."""
        with self._lock:
            slot = self._slots.get(key)
            return slot is not None and not self._is_expired(slot, self._clock())

    def set(self, key: str, entry: CacheEntry) -> None:
        """Insert or overwrite ``key``, evicting the LRU entry when full."""
        with self._lock:
            if key in self._slots:
                del self._slots[key]
            elif len(self._slots) >= self.max_entries:
                evicted_key, _ = self._slots.popitem(last=False)
                self._evictions += 1
                self.logger.debug("Evicted least recently used entry", key=evicted_key)
            self._slots[key] = _Slot(entry=entry, stored_at=self._clock())

    def reset_all(self) -> None:
        """Drop every entry at once."""
        with self._lock:
            self._slots = OrderedDict()

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for slot in self._slots.values() if not self._is_expired(slot, now))

    def stats(self) -> Dict[str, Any]:
        """Snapshot of cache counters."""
        size = len(self)
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "size": size,
                "max_entries": self.max_entries,
                "max_age_seconds": self.max_age_seconds,
                "sliding": self.sliding,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "hit_ratio": (self._hits / lookups) if lookups else 0.0,
            }
