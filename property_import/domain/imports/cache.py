"""
Bounded per-entity-type lookup cache used to resolve natural keys.

Repeated references (the same building named by hundreds of lot rows) are
served from memory, so backing-store lookups scale with the number of
distinct keys rather than the number of rows. The cache is also the
first line of duplicate detection within and across runs.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional

from property_import.api.schemas.shared import DEPENDENCY_ORDER, EntityType

logger = logging.getLogger(__name__)

DEFAULT_CACHE_SIZE = 1000
DEFAULT_TTL_SECONDS = 5 * 60


@dataclass
class CacheEntry:
    value: Any
    inserted_at: float
    hit_count: int = 0


class EntityCache:
    """
    Lookup cache with lazy TTL expiry and least-used eviction.

    ``resolve`` consults the cache and falls through to ``lookup`` on a miss;
    only found values are cached. At capacity, inserting a new key evicts the
    entry with the lowest hit count. Entry mutation is guarded by a lock; the
    lookup itself runs outside it so slow queries do not serialize readers.
    """

    def __init__(
        self,
        lookup: Callable[[Hashable], Optional[Any]],
        capacity: int = DEFAULT_CACHE_SIZE,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        name: str = "entities",
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._lookup = lookup
        self.capacity = capacity
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self.name = name
        self._entries: Dict[Hashable, CacheEntry] = {}
        self._lock = threading.RLock()
        self.hits = 0
        self.misses = 0
        self.lookups = 0
        self.evictions = 0

    def __len__(self) -> int:
        return self.size

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return self._live_entry(key) is not None

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def _live_entry(self, key: Hashable) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.inserted_at > self.ttl_seconds:
            del self._entries[key]
            return None
        return entry

    def get_entry(self, key: Hashable) -> Optional[CacheEntry]:
        """Peek at an entry without counting a hit."""
        with self._lock:
            return self._live_entry(key)

    def resolve(self, key: Hashable) -> Optional[Any]:
        if key is None:
            return None

        with self._lock:
            entry = self._live_entry(key)
            if entry is not None:
                entry.hit_count += 1
                self.hits += 1
                return entry.value
            self.misses += 1
            self.lookups += 1

        value = self._lookup(key)
        if value is not None:
            self.store(key, value)
        return value

    def store(self, key: Hashable, value: Any) -> None:
        with self._lock:
            if key in self._entries:
                entry = self._entries[key]
                entry.value = value
                entry.inserted_at = self._clock()
                return
            if len(self._entries) >= self.capacity:
                self._evict_least_used()
            self._entries[key] = CacheEntry(value=value, inserted_at=self._clock())

    def _evict_least_used(self) -> None:
        least_used_key = None
        least_hits = None
        for key, entry in self._entries.items():
            if least_hits is None or entry.hit_count < least_hits:
                least_hits = entry.hit_count
                least_used_key = key
        if least_used_key is not None:
            del self._entries[least_used_key]
            self.evictions += 1
            logger.debug(
                "Evicted '%s' from %s cache (hits=%s)", least_used_key, self.name, least_hits
            )

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "size": len(self._entries),
                "capacity": self.capacity,
                "total_hits": sum(entry.hit_count for entry in self._entries.values()),
                "hits": self.hits,
                "misses": self.misses,
                "lookups": self.lookups,
                "evictions": self.evictions,
            }


class EntityCacheRegistry:
    """One cache per entity type, never shared between types."""

    def __init__(
        self,
        store: Any,
        capacity: int = DEFAULT_CACHE_SIZE,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._caches: Dict[EntityType, EntityCache] = {}
        for entity_type in DEPENDENCY_ORDER:
            self._caches[entity_type] = EntityCache(
                lookup=self._lookup_for(store, entity_type),
                capacity=capacity,
                ttl_seconds=ttl_seconds,
                clock=clock,
                name=entity_type.value,
            )

    @staticmethod
    def _lookup_for(store: Any, entity_type: EntityType) -> Callable[[Hashable], Optional[Any]]:
        def _lookup(key: Hashable) -> Optional[Any]:
            return store.find_by_natural_key(entity_type, key)
        return _lookup

    def for_type(self, entity_type: EntityType) -> EntityCache:
        return self._caches[EntityType(entity_type)]

    def clear(self) -> None:
        for cache in self._caches.values():
            cache.clear()
        logger.info("Entity caches cleared")

    def stats(self) -> Dict[str, Dict[str, Any]]:
        return {entity_type.value: cache.stats() for entity_type, cache in self._caches.items()}
