"""Concrete implementation of the in-memory TTL Caching Service.

Entries expire at read time once their TTL has elapsed. Every entry may be
registered against the resource identifiers it depends on; `invalidate`
uses that reverse index to drop exactly the dependent entries. An optional
`max_entries` bound evicts expired entries first, then least recently used.
"""

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Set

from photostream.domain.interfaces.cache import CacheService
from photostream.domain.models.common import CacheKey

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60  # 5 minutes


def _render(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple, set, frozenset)):
        items = sorted(value) if isinstance(value, (set, frozenset)) else value
        return ",".join(_render(v) for v in items)
    return str(value)


def build_cache_key(operation: str, params: Optional[Mapping[str, Any]] = None) -> CacheKey:
    """Builds a key from the operation name and sorted `key:value` pairs.

    Equivalent parameter sets produce the same key regardless of order.

    Example:
        build_cache_key('fetchPhotosByFolder', {'userId': 'u1', 'gameNumber': '3'})
        -> 'fetchPhotosByFolder:gameNumber:3|userId:u1'
    """
    pairs = sorted((params or {}).items())
    return CacheKey(f"{operation}:" + "|".join(f"{k}:{_render(v)}" for k, v in pairs))


@dataclass
class CacheEntry:
    """Internal representation of a cache entry with expiry."""
    value: Any
    inserted_at: float
    ttl: float
    resource_ids: Set[str] = field(default_factory=set)

    def is_expired(self, now: float) -> bool:
        return now - self.inserted_at >= self.ttl


class CachingServiceImpl(CacheService):
    """TTL cache with resource-based invalidation and an optional LRU bound."""

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initializes the caching service.

        Args:
            default_ttl: TTL in seconds used when `set` gets none.
            max_entries: Optional upper bound on stored entries.
            clock: Monotonic time source, injectable for tests.
        """
        if max_entries is not None and max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[CacheKey, CacheEntry]" = OrderedDict()
        self._index: Dict[str, Set[CacheKey]] = {}
        self.hits = 0
        self.misses = 0
        logger.info(f"CachingService initialized (ttl={default_ttl}s, max_entries={max_entries or 'unbounded'})")

    # --- Internal helpers ---

    def _drop(self, key: CacheKey) -> None:
        entry = self._entries.pop(key, None)
        if entry is None:
            return
        for resource_id in entry.resource_ids:
            keys = self._index.get(resource_id)
            if keys is not None:
                keys.discard(key)
                if not keys:
                    del self._index[resource_id]

    def _prune_expired(self) -> None:
        now = self._clock()
        for key in [k for k, e in self._entries.items() if e.is_expired(now)]:
            self._drop(key)

    def _enforce_bound(self) -> None:
        if self.max_entries is None or len(self._entries) <= self.max_entries:
            return
        self._prune_expired()
        while len(self._entries) > self.max_entries:
            oldest_key = next(iter(self._entries))
            logger.debug(f"Evicting least recently used cache entry: {oldest_key}")
            self._drop(oldest_key)

    # --- CacheService Interface Implementation ---

    async def get(self, key: CacheKey) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            logger.debug(f"Cache miss for key: {key}")
            return None
        if entry.is_expired(self._clock()):
            self._drop(key)
            self.misses += 1
            logger.debug(f"Cache entry expired for key: {key}")
            return None
        self._entries.move_to_end(key)
        self.hits += 1
        logger.debug(f"Cache hit for key: {key}")
        return entry.value

    async def set(
        self,
        key: CacheKey,
        value: Any,
        ttl: Optional[float] = None,
        resource_ids: Optional[Iterable[str]] = None,
    ) -> None:
        self._drop(key)
        ids = {str(r) for r in (resource_ids or ()) if r}
        self._entries[key] = CacheEntry(
            value=value,
            inserted_at=self._clock(),
            ttl=ttl if ttl is not None else self.default_ttl,
            resource_ids=ids,
        )
        for resource_id in ids:
            self._index.setdefault(resource_id, set()).add(key)
        self._enforce_bound()
        logger.debug(f"Stored cache entry: key={key}, depends_on={len(ids)} resources")

    async def delete(self, key: CacheKey) -> None:
        if key in self._entries:
            self._drop(key)
            logger.debug(f"Deleted cache entry: key={key}")

    async def invalidate(self, resource_id: str) -> int:
        keys = list(self._index.get(str(resource_id), ()))
        for key in keys:
            self._drop(key)
        if keys:
            logger.info(f"Invalidated {len(keys)} cache entries for resource: {resource_id}")
        return len(keys)

    async def clear(self) -> None:
        self._entries.clear()
        self._index.clear()
        logger.info("Cleared in-memory cache.")

    def stats(self) -> Dict[str, Any]:
        self._prune_expired()
        return {
            "size": len(self._entries),
            "keys": list(self._entries.keys()),
            "indexed_resources": len(self._index),
            "hits": self.hits,
            "misses": self.misses,
            "max_entries": self.max_entries,
            "default_ttl": self.default_ttl,
        }
