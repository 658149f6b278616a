"""Interface for caching mechanisms.

Defines the contract for storing, retrieving and invalidating cached read
results with TTL expiry and resource-based invalidation.
"""

import abc
from typing import Any, Dict, Iterable, Optional

from ..models.common import CacheKey


class CacheService(abc.ABC):
    """Abstract Base Class for caching operations."""

    @abc.abstractmethod
    async def get(self, key: CacheKey) -> Optional[Any]:
        """Retrieves an item from the cache.

        Args:
            key: The cache key to retrieve.

        Returns:
            The cached item if found and not expired, otherwise None.
        """
        pass

    @abc.abstractmethod
    async def set(
        self,
        key: CacheKey,
        value: Any,
        ttl: Optional[float] = None,
        resource_ids: Optional[Iterable[str]] = None,
    ) -> None:
        """Stores an item.

        Args:
            key: The cache key to store the item under.
            value: The item to store.
            ttl: Time-to-live in seconds (uses the default if None).
            resource_ids: Identifiers of the resources this entry depends on.
                A later `invalidate` of any of them drops the entry.
        """
        pass

    @abc.abstractmethod
    async def delete(self, key: CacheKey) -> None:
        pass

    @abc.abstractmethod
    async def invalidate(self, resource_id: str) -> int:
        """Drops every entry depending on `resource_id`.

        Returns:
            Number of entries removed.
        """
        pass

    @abc.abstractmethod
    async def clear(self) -> None:
        pass

    @abc.abstractmethod
    def stats(self) -> Dict[str, Any]:
        """Returns size and key information about the cache."""
        pass
